"""Tests for markdown rendering of the work item tree."""

from workitem_sync.core.tree.builder import build_tree
from workitem_sync.core.tree.markdown import render_tree_as_markdown
from tests.unit.conftest import SAMPLE_ITEMS


def test_render_tree_indents_children() -> None:
    md = render_tree_as_markdown(build_tree(SAMPLE_ITEMS))

    lines = md.splitlines()
    assert lines[0] == "- [5] Epic: Billing (New, Unassigned)"
    assert lines[2] == "    - [2] Feature: Login (New, Unassigned)"
    assert lines[3] == "        - [4] User Story: Password reset (New, Unassigned)"


def test_render_tree_marks_pending_nodes() -> None:
    labels = {4: "REL", 3: "REL + CONTENT"}

    md = render_tree_as_markdown(build_tree(SAMPLE_ITEMS), pending_label=labels.get)

    assert "[4] User Story: Password reset (New, Unassigned) **PENDING (REL)**" in md
    assert "**PENDING (REL + CONTENT)**" in md
    assert md.count("PENDING") == 2


def test_render_tree_with_depth_limit_shows_truncation() -> None:
    md = render_tree_as_markdown(build_tree(SAMPLE_ITEMS), max_depth=0, show_details=False)

    assert "- [1] Epic: Platform\n" in md
    assert "... (2 more children, id=1)" in md
    assert "Login" not in md


def test_render_tree_no_truncation_for_childless_nodes() -> None:
    md = render_tree_as_markdown(build_tree(SAMPLE_ITEMS), max_depth=1)

    assert "... (1 more child, id=2)" in md
    assert "id=3" not in md
    assert "id=5" not in md


def test_render_tree_no_truncation_without_max_depth() -> None:
    md = render_tree_as_markdown(build_tree(SAMPLE_ITEMS))

    assert "... (" not in md
