"""Render the work item tree as a markdown outline."""

import io
from collections.abc import Callable

from workitem_sync.models.node import WorkItemNode, WorkItemTree


def render_tree_as_markdown(
    tree: WorkItemTree,
    *,
    pending_label: Callable[[int], str | None] | None = None,
    max_depth: int | None = None,
    show_details: bool = True,
) -> str:
    """Render the forest as indented markdown bullets.

    Args:
        tree: The tree to render.
        pending_label: Returns a label such as ``"REL"`` for nodes with pending
            changes, or None.
        max_depth: Max levels below the roots to include (None = unlimited).
        show_details: Whether to append state and assignee.

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    out = io.StringIO()
    for node, depth in tree.walk():
        if max_depth is not None and depth > max_depth:
            continue
        indent = "    " * depth
        line = f"{indent}- [{node.id}] {node.type}: {node.title}"
        if show_details:
            line += f" ({node.state}, {node.assigned_to})"
        label = pending_label(node.id) if pending_label else None
        if label:
            line += f" **PENDING ({label})**"
        out.write(line + "\n")

        # Truncation indicator when children are cut off by max_depth
        if max_depth is not None and depth == max_depth and node.children:
            out.write(_truncation_line(node, depth + 1))

    return out.getvalue()


def _truncation_line(node: WorkItemNode, depth: int) -> str:
    count = len(node.children)
    noun = "child" if count == 1 else "children"
    return f"{'    ' * depth}- ... ({count} more {noun}, id={node.id})\n"
