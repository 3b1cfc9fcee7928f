"""Tests for SyncEngine: rebuild, restore, guards and notifications."""

from pathlib import Path

import pytest

from workitem_sync.config import ORIGINAL_CONTENT_KEY, PENDING_CHANGES_KEY
from workitem_sync.core.sync.engine import SyncEngine, SyncState
from workitem_sync.documents import NoteStore
from workitem_sync.models.work_item import NewWorkItem
from workitem_sync.exceptions import (
    CycleRejected,
    SyncInProgress,
    WorkItemNotFound,
    WorkItemSyncError,
)
from tests.unit.conftest import SAMPLE_ITEMS
from tests.unit.fakes import (
    FakeClient,
    FakeCodec,
    FakeDocumentStore,
    FakeKeyValueStore,
    FakeNotifier,
    make_item,
)


def _restart(engine: SyncEngine, items: list | None = None) -> SyncEngine:
    """A new engine over the same store and notes, as after a process restart."""
    client = FakeClient(items if items is not None else engine.client.items)
    fresh = SyncEngine(client, engine.documents, FakeCodec(), engine.store, clock=lambda: 2000)
    fresh.refresh()
    return fresh


def test_refresh_builds_tree_with_resource_refs(engine: SyncEngine) -> None:
    assert len(engine.tree) == 5
    assert engine.tree[4].resource_ref == "WI-4 Password reset.md"
    assert engine.pending_count == 0


def test_reparent_notifies_with_pending_count(engine: SyncEngine, notifier: FakeNotifier) -> None:
    engine.reparent(4, 3)

    assert notifier.messages[-1] == (
        "Moved [4] Password reset under [3] Search. 1 change pending."
    )
    assert engine.pending_label(4) == "REL"
    assert engine.has_pending(4)


def test_promote_to_root_notifies(engine: SyncEngine, notifier: FakeNotifier) -> None:
    engine.promote_to_root(2)

    assert notifier.messages[-1] == "Made [2] Login a root item. 1 change pending."


def test_reparent_unknown_id_raises(engine: SyncEngine) -> None:
    with pytest.raises(WorkItemNotFound):
        engine.reparent(4, 42)


def test_reparent_cycle_leaves_store_untouched(
    engine: SyncEngine, store: FakeKeyValueStore
) -> None:
    before = store.get(PENDING_CHANGES_KEY)

    with pytest.raises(CycleRejected):
        engine.reparent(1, 4)

    assert store.get(PENDING_CHANGES_KEY) == before
    assert engine.tree[4].parent_id == 2


def test_mutations_are_persisted_immediately(
    engine: SyncEngine, store: FakeKeyValueStore
) -> None:
    engine.reparent(4, 3)

    assert store.get(PENDING_CHANGES_KEY) == {
        "changedNotes": [],
        "changedRelationships": {"4": 3},
        "lastSaved": 1000,
    }


def test_restart_restores_moves_into_tree(engine: SyncEngine) -> None:
    engine.reparent(4, 3)

    fresh = _restart(engine)

    assert fresh.changes.relationships == {4: 3}
    assert fresh.tree[4].parent_id == 3
    assert fresh.baseline.parent_of(4) == 2


def test_restart_drops_move_already_applied_remotely(engine: SyncEngine) -> None:
    engine.reparent(4, 3)
    items = [i for i in SAMPLE_ITEMS if i.id != 4] + [make_item(4, "Password reset", parent=3)]

    fresh = _restart(engine, items)

    assert fresh.changes.relationships == {}
    assert fresh.store.get(PENDING_CHANGES_KEY)["changedRelationships"] == {}


def test_restart_drops_moves_of_missing_items(engine: SyncEngine) -> None:
    engine.reparent(4, 3)
    engine.reparent(2, 5)
    items = [i for i in SAMPLE_ITEMS if i.id not in (3, 2)]

    fresh = _restart(engine, items)

    assert fresh.changes.relationships == {}


def test_restart_drops_move_that_would_form_cycle(engine: SyncEngine) -> None:
    engine.reparent(3, 5)
    # Remotely, 5 has meanwhile been moved under 3.
    items = [i for i in SAMPLE_ITEMS if i.id != 5] + [make_item(5, "Billing", parent=3)]

    fresh = _restart(engine, items)

    assert fresh.changes.relationships == {}
    assert fresh.tree[5].parent_id == 3


def test_restart_keeps_content_change_with_unknown_original(engine: SyncEngine) -> None:
    engine.documents.docs["WI-5 Billing.md"] = "Billing v2\n"
    engine.on_document_modified("WI-5 Billing.md")
    engine.store.data.pop(ORIGINAL_CONTENT_KEY)

    fresh = _restart(engine)

    assert fresh.changes.notes == [5]
    assert fresh.tracker.originals[5] is None


def test_restart_detects_edits_made_while_not_running(engine: SyncEngine) -> None:
    engine.documents.docs["WI-3 Search.md"] = "Search v2\n"

    fresh = _restart(engine)

    assert fresh.changes.notes == [3]
    assert fresh.tracker.originals[3] == "Search\n"


def test_rebuild_keeps_in_memory_originals(engine: SyncEngine) -> None:
    engine.documents.docs["WI-3 Search.md"] = "Search v2\n"
    engine.on_document_modified("WI-3 Search.md")

    engine.refresh()

    assert engine.changes.notes == [3]
    assert engine.tracker.originals[3] == "Search\n"


def test_rebuild_while_pushing_is_rejected(engine: SyncEngine) -> None:
    engine.state = SyncState.PUSHING

    with pytest.raises(SyncInProgress):
        engine.rebuild(SAMPLE_ITEMS)


def test_push_counts_unexpected_error_as_failure(
    engine: SyncEngine, client: FakeClient, store: FakeKeyValueStore
) -> None:
    engine.reparent(4, 3)
    client.fail("set_parent", 4, RuntimeError("unexpected"))

    result = engine.push()

    assert (result.succeeded, result.failed) == (0, 1)
    assert engine.state is SyncState.IDLE
    assert store.get(PENDING_CHANGES_KEY)["changedRelationships"] == {"4": 3}


def test_push_notifies_progress_and_summary(engine: SyncEngine, notifier: FakeNotifier) -> None:
    engine.reparent(4, 3)
    engine.promote_to_root(2)

    engine.push()

    assert notifier.messages[-2:] == [
        "Pushing 2 changes...",
        "Successfully pushed all changes (2).",
    ]


def test_on_document_modified_ignores_foreign_notes(engine: SyncEngine) -> None:
    assert engine.on_document_modified("README.md") is None
    assert engine.on_document_modified("WI-99 Unknown.md") is None


def test_rebuild_offline_requires_cache() -> None:
    engine = SyncEngine(FakeClient(), FakeDocumentStore(), FakeCodec(), FakeKeyValueStore())

    with pytest.raises(WorkItemSyncError):
        engine.rebuild_offline()


def test_rebuild_offline_uses_cached_items(client: FakeClient) -> None:
    engine = SyncEngine(
        client,
        FakeDocumentStore(),
        FakeCodec(),
        FakeKeyValueStore(),
        load_cached=lambda: SAMPLE_ITEMS[:2],
    )

    engine.rebuild_offline()

    assert len(engine.tree) == 2
    assert client.calls == []


def test_refresh_hands_fetched_items_to_on_fetch(client: FakeClient) -> None:
    fetched: list[list] = []
    engine = SyncEngine(
        client, FakeDocumentStore(), FakeCodec(), FakeKeyValueStore(), on_fetch=fetched.append
    )

    engine.refresh()

    assert fetched == [SAMPLE_ITEMS]


# --- Pull ---


def test_pull_writes_changed_notes_and_skips_local_edits(
    engine: SyncEngine, client: FakeClient
) -> None:
    engine.documents.docs["WI-3 Search.md"] = "my edit\n"
    engine.on_document_modified("WI-3 Search.md")
    client.items[0] = make_item(1, "Platform", work_item_type="Epic", **{
        "System.Description": "new description",
    })

    stats = engine.pull()

    assert stats.notes_written == 1
    assert stats.notes_skipped == 1
    assert stats.notes_unchanged == 3
    assert engine.documents.docs["WI-1 Platform.md"] == "Platform\nnew description\n"
    assert engine.documents.docs["WI-3 Search.md"] == "my edit\n"
    assert engine.changes.notes == [3]


def test_pull_force_overwrites_local_edits(engine: SyncEngine) -> None:
    engine.documents.docs["WI-3 Search.md"] = "my edit\n"
    engine.on_document_modified("WI-3 Search.md")

    stats = engine.pull(force=True)

    assert stats.notes_skipped == 0
    assert engine.documents.docs["WI-3 Search.md"].startswith("Search\n")
    assert engine.changes.notes == []
    assert engine.store.get(PENDING_CHANGES_KEY)["changedNotes"] == []


def test_pull_item_rewrites_note_and_clears_drift(engine: SyncEngine) -> None:
    engine.documents.docs["WI-2 Login.md"] = "Login changed\n"
    engine.on_document_modified("WI-2 Login.md")

    assert engine.pull_item(2) is True

    assert engine.documents.docs["WI-2 Login.md"] == "Login\n\n"
    assert engine.changes.notes == []


def test_pull_item_unavailable_returns_false(
    engine: SyncEngine, client: FakeClient, notifier: FakeNotifier
) -> None:
    client.items = [i for i in client.items if i.id != 2]

    assert engine.pull_item(2) is False
    assert notifier.messages[-1] == "Could not fetch work item 2."


def test_drift_found_on_first_rebuild_is_persisted(
    client: FakeClient, documents: FakeDocumentStore, store: FakeKeyValueStore
) -> None:
    store.set(ORIGINAL_CONTENT_KEY, {"3": "Search\n"})
    documents.docs["WI-3 Search.md"] = "my edit\n"
    engine = SyncEngine(client, documents, FakeCodec(), store, clock=lambda: 1000)

    engine.refresh()

    assert store.get(PENDING_CHANGES_KEY) == {
        "changedNotes": [3],
        "changedRelationships": {},
        "lastSaved": 1000,
    }


def test_undecodable_note_does_not_abort_refresh(tmp_path: Path, client: FakeClient) -> None:
    (tmp_path / "WI-1 Platform.md").write_text("Platform\n")
    (tmp_path / "WI-2 Login.md").write_bytes(b"\xff\xfe bad")
    engine = SyncEngine(client, NoteStore(tmp_path), FakeCodec(), FakeKeyValueStore())

    engine.refresh()

    assert engine.tracker.originals[1] == "Platform\n"
    assert 2 not in engine.tracker.originals
    assert engine.on_document_modified("WI-2 Login.md") is False
    assert engine.pending_count == 0


def test_create_adds_item_under_parent_and_writes_note(
    engine: SyncEngine, client: FakeClient, notifier: FakeNotifier
) -> None:
    created = engine.create(NewWorkItem("Task", "Write docs"), parent_id=2)

    assert created is not None
    assert created.id == 6
    assert ("set_parent", (6, 2)) in client.calls
    assert engine.tree[6].parent_id == 2
    assert engine.baseline.parent_of(6) == 2
    assert engine.documents.docs["WI-6 Write docs.md"] == "Write docs\n\n"
    assert engine.on_document_modified("WI-6 Write docs.md") is False
    assert engine.pending_count == 0
    assert notifier.messages[-1] == "Created [6] Write docs."


def test_create_keeps_item_as_root_when_link_fails(
    engine: SyncEngine, client: FakeClient
) -> None:
    client.fail("set_parent", 6)

    engine.create(NewWorkItem("Task", "Write docs"), parent_id=2)

    assert engine.tree[6].is_root
    assert engine.baseline.parent_of(6) is None


def test_create_refused_by_remote(
    engine: SyncEngine, client: FakeClient, notifier: FakeNotifier
) -> None:
    client.fail("create_work_item", 0)

    assert engine.create(NewWorkItem("Task", "Write docs")) is None
    assert 6 not in engine.tree
    assert notifier.messages[-1] == "Could not create Task 'Write docs'."


def test_create_under_unknown_parent_sends_nothing(
    engine: SyncEngine, client: FakeClient
) -> None:
    with pytest.raises(WorkItemNotFound):
        engine.create(NewWorkItem("Task", "Write docs"), parent_id=42)

    assert not any(name == "create_work_item" for name, _args in client.calls)
