"""SyncEngine: the single owner of tree, baseline and pending change state."""

import enum
from collections.abc import Callable

from loguru import logger

from workitem_sync.config import ORIGINAL_CONTENT_KEY
from workitem_sync.core.pull import pull_work_items
from workitem_sync.core.sync.baseline import Baseline
from workitem_sync.core.sync.changes import ChangeSet
from workitem_sync.core.sync.executor import SyncExecutor
from workitem_sync.core.sync.pending import PendingChangeStore, now_ms
from workitem_sync.core.sync.tracker import ChangeTracker
from workitem_sync.core.tree.builder import build_tree, make_node, sort_nodes
from workitem_sync.exceptions import CycleRejected, SyncInProgress, WorkItemSyncError
from workitem_sync.models.node import WorkItemTree
from workitem_sync.models.work_item import NewWorkItem, PullStats, PushResult, RemoteItem
from workitem_sync.protocols import (
    ContentCodecProtocol,
    DocumentStoreProtocol,
    KeyValueStoreProtocol,
    NotifierProtocol,
    WorkItemClientProtocol,
)


class SyncState(enum.Enum):
    IDLE = "idle"
    PUSHING = "pushing"


class SyncEngine:
    """Mirror remote work items into a local tree and push local changes back.

    Typical lifecycle::

        engine.refresh()             # fetch, build, snapshot baseline, restore
        engine.reparent(12, 7)       # local mutation, persisted immediately
        result = engine.push()       # reconcile with the remote store
    """

    def __init__(
        self,
        client: WorkItemClientProtocol,
        documents: DocumentStoreProtocol,
        codec: ContentCodecProtocol,
        store: KeyValueStoreProtocol,
        *,
        notifier: NotifierProtocol | None = None,
        clock: Callable[[], int] = now_ms,
        on_fetch: Callable[[list[RemoteItem]], None] | None = None,
        load_cached: Callable[[], list[RemoteItem]] | None = None,
    ) -> None:
        self.client = client
        self.documents = documents
        self.codec = codec
        self.notifier = notifier
        self.store = store
        self.on_fetch = on_fetch
        self.load_cached = load_cached
        self.state = SyncState.IDLE

        self.baseline = Baseline()
        self.changes = ChangeSet()
        self.pending = PendingChangeStore(store, self.changes, clock=clock)
        self.tracker = ChangeTracker(
            self.baseline, self.changes, documents, codec, on_change=self.pending.persist
        )
        self.executor = SyncExecutor(client, self.tracker, self.pending)

    def _load_originals(self) -> dict[int, str | None]:
        data = self.store.get(ORIGINAL_CONTENT_KEY) or {}
        return {int(node_id): text for node_id, text in data.items()}

    def _save_originals(self) -> None:
        self.store.set(
            ORIGINAL_CONTENT_KEY,
            {
                str(node_id): text
                for node_id, text in self.tracker.originals.items()
                if text is not None
            },
        )

    @property
    def tree(self) -> WorkItemTree:
        return self.tracker.tree

    @property
    def pending_count(self) -> int:
        return len(self.changes)

    def has_pending(self, node_id: int) -> bool:
        return self.changes.pending_kind(node_id) is not None

    def pending_label(self, node_id: int) -> str | None:
        return self.changes.pending_kind(node_id)

    def _notify(self, message: str) -> None:
        if self.notifier is not None:
            self.notifier.notify(message)

    def _pending_suffix(self) -> str:
        n = self.pending_count
        return f"{n} change{'s' if n != 1 else ''} pending."

    # --- Rebuild ---

    def refresh(self) -> WorkItemTree:
        """Fetch every work item from the remote store and rebuild."""
        self._require_idle()
        return self.rebuild(self._fetch())

    def _fetch(self) -> list[RemoteItem]:
        items = self.client.fetch_all_with_relations()
        if self.on_fetch is not None:
            self.on_fetch(items)
        return items

    def rebuild_offline(self) -> WorkItemTree:
        """Rebuild from the work items cached by the last fetch."""
        if self.load_cached is None:
            msg = "No work item cache configured"
            raise WorkItemSyncError(msg)
        items = self.load_cached()
        logger.debug("Loaded {} cached work items", len(items))
        return self.rebuild(items)

    def rebuild(self, items: list[RemoteItem]) -> WorkItemTree:
        """Replace the tree with one built from ``items`` and restore pending changes.

        Order: build, baseline snapshot, capture original notes (keeping the
        originals of nodes that survive), detect note drift, then merge the
        persisted snapshot and drop entries that no longer apply.

        Raises:
            SyncInProgress: A push is running.
        """
        self._require_idle()
        preserved = self._load_originals()
        preserved.update(
            (node_id, text) for node_id, text in self.tracker.originals.items() if text is not None
        )
        self.tracker.tree = build_tree(items, resource_ref=self.documents.resource_ref)
        self.changes.clear()
        self.baseline.snapshot(self.tree, self.changes)
        self.tracker.capture_original_content(preserved)
        self.tracker.detect_all_content_drift()
        self._restore()
        # Detected drift is saved and dropped restored entries do not come back.
        self.pending.persist()
        self._save_originals()
        logger.info(
            "Tree rebuilt: {} work items, {} roots, {} pending changes",
            len(self.tree),
            len(self.tree.roots),
            self.pending_count,
        )
        return self.tree

    def _restore(self) -> None:
        snapshot = self.pending.load()
        if snapshot is None:
            return

        for node_id in snapshot.changed_notes:
            if node_id not in self.tree:
                logger.warning("Dropping pending note change for missing work item {}", node_id)
                continue
            if not self.changes.has_note(node_id):
                # The original this change was measured against is gone.
                self.tracker.originals[node_id] = None
            self.changes.add_note(node_id)

        for child_id, parent_id in snapshot.changed_relationships.items():
            self._restore_relationship(child_id, parent_id)

    def _restore_relationship(self, child_id: int, parent_id: int | None) -> None:
        child = self.tree.get(child_id)
        if child is None:
            logger.warning("Dropping pending move of missing work item {}", child_id)
            return
        parent = None
        if parent_id is not None:
            parent = self.tree.get(parent_id)
            if parent is None:
                logger.warning(
                    "Dropping pending move of {} under missing work item {}", child_id, parent_id
                )
                return
        if not self.baseline.differs(child_id, parent_id):
            logger.debug("Pending move of {} already applied remotely", child_id)
            return
        try:
            self.tracker.move(child, parent)
        except CycleRejected:
            logger.warning("Dropping pending move of {} under {}: cycle", child_id, parent_id)
            return
        self.changes.relationships[child_id] = parent_id

    # --- Mutations ---

    def reparent(self, child_id: int, parent_id: int) -> None:
        """Move a work item under another one.

        Raises:
            WorkItemNotFound: Either id is unknown.
            CycleRejected: The move would create a cycle.
        """
        child = self.tree[child_id]
        parent = self.tree[parent_id]
        self.tracker.reparent(child, parent)
        self._notify(
            f"Moved [{child.id}] {child.title} under [{parent.id}] {parent.title}. "
            + self._pending_suffix()
        )

    def promote_to_root(self, node_id: int) -> None:
        """Make a work item a root item."""
        node = self.tree[node_id]
        self.tracker.promote_to_root(node)
        self._notify(f"Made [{node.id}] {node.title} a root item. " + self._pending_suffix())

    def on_document_modified(self, ref: str) -> bool | None:
        """Re-check drift for the note behind ``ref``.

        Returns:
            Whether the note's work item now has a pending content change, or
            None if the note does not belong to a node in the tree.
        """
        node_id = self.documents.work_item_id(ref)
        node = self.tree.get(node_id) if node_id is not None else None
        if node is None:
            return None
        return self.tracker.detect_content_drift(node)

    def create(self, new: NewWorkItem, *, parent_id: int | None = None) -> RemoteItem | None:
        """Create a work item remotely, add it to the tree and write its note.

        Returns:
            The created item, or None if the remote store refused it.

        Raises:
            ValidationError: ``new`` lacks a type or title.
            WorkItemNotFound: ``parent_id`` is not in the tree.
        """
        self._require_idle()
        new.validate()
        parent = self.tree[parent_id] if parent_id is not None else None
        created = self.client.create_work_item(new)
        if created is None:
            self._notify(f"Could not create {new.work_item_type} {new.title!r}.")
            return None

        if parent is not None and not self.client.set_parent(created.id, parent.id):
            logger.warning(
                "Created work item {} but could not link it to {}", created.id, parent.id
            )
            parent = None
        if parent is not None:
            created = self.client.get_work_item(created.id) or created

        node = make_node(created)
        node.resource_ref = self.documents.resource_ref(node.id, node.title)
        self.tree.all_nodes[node.id] = node
        self.tree.attach(node, parent)
        sort_nodes(self.tree.siblings_list(node), recursive=False)
        self.baseline.adopt(node.id, node.parent_id)

        related = {n.id: n.title for n in self.tree.all_nodes.values()}
        text = self.codec.render_note(created, related=related)
        self.documents.write(node.resource_ref, text)
        self.tracker.accept_content(node.id, text)
        self._save_originals()
        self._notify(f"Created [{node.id}] {node.title}.")
        return created

    # --- Push / pull ---

    def push(self) -> PushResult:
        """Push all pending changes and report aggregate counts.

        Raises:
            SyncInProgress: Another push is running.
        """
        return self._run_push(self.executor.push)

    def push_item(self, node_id: int) -> PushResult:
        """Push the pending changes of a single work item."""
        return self._run_push(lambda: self.executor.push_item(node_id))

    def _run_push(self, run: Callable[[], PushResult]) -> PushResult:
        self._require_idle()
        n = self.pending_count
        if n:
            self._notify(f"Pushing {n} change{'s' if n != 1 else ''}...")
        self.state = SyncState.PUSHING
        try:
            result = run()
        finally:
            self.state = SyncState.IDLE
        self._save_originals()
        self._notify(result.summary())
        return result

    def pull(self, *, force: bool = False) -> PullStats:
        """Fetch every work item, rebuild, and write the notes that changed remotely.

        Notes with unpushed content changes are skipped unless ``force`` is
        set. Pulled notes become the new originals.
        """
        self._require_idle()
        items = self._fetch()
        self.rebuild(items)
        stats = pull_work_items(
            items,
            self.documents,
            self.codec,
            skip_ids=set(self.changes.notes),
            force=force,
            on_pulled=self.tracker.accept_content,
        )
        self.pending.persist()
        self._save_originals()
        self._notify(
            f"Pulled {len(items)} work items: {stats.notes_written} written, "
            f"{stats.notes_skipped} skipped."
        )
        return stats

    def pull_item(self, node_id: int) -> bool:
        """Re-fetch one work item, rewrite its note and accept it as original.

        Returns:
            True if the item was fetched and its note written.
        """
        self._require_idle()
        node = self.tree[node_id]
        item = self.client.get_work_item(node_id)
        if item is None:
            self._notify(f"Could not fetch work item {node_id}.")
            return False
        related = {n.id: n.title for n in self.tree.all_nodes.values()}
        text = self.codec.render_note(item, related=related)
        ref = self.tracker.note_ref(node) or self.documents.resource_ref(node.id, node.title)
        self.documents.write(ref, text)
        self.tracker.accept_content(node_id, text)
        self.pending.persist()
        self._save_originals()
        self._notify(f"Pulled work item {node_id}.")
        return True

    def _require_idle(self) -> None:
        if self.state is not SyncState.IDLE:
            msg = "A push is in progress; try again when it has finished"
            raise SyncInProgress(msg)
