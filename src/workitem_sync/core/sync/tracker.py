"""Track local drift from the baseline: structural moves and note edits."""

from collections.abc import Callable

from loguru import logger

from workitem_sync.core.sync.baseline import Baseline
from workitem_sync.core.sync.changes import ChangeSet
from workitem_sync.core.tree.builder import sort_nodes
from workitem_sync.core.tree.navigation import is_ancestor
from workitem_sync.exceptions import CycleRejected, LocalDocumentMissing
from workitem_sync.models.node import WorkItemNode, WorkItemTree
from workitem_sync.protocols import ContentCodecProtocol, DocumentStoreProtocol


class ChangeTracker:
    """Apply local mutations to the tree and keep the delta sets exact.

    After every mutation a relationship delta exists for a node if and only if
    its current parent differs from its baseline parent, and a content delta
    exists if its note differs from the remembered original after
    normalization. ``on_change`` is called after each tracked mutation.
    """

    def __init__(
        self,
        baseline: Baseline,
        changes: ChangeSet,
        documents: DocumentStoreProtocol,
        codec: ContentCodecProtocol,
        *,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.tree = WorkItemTree()
        self.baseline = baseline
        self.changes = changes
        self.documents = documents
        self.codec = codec
        self.on_change = on_change
        # Note text as of the last sync. None means unknown: drift detection
        # leaves the node's content delta alone.
        self.originals: dict[int, str | None] = {}

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    # --- Structure ---

    def check_move(self, child: WorkItemNode, new_parent: WorkItemNode) -> None:
        """Raise CycleRejected if ``child`` cannot be moved under ``new_parent``."""
        if new_parent.id == child.id or is_ancestor(self.tree, child, new_parent):
            raise CycleRejected(child.id, new_parent.id)

    def move(self, child: WorkItemNode, new_parent: WorkItemNode | None) -> None:
        """Move a node in the tree without touching the delta sets."""
        if new_parent is not None:
            self.check_move(child, new_parent)
        self.tree.detach(child)
        self.tree.attach(child, new_parent)
        sort_nodes(self.tree.siblings_list(child), recursive=False)

    def reparent(self, child: WorkItemNode, new_parent: WorkItemNode) -> None:
        """Move ``child`` under ``new_parent`` and record the relationship delta.

        Raises:
            CycleRejected: ``new_parent`` is ``child`` or one of its descendants.
                Nothing is changed in that case.
        """
        self.move(child, new_parent)
        self._record_relationship(child.id, new_parent.id)
        logger.info(
            "Moved [{}] {} under [{}] {}", child.id, child.title, new_parent.id, new_parent.title
        )
        self._changed()

    def promote_to_root(self, node: WorkItemNode) -> None:
        """Make ``node`` a root and record the relationship delta."""
        self.move(node, None)
        self._record_relationship(node.id, None)
        logger.info("Made [{}] {} a root item", node.id, node.title)
        self._changed()

    def _record_relationship(self, node_id: int, parent_id: int | None) -> None:
        if self.baseline.differs(node_id, parent_id):
            self.changes.relationships[node_id] = parent_id
        else:
            # The move reverted an earlier pending move.
            self.changes.relationships.pop(node_id, None)

    # --- Content ---

    def note_ref(self, node: WorkItemNode) -> str | None:
        """Return the reference of the node's existing note, if any."""
        if node.resource_ref and self.documents.exists(node.resource_ref):
            return node.resource_ref
        return self.documents.find(node.id)

    def read_note(self, node: WorkItemNode) -> tuple[str, str]:
        """Return (ref, text) of the node's note.

        Raises:
            LocalDocumentMissing: The node has no note, or it cannot be read.
        """
        ref = self.note_ref(node)
        if ref is None:
            raise LocalDocumentMissing(node.id)
        try:
            return ref, self.documents.read(ref)
        except FileNotFoundError:
            raise LocalDocumentMissing(node.id) from None
        except (UnicodeDecodeError, OSError) as e:
            logger.warning("Cannot read note {!r} of work item {}: {}", ref, node.id, e)
            raise LocalDocumentMissing(node.id) from e

    def capture_original_content(self, preserved: dict[int, str | None] | None = None) -> None:
        """Remember the current note text of every node as its original.

        Originals in ``preserved`` win for nodes that still exist, so drift
        detected before a rebuild survives it.
        """
        preserved = preserved or {}
        self.originals = {}
        for node, _depth in self.tree.walk():
            if node.id in preserved:
                self.originals[node.id] = preserved[node.id]
                continue
            try:
                _ref, text = self.read_note(node)
            except LocalDocumentMissing:
                continue
            self.originals[node.id] = text

    def has_drifted(self, node: WorkItemNode) -> bool | None:
        """Compare the node's note to its original; None when undecidable."""
        original = self.originals.get(node.id)
        if original is None:
            return None
        try:
            _ref, current = self.read_note(node)
        except LocalDocumentMissing:
            return None
        return self.codec.normalize(original) != self.codec.normalize(current)

    def detect_content_drift(self, node: WorkItemNode, *, notify: bool = True) -> bool:
        """Update the content delta for ``node``; return whether it is pending."""
        drifted = self.has_drifted(node)
        if drifted is True:
            self.changes.add_note(node.id)
        elif drifted is False:
            self.changes.discard_note(node.id)
        if notify:
            self._changed()
        return self.changes.has_note(node.id)

    def detect_all_content_drift(self) -> int:
        """Run drift detection over every node; return the content delta count."""
        for node, _depth in self.tree.walk():
            self.detect_content_drift(node, notify=False)
        logger.debug("Content drift detected in {} notes", len(self.changes.notes))
        return len(self.changes.notes)

    def accept_content(self, node_id: int, text: str) -> None:
        """Adopt ``text`` as the node's original note and drop its content delta."""
        self.originals[node_id] = text
        self.changes.discard_note(node_id)
