"""Push pending changes to the remote store with per-item accounting."""

from loguru import logger

from workitem_sync.core.sync.changes import ChangeSet
from workitem_sync.core.sync.pending import PendingChangeStore
from workitem_sync.core.sync.tracker import ChangeTracker
from workitem_sync.exceptions import LocalDocumentMissing, RemoteTransportError
from workitem_sync.models.work_item import PushResult
from workitem_sync.protocols import WorkItemClientProtocol


class SyncExecutor:
    """Send relationship deltas, then content deltas, one item at a time.

    Entries that succeed are removed from the delta sets; failures stay
    pending. Per-item errors never escape: the returned PushResult is the
    only signal.
    """

    def __init__(
        self,
        client: WorkItemClientProtocol,
        tracker: ChangeTracker,
        pending: PendingChangeStore,
    ) -> None:
        self.client = client
        self.tracker = tracker
        self.pending = pending

    @property
    def changes(self) -> ChangeSet:
        return self.tracker.changes

    def push(self) -> PushResult:
        """Push every pending change.

        On zero failures the baseline is re-snapshotted from the current tree
        and the pending store is cleared; otherwise the remaining deltas are
        persisted for a later retry.
        """
        if not self.changes:
            logger.info("No changes to push")
            return PushResult(nothing_to_push=True)

        succeeded = 0
        failed = 0

        for child_id, parent_id in list(self.changes.relationships.items()):
            if self._push_relationship(child_id, parent_id):
                self.changes.relationships.pop(child_id, None)
                succeeded += 1
            else:
                failed += 1

        for node_id in self.changes.notes:
            if self._push_content(node_id):
                succeeded += 1
            else:
                failed += 1

        if failed == 0:
            self.tracker.baseline.snapshot(self.tracker.tree, self.changes)
            self.pending.clear()
        else:
            self.pending.persist()

        logger.info("Push finished: {} succeeded, {} failed", succeeded, failed)
        return PushResult(succeeded=succeeded, failed=failed)

    def push_item(self, node_id: int) -> PushResult:
        """Push the pending changes of a single node.

        Content is pushed even when no content change is pending, as long as
        the node has no pending relationship change either.

        Raises:
            WorkItemNotFound: ``node_id`` is not in the tree.
        """
        node = self.tracker.tree[node_id]
        succeeded = 0
        failed = 0
        operations = 0

        if node.id in self.changes.relationships:
            operations += 1
            parent_id = self.changes.relationships[node.id]
            if self._push_relationship(node.id, parent_id):
                self.changes.relationships.pop(node.id, None)
                self.tracker.baseline.adopt(node.id, parent_id)
                succeeded += 1
            else:
                failed += 1

        if self.changes.has_note(node.id) or operations == 0:
            if self._push_content(node.id):
                succeeded += 1
            else:
                failed += 1

        self.pending.persist()
        logger.info("Push of {} finished: {} succeeded, {} failed", node.id, succeeded, failed)
        return PushResult(succeeded=succeeded, failed=failed)

    def _push_relationship(self, child_id: int, parent_id: int | None) -> bool:
        try:
            if parent_id is None:
                if not self.client.clear_parents(child_id):
                    logger.warning("Clearing parents of {} reported failure", child_id)
                return True
            if self.client.set_parent(child_id, parent_id):
                return True
        except RemoteTransportError:
            logger.exception("Transport error updating the parent of work item {}", child_id)
            return False
        except Exception:
            logger.exception("Unexpected error updating the parent of work item {}", child_id)
            return False
        logger.warning("Remote store refused parent {} for work item {}", parent_id, child_id)
        return False

    def _push_content(self, node_id: int) -> bool:
        try:
            node = self.tracker.tree.get(node_id)
            if node is None:
                raise LocalDocumentMissing(node_id)
            ref, text = self.tracker.read_note(node)
            updates = self.tracker.codec.extract_field_updates(text)
            if updates.is_empty():
                logger.warning("Note of work item {} has no fields to push", node_id)
                return False
            if not self.client.update_fields(node_id, updates):
                logger.warning("Remote store refused field updates for work item {}", node_id)
                return False
            stamped = self.tracker.codec.stamp_pushed(text)
            self.tracker.documents.write(ref, stamped)
        except LocalDocumentMissing as e:
            logger.warning("{}", e)
            return False
        except RemoteTransportError:
            logger.exception("Transport error pushing content of work item {}", node_id)
            return False
        except Exception:
            # Unreadable front matter and local write errors fail this item only.
            logger.exception("Could not push content of work item {}", node_id)
            return False

        self.tracker.accept_content(node_id, stamped)
        return True
