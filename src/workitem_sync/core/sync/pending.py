"""Durable storage of unpushed changes across restarts."""

import time
from collections.abc import Callable

from loguru import logger

from workitem_sync.config import PENDING_CHANGES_KEY
from workitem_sync.core.sync.changes import ChangeSet
from workitem_sync.models.work_item import PendingChangeSnapshot
from workitem_sync.protocols import KeyValueStoreProtocol


def now_ms() -> int:
    return int(time.time() * 1000)


class PendingChangeStore:
    """Serialize a ChangeSet to a single key of a durable key-value store."""

    def __init__(
        self,
        store: KeyValueStoreProtocol,
        changes: ChangeSet,
        *,
        key: str = PENDING_CHANGES_KEY,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.changes = changes
        self.key = key
        self.clock = clock

    def snapshot(self) -> PendingChangeSnapshot:
        return PendingChangeSnapshot(
            changed_notes=tuple(self.changes.notes),
            changed_relationships=dict(self.changes.relationships),
            last_saved=self.clock(),
        )

    def persist(self) -> None:
        """Write the current deltas, replacing any prior snapshot."""
        snapshot = self.snapshot()
        self.store.set(self.key, snapshot.to_dict())
        logger.debug(
            "Saved pending changes: {} relationships, {} notes",
            len(snapshot.changed_relationships),
            len(snapshot.changed_notes),
        )

    def load(self) -> PendingChangeSnapshot | None:
        """Read the stored snapshot; None if absent or never saved."""
        data = self.store.get(self.key)
        if not data:
            return None
        snapshot = PendingChangeSnapshot.from_dict(data)
        if snapshot.last_saved <= 0:
            return None
        return snapshot

    def restore(self) -> PendingChangeSnapshot | None:
        """Merge the stored snapshot into the in-memory deltas.

        Returns:
            The merged snapshot, or None if there was nothing to restore.
        """
        snapshot = self.load()
        if snapshot is None:
            return None
        self.changes.merge(snapshot.changed_notes, snapshot.changed_relationships)
        logger.debug(
            "Restored pending changes saved at {}: {} relationships, {} notes",
            snapshot.last_saved,
            len(snapshot.changed_relationships),
            len(snapshot.changed_notes),
        )
        return snapshot

    def clear(self) -> None:
        """Empty the deltas and store an empty snapshot with timestamp 0."""
        self.changes.clear()
        self.store.set(self.key, PendingChangeSnapshot().to_dict())
        logger.debug("Cleared pending changes")
