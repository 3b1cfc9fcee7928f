"""Baseline: each node's parent as of the last sync."""

from loguru import logger

from workitem_sync.core.sync.changes import ChangeSet
from workitem_sync.models.node import WorkItemTree


class Baseline:
    """Mapping of node id to the parent id the remote store is known to hold."""

    def __init__(self) -> None:
        self._parents: dict[int, int | None] = {}

    def __len__(self) -> int:
        return len(self._parents)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._parents

    def parent_of(self, node_id: int) -> int | None:
        return self._parents.get(node_id)

    def differs(self, node_id: int, parent_id: int | None) -> bool:
        """Check whether ``parent_id`` differs from the recorded parent.

        A node missing from the baseline differs from any parent.
        """
        if node_id not in self._parents:
            return True
        return self._parents[node_id] != parent_id

    def snapshot(self, tree: WorkItemTree, changes: ChangeSet) -> None:
        """Record the current parent of every node and drop relationship deltas."""
        self._parents.clear()
        changes.relationships.clear()
        for node, _depth in tree.walk():
            self._parents[node.id] = node.parent_id
        logger.debug("Baseline snapshot of {} nodes", len(self._parents))

    def adopt(self, node_id: int, parent_id: int | None) -> None:
        """Record a parent the remote store now holds for a single node."""
        self._parents[node_id] = parent_id
