"""Errors raised by the sync engine and its collaborators."""


class WorkItemSyncError(Exception):
    """Base class for all workitem-sync errors."""


class ValidationError(WorkItemSyncError):
    """Raised when the remote connection is not configured.

    Raised before any request is made, so no state has been mutated.
    """

    errors: list[str]

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Invalid settings: " + "; ".join(errors))


class CycleRejected(WorkItemSyncError):
    """Raised when a reparent would make a node its own ancestor."""

    def __init__(self, child_id: int, parent_id: int) -> None:
        self.child_id = child_id
        self.parent_id = parent_id
        super().__init__(f"Cannot move {child_id} under {parent_id}: would create a cycle")


class WorkItemNotFound(WorkItemSyncError, KeyError):
    """Raised when a work item id is not part of the current tree."""

    def __init__(self, work_item_id: int) -> None:
        self.work_item_id = work_item_id
        super().__init__(f"Work item {work_item_id} not found")

    def __str__(self) -> str:
        return str(self.args[0])


class RemoteOperationFailed(WorkItemSyncError):
    """Raised when the remote store answers with a non-success status."""

    def __init__(self, operation: str, status: int, detail: str = "") -> None:
        self.operation = operation
        self.status = status
        super().__init__(f"{operation} failed: HTTP {status} {detail[:200]}".rstrip())


class RemoteTransportError(WorkItemSyncError):
    """Raised when a remote call fails below the HTTP status level."""


class LocalDocumentMissing(WorkItemSyncError):
    """Raised when a node's backing note cannot be found."""

    def __init__(self, work_item_id: int) -> None:
        self.work_item_id = work_item_id
        super().__init__(f"No local note found for work item {work_item_id}")


class SyncInProgress(WorkItemSyncError):
    """Raised when the tree is rebuilt while a push is running."""
