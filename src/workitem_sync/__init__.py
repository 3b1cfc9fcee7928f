"""Sync Azure DevOps work item hierarchies with local markdown notes.

Local moves and note edits are tracked as pending changes against a
baseline of the last fetch, persisted across restarts, and pushed back
one work item at a time.
"""

from workitem_sync.core.sync.engine import SyncEngine, SyncState
from workitem_sync.exceptions import (
    CycleRejected,
    LocalDocumentMissing,
    RemoteOperationFailed,
    RemoteTransportError,
    SyncInProgress,
    ValidationError,
    WorkItemNotFound,
    WorkItemSyncError,
)
from workitem_sync.models.node import WorkItemNode, WorkItemTree
from workitem_sync.models.work_item import FieldUpdates, NewWorkItem, PushResult, RemoteItem

__all__ = [
    "CycleRejected",
    "FieldUpdates",
    "LocalDocumentMissing",
    "NewWorkItem",
    "PushResult",
    "RemoteItem",
    "RemoteOperationFailed",
    "RemoteTransportError",
    "SyncEngine",
    "SyncInProgress",
    "SyncState",
    "ValidationError",
    "WorkItemNode",
    "WorkItemNotFound",
    "WorkItemSyncError",
    "WorkItemTree",
]
