"""Tests for domain models."""

import pytest

from workitem_sync.exceptions import ValidationError
from workitem_sync.models.work_item import (
    FieldUpdates,
    NewWorkItem,
    PendingChangeSnapshot,
    PushResult,
    RemoteItem,
)


def test_remote_item_is_frozen() -> None:
    item = RemoteItem(id=1, fields={})
    with pytest.raises(AttributeError):
        item.id = 2  # type: ignore[misc]


def test_field_updates_presence() -> None:
    assert FieldUpdates().is_empty()
    assert FieldUpdates(tags="").present() == ["tags"]
    assert FieldUpdates(priority=0, custom_fields={"Custom.X": 1}).present() == [
        "priority",
        "custom_fields",
    ]


def test_snapshot_from_dict_converts_keys_to_int() -> None:
    snapshot = PendingChangeSnapshot.from_dict(
        {"changedNotes": [3], "changedRelationships": {"2": "7", "4": None}, "lastSaved": 5}
    )

    assert snapshot.changed_relationships == {2: 7, 4: None}
    assert snapshot.changed_notes == (3,)
    assert snapshot.last_saved == 5


@pytest.mark.parametrize(
    ("result", "summary"),
    [
        (PushResult(nothing_to_push=True), "No changes to push."),
        (PushResult(succeeded=3), "Successfully pushed all changes (3)."),
        (PushResult(succeeded=1, failed=2), "Pushed 1 changes, 2 failed."),
    ],
)
def test_push_result_summary(result: PushResult, summary: str) -> None:
    assert result.summary() == summary


def test_push_result_ok() -> None:
    assert PushResult(succeeded=1).ok
    assert not PushResult(succeeded=1, failed=1).ok


def test_new_work_item_validation() -> None:
    NewWorkItem("Task", "Write docs").validate()

    with pytest.raises(ValidationError) as exc_info:
        NewWorkItem(" ", "x" * 256, description="d" * 32001).validate()

    assert exc_info.value.errors == [
        "work item type is required",
        "title must be 255 characters or less",
        "description must be 32,000 characters or less",
    ]
