"""Domain models exchanged with the remote work item store."""

from dataclasses import dataclass, field
from typing import Any

from workitem_sync.exceptions import ValidationError

MAX_TITLE_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 32000


@dataclass(frozen=True)
class Relation:
    """A typed link from one work item to another resource."""

    rel: str
    url: str
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RemoteItem:
    """A work item as returned by the remote store."""

    id: int
    fields: dict[str, Any]
    relations: tuple[Relation, ...] = ()

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fields": self.fields,
            "relations": [
                {"rel": r.rel, "url": r.url, "attributes": r.attributes} for r in self.relations
            ],
        }


@dataclass(frozen=True)
class FieldUpdates:
    """Field changes extracted from a note.

    A field set to None is absent and is not sent. A present empty string is
    meaningful: for tags and custom fields it clears the remote value.
    """

    title: str | None = None
    description: str | None = None
    state: str | None = None
    assigned_to: str | None = None
    priority: int | None = None
    tags: str | None = None
    custom_fields: dict[str, Any] = field(default_factory=dict)

    def present(self) -> list[str]:
        """Names of the fields that carry a value."""
        names = [
            name
            for name in ("title", "description", "state", "assigned_to", "priority", "tags")
            if getattr(self, name) is not None
        ]
        if self.custom_fields:
            names.append("custom_fields")
        return names

    def is_empty(self) -> bool:
        return not self.present()


@dataclass(frozen=True)
class NewWorkItem:
    """Fields of a work item to create. Empty values are not sent."""

    work_item_type: str
    title: str
    description: str = ""
    state: str = ""
    assigned_to: str = ""
    priority: int | None = None
    tags: str = ""
    area_path: str = ""
    iteration_path: str = ""
    custom_fields: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Raise ValidationError if a required field is missing or too long."""
        errors = []
        if not self.title.strip():
            errors.append("title is required")
        if not self.work_item_type.strip():
            errors.append("work item type is required")
        if len(self.title) > MAX_TITLE_LENGTH:
            errors.append(f"title must be {MAX_TITLE_LENGTH} characters or less")
        if len(self.description) > MAX_DESCRIPTION_LENGTH:
            errors.append(f"description must be {MAX_DESCRIPTION_LENGTH:,} characters or less")
        if errors:
            raise ValidationError(errors)


@dataclass(frozen=True)
class PendingChangeSnapshot:
    """Durable record of unpushed local changes.

    Serialized as ``{changedNotes, changedRelationships, lastSaved}``; JSON
    object keys are strings, so relationship keys are converted back to int
    on load.
    """

    changed_notes: tuple[int, ...] = ()
    changed_relationships: dict[int, int | None] = field(default_factory=dict)
    last_saved: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "changedNotes": list(self.changed_notes),
            "changedRelationships": {
                str(child): parent for child, parent in self.changed_relationships.items()
            },
            "lastSaved": self.last_saved,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingChangeSnapshot":
        relationships = data.get("changedRelationships") or {}
        return cls(
            changed_notes=tuple(int(x) for x in data.get("changedNotes") or []),
            changed_relationships={
                int(child): None if parent is None else int(parent)
                for child, parent in relationships.items()
            },
            last_saved=int(data.get("lastSaved") or 0),
        )


@dataclass(frozen=True)
class PushResult:
    """Aggregate outcome of a push."""

    succeeded: int = 0
    failed: int = 0
    nothing_to_push: bool = False

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        if self.nothing_to_push:
            return "No changes to push."
        if self.failed == 0:
            return f"Successfully pushed all changes ({self.succeeded})."
        return f"Pushed {self.succeeded} changes, {self.failed} failed."


@dataclass(frozen=True)
class PullStats:
    """Summary of a pull operation."""

    notes_written: int
    notes_unchanged: int
    notes_skipped: int
