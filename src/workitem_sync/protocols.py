"""Protocols for the collaborators of the sync engine."""

from typing import Any, Protocol, runtime_checkable

from workitem_sync.models.work_item import FieldUpdates, NewWorkItem, RemoteItem


@runtime_checkable
class WorkItemClientProtocol(Protocol):
    """Protocol for remote work item clients.

    Every operation is idempotent at the item level. Transport failures are
    raised as RemoteTransportError; status failures are reported as False.
    """

    def fetch_all_with_relations(self) -> list[RemoteItem]:
        """Return every work item of the project with its relations."""
        ...

    def get_work_item(self, work_item_id: int) -> RemoteItem | None:
        """Return a single work item with relations, or None if unavailable."""
        ...

    def set_parent(self, child_id: int, parent_id: int) -> bool:
        """Make ``parent_id`` the only parent of ``child_id``."""
        ...

    def clear_parents(self, child_id: int) -> bool:
        """Remove every parent relation of ``child_id``."""
        ...

    def update_fields(self, work_item_id: int, updates: FieldUpdates) -> bool:
        """Apply field updates to a work item."""
        ...

    def create_work_item(self, new: NewWorkItem) -> RemoteItem | None:
        """Create a work item; None if the remote store refused it."""
        ...


@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """Protocol for the store holding one note per work item."""

    def resource_ref(self, work_item_id: int, title: str) -> str:
        """Derive the note reference for a work item."""
        ...

    def read(self, ref: str) -> str:
        """Return the note text. Raises FileNotFoundError if missing."""
        ...

    def write(self, ref: str, text: str) -> None:
        """Create or replace a note."""
        ...

    def exists(self, ref: str) -> bool:
        """Check whether a note exists."""
        ...

    def find(self, work_item_id: int) -> str | None:
        """Locate an existing note by work item id, whatever its title."""
        ...

    def work_item_id(self, ref: str) -> int | None:
        """Return the work item id a note reference belongs to, if any."""
        ...


@runtime_checkable
class ContentCodecProtocol(Protocol):
    """Protocol for the note content codec."""

    def normalize(self, text: str) -> str:
        """Strip volatile markers so that notes can be compared."""
        ...

    def extract_field_updates(self, text: str) -> FieldUpdates:
        """Extract remote field updates from a note."""
        ...

    def render_note(self, item: RemoteItem, *, related: dict[int, str] | None = None) -> str:
        """Render a remote work item as a note."""
        ...

    def stamp_pushed(self, text: str) -> str:
        """Mark a note as pushed now."""
        ...


@runtime_checkable
class KeyValueStoreProtocol(Protocol):
    """Protocol for durable JSON key-value storage."""

    def get(self, key: str) -> Any | None:
        """Return the stored value, or None if the key is absent."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value, replacing any prior value."""
        ...


@runtime_checkable
class NotifierProtocol(Protocol):
    """Protocol for fire-and-forget user notifications."""

    def notify(self, message: str) -> None:
        """Show a status message to the user."""
        ...
