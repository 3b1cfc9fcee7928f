"""In-memory delta sets of unpushed local changes."""

from collections.abc import Iterable


class ChangeSet:
    """Relationship and content deltas.

    ``relationships`` maps child id to its new parent id (None for root) and
    holds only ids whose current parent differs from the baseline parent.
    Content ids are kept in insertion order so pushes are deterministic.
    """

    def __init__(self) -> None:
        self.relationships: dict[int, int | None] = {}
        self._notes: dict[int, None] = {}

    def __len__(self) -> int:
        return len(self.relationships) + len(self._notes)

    def __bool__(self) -> bool:
        return len(self) > 0

    def __repr__(self) -> str:
        return f"ChangeSet(relationships={self.relationships!r}, notes={self.notes!r})"

    @property
    def notes(self) -> list[int]:
        return list(self._notes)

    def has_note(self, node_id: int) -> bool:
        return node_id in self._notes

    def add_note(self, node_id: int) -> None:
        self._notes.setdefault(node_id, None)

    def discard_note(self, node_id: int) -> None:
        self._notes.pop(node_id, None)

    def merge(self, notes: Iterable[int], relationships: dict[int, int | None]) -> None:
        for node_id in notes:
            self.add_note(node_id)
        self.relationships.update(relationships)

    def pending_kind(self, node_id: int) -> str | None:
        """Return ``"REL"``, ``"CONTENT"``, ``"REL + CONTENT"`` or None."""
        rel = node_id in self.relationships
        content = node_id in self._notes
        if rel and content:
            return "REL + CONTENT"
        if rel:
            return "REL"
        if content:
            return "CONTENT"
        return None

    def clear(self) -> None:
        self.relationships.clear()
        self._notes.clear()
