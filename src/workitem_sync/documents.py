"""Note store: one markdown file per work item in a notes directory."""

import os
import re
from pathlib import Path

from loguru import logger

_INVALID_CHARS = re.compile(r'[<>:"/\\|?*]')
_NOTE_ID = re.compile(r"^WI-(\d+)\b")


def sanitize_file_name(title: str) -> str:
    """Make a title safe for use in a file name."""
    if not title:
        return "Untitled"
    safe = _INVALID_CHARS.sub("-", title)
    safe = re.sub(r"\s+", " ", safe).strip()
    return safe[:100] or "Untitled"


class NoteStore:
    """Read and write work item notes.

    - References are file names relative to the notes directory,
      ``WI-<id> <title>.md``.
    - Do not rewrite files whose contents are the same.
    - Refuse paths that escape the notes directory.
    """

    def __init__(self, notes_dir: str | Path) -> None:
        self.notes_dir = str(Path(notes_dir).expanduser().resolve())
        logger.debug("Note store ready, notes_dir {!r}", self.notes_dir)

    def is_possible_note(self, fname: str) -> bool:
        return fname.endswith(".md")

    def resource_ref(self, work_item_id: int, title: str) -> str:
        return f"WI-{work_item_id} {sanitize_file_name(title)}.md"

    def work_item_id(self, ref: str) -> int | None:
        match = _NOTE_ID.match(Path(ref).name)
        return int(match.group(1)) if match else None

    def _path(self, ref: str) -> Path:
        if Path(ref).is_absolute():
            msg = f"must be relative: {ref!r}"
            raise ValueError(msg)
        fname = os.path.normpath(Path(self.notes_dir) / ref)
        if not fname.startswith(self.notes_dir + "/"):
            msg = f"Path escapes notes dir: {fname!r}"
            raise ValueError(msg)
        if not self.is_possible_note(fname):
            msg = f"Not a note file: {fname!r}"
            raise ValueError(msg)
        return Path(fname)

    def exists(self, ref: str) -> bool:
        return self._path(ref).is_file()

    def read(self, ref: str) -> str:
        return self._path(ref).read_text(encoding="utf-8")

    def write(self, ref: str, text: str) -> None:
        """Write a note, skipping the write if the contents are unchanged."""
        path = self._path(ref)
        action = "create"
        try:
            if path.read_text(encoding="utf-8") == text:
                return
            action = "update"
        except (FileNotFoundError, UnicodeDecodeError):
            pass

        logger.debug("Writing ({}) {!r}", action, str(path))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    def find(self, work_item_id: int) -> str | None:
        """Return the first note named ``WI-<id> ...`` in the notes directory."""
        root = Path(self.notes_dir)
        if not root.is_dir():
            return None
        for path in sorted(root.glob(f"WI-{work_item_id}*.md")):
            if self.work_item_id(path.name) == work_item_id:
                return path.name
        return None
