"""Durable key-value storage and the work item cache, both in SQLite."""

import json
import sqlite3
import time
from typing import Any

from loguru import logger

from workitem_sync.core.database.schema import get_metadata, set_metadata
from workitem_sync.core.importer.json_reader import parse_work_item
from workitem_sync.models.work_item import RemoteItem


class SqliteKeyValueStore:
    """JSON values stored in the ``metadata`` table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def get(self, key: str) -> Any | None:
        raw = get_metadata(self.conn, key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        set_metadata(self.conn, key, json.dumps(value, sort_keys=True))


def save_work_items(conn: sqlite3.Connection, items: list[RemoteItem]) -> None:
    """Replace the cached work items with ``items``."""
    now_ms = int(time.time() * 1000)
    try:
        conn.execute("DELETE FROM work_items")
        conn.executemany(
            "INSERT INTO work_items (id, payload, fetched_at) VALUES (?, ?, ?)",
            [(item.id, json.dumps(item.to_dict(), sort_keys=True), now_ms) for item in items],
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    logger.debug("Cached {} work items", len(items))


def load_work_items(conn: sqlite3.Connection) -> list[RemoteItem]:
    """Return the cached work items in id order."""
    rows = conn.execute("SELECT payload FROM work_items ORDER BY id").fetchall()
    return [parse_work_item(json.loads(row[0])) for row in rows]
