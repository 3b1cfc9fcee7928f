"""Tests for the sqlite schema, key-value store and work item cache."""

import sqlite3
from pathlib import Path

from workitem_sync.core.database.schema import (
    create_schema,
    get_metadata,
    get_schema_version,
    migrate_schema,
    set_metadata,
)
from workitem_sync.core.database.store import (
    SqliteKeyValueStore,
    load_work_items,
    save_work_items,
)
from workitem_sync.core.sync.changes import ChangeSet
from workitem_sync.core.sync.pending import PendingChangeStore
from tests.unit.fakes import make_item


def test_create_schema_creates_tables() -> None:
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    tables = {
        row[0]
        for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    }
    assert {"metadata", "work_items"} <= tables


def test_migrate_schema_on_empty_db_creates_schema_and_sets_version() -> None:
    conn = sqlite3.connect(":memory:")
    assert get_schema_version(conn) is None
    migrate_schema(conn)
    assert get_schema_version(conn) == 1


def test_migrate_schema_is_idempotent(db: sqlite3.Connection) -> None:
    set_metadata(db, "k", "v")

    migrate_schema(db)

    assert get_metadata(db, "k") == "v"


def test_key_value_store_round_trips_json(db: sqlite3.Connection) -> None:
    kv = SqliteKeyValueStore(db)

    kv.set("answer", {"a": [1, None], "b": "x"})

    assert kv.get("answer") == {"a": [1, None], "b": "x"}
    assert kv.get("missing") is None


def test_key_value_store_replaces_value(db: sqlite3.Connection) -> None:
    kv = SqliteKeyValueStore(db)

    kv.set("k", 1)
    kv.set("k", 2)

    assert kv.get("k") == 2


def test_pending_changes_survive_a_new_connection(tmp_path: Path) -> None:
    db_path = tmp_path / "sync.db"
    conn = sqlite3.connect(str(db_path))
    migrate_schema(conn)
    changes = ChangeSet()
    changes.relationships[2] = 3
    changes.add_note(5)
    PendingChangeStore(SqliteKeyValueStore(conn), changes, clock=lambda: 99).persist()
    conn.close()

    conn = sqlite3.connect(str(db_path))
    restored = ChangeSet()
    PendingChangeStore(SqliteKeyValueStore(conn), restored).restore()

    assert restored.relationships == {2: 3}
    assert restored.notes == [5]


def test_save_and_load_work_items(db: sqlite3.Connection) -> None:
    items = [make_item(2, "Child", parent=1), make_item(1, "Parent")]

    save_work_items(db, items)

    loaded = load_work_items(db)
    assert [i.id for i in loaded] == [1, 2]
    assert loaded[1] == items[0]


def test_save_work_items_replaces_cache(db: sqlite3.Connection) -> None:
    save_work_items(db, [make_item(1), make_item(2)])

    save_work_items(db, [make_item(3)])

    assert [i.id for i in load_work_items(db)] == [3]
