"""Shared test fixtures."""

import sqlite3

import pytest

from workitem_sync.core.database.schema import create_schema
from workitem_sync.core.sync.engine import SyncEngine
from workitem_sync.models.work_item import RemoteItem
from tests.unit.fakes import (
    FakeClient,
    FakeCodec,
    FakeDocumentStore,
    FakeKeyValueStore,
    FakeNotifier,
    make_item,
)

# 1 Epic
#   2 Feature
#     4 Story
#   3 Feature
# 5 Epic
SAMPLE_ITEMS: list[RemoteItem] = [
    make_item(1, "Platform", work_item_type="Epic"),
    make_item(2, "Login", parent=1, work_item_type="Feature"),
    make_item(3, "Search", parent=1, work_item_type="Feature"),
    make_item(4, "Password reset", parent=2, work_item_type="User Story"),
    make_item(5, "Billing", work_item_type="Epic"),
]


@pytest.fixture
def client() -> FakeClient:
    return FakeClient(SAMPLE_ITEMS)


@pytest.fixture
def documents() -> FakeDocumentStore:
    """A note for every sample item."""
    return FakeDocumentStore(
        {f"WI-{item.id} {item.get('System.Title')}.md": f"{item.get('System.Title')}\n"
         for item in SAMPLE_ITEMS}
    )


@pytest.fixture
def store() -> FakeKeyValueStore:
    return FakeKeyValueStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def engine(
    client: FakeClient,
    documents: FakeDocumentStore,
    store: FakeKeyValueStore,
    notifier: FakeNotifier,
) -> SyncEngine:
    """An engine refreshed from the sample items."""
    engine = SyncEngine(
        client, documents, FakeCodec(), store, notifier=notifier, clock=lambda: 1000
    )
    engine.refresh()
    return engine


@pytest.fixture
def db() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    return conn
