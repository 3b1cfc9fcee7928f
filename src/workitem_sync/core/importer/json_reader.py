"""Parse Azure DevOps work item JSON into domain models."""

import re
from typing import Any

from workitem_sync.models.work_item import Relation, RemoteItem

_TRAILING_ID = re.compile(r"/(\d+)$")


def parse_work_item(data: dict[str, Any]) -> RemoteItem:
    """Parse one work item object (as from ``workitems?$expand=relations``).

    Args:
        data: Raw work item with ``id``, ``fields`` and optional ``relations``.

    Returns:
        The parsed RemoteItem.
    """
    relations = tuple(
        Relation(
            rel=raw.get("rel", ""),
            url=raw.get("url", ""),
            attributes=dict(raw.get("attributes") or {}),
        )
        for raw in data.get("relations") or []
    )
    return RemoteItem(
        id=int(data["id"]), fields=dict(data.get("fields") or {}), relations=relations
    )


def parse_work_items(values: list[dict[str, Any]]) -> list[RemoteItem]:
    return [parse_work_item(v) for v in values]


def relation_target_id(relation: Relation) -> int | None:
    """Return the work item id a relation points to, or None if the URL has none."""
    match = _TRAILING_ID.search(relation.url)
    if match is None:
        return None
    return int(match.group(1))
