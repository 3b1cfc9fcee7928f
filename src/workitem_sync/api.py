"""Azure DevOps work item REST client."""

import json
from typing import Any
from urllib.parse import quote

import requests
from loguru import logger

from workitem_sync.config import (
    API_VERSION,
    FETCH_BATCH_SIZE,
    PARENT_RELATION,
    REQUEST_TIMEOUT,
    Settings,
)
from workitem_sync.core.importer.json_reader import parse_work_item, parse_work_items
from workitem_sync.exceptions import RemoteOperationFailed, RemoteTransportError
from workitem_sync.models.work_item import FieldUpdates, NewWorkItem, RemoteItem

_PATCH_HEADERS = {"Content-Type": "application/json-patch+json"}

_FIELD_NAMES = {
    "title": "System.Title",
    "state": "System.State",
    "assigned_to": "System.AssignedTo",
    "priority": "Microsoft.VSTS.Common.Priority",
}


class AzureDevOpsApi:
    """Work item operations for one Azure DevOps project."""

    def __init__(self, settings: Settings, *, session: requests.Session | None = None) -> None:
        settings.validate()
        self.settings = settings
        self.sess = session if session is not None else requests.Session()
        self.sess.auth = ("", settings.personal_access_token)
        self.base_url = f"{settings.base_url}/{quote(settings.project)}/_apis/wit"
        logger.debug(
            "API ready: organization {!r}, project {!r}", settings.organization, settings.project
        )

    def work_item_url(self, work_item_id: int) -> str:
        return f"{self.settings.base_url}/_apis/wit/workItems/{work_item_id}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}/{path}"
        params = {"api-version": API_VERSION, **kwargs.pop("params", {})}
        logger.debug("Making request: {} {} {}", method, path, repr(params)[:64])
        try:
            return self.sess.request(method, url, params=params, timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as e:
            msg = f"{method} {path} failed: {e}"
            raise RemoteTransportError(msg) from e

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            msg = f"Invalid JSON from {response.url}: {e}"
            raise RemoteTransportError(msg) from e

    def _patch(self, work_item_id: int, operations: list[dict[str, Any]]) -> requests.Response:
        return self._request(
            "PATCH",
            f"workitems/{work_item_id}",
            data=json.dumps(operations),
            headers=_PATCH_HEADERS,
        )

    # --- Reads ---

    def fetch_all_with_relations(self) -> list[RemoteItem]:
        """Query every work item id of the project, then fetch them in batches.

        Raises:
            RemoteOperationFailed: The query or a batch returned a non-2xx status.
        """
        project = self.settings.project.replace("'", "''")
        query = {
            "query": (
                "SELECT [System.Id] FROM WorkItems "
                f"WHERE [System.TeamProject] = '{project}' "
                "ORDER BY [System.ChangedDate] DESC"
            )
        }
        r = self._request("POST", "wiql", json=query)
        if not r.ok:
            raise RemoteOperationFailed("Work item query", r.status_code, r.text)
        ids = [int(ref["id"]) for ref in self._json(r).get("workItems", [])]
        logger.debug("Query returned {} work item ids", len(ids))

        items: list[RemoteItem] = []
        for start in range(0, len(ids), FETCH_BATCH_SIZE):
            batch = ids[start : start + FETCH_BATCH_SIZE]
            r = self._request(
                "GET",
                "workitems",
                params={"ids": ",".join(str(i) for i in batch), "$expand": "relations"},
            )
            if not r.ok:
                raise RemoteOperationFailed("Work item fetch", r.status_code, r.text)
            items.extend(parse_work_items(self._json(r).get("value", [])))
        logger.info("Fetched {} work items", len(items))
        return items

    def get_work_item(self, work_item_id: int) -> RemoteItem | None:
        r = self._request("GET", f"workitems/{work_item_id}", params={"$expand": "relations"})
        if not r.ok:
            logger.warning("Fetching work item {} failed: HTTP {}", work_item_id, r.status_code)
            return None
        return parse_work_item(self._json(r))

    # --- Writes ---

    def create_work_item(self, new: NewWorkItem) -> RemoteItem | None:
        """Create a work item; None if the remote store refused it.

        Raises:
            ValidationError: The type or title is missing, or a field is too long.
        """
        new.validate()
        r = self._request(
            "POST",
            f"workitems/${quote(new.work_item_type)}",
            data=json.dumps(build_create_patch(new)),
            headers=_PATCH_HEADERS,
        )
        if not r.ok:
            logger.warning(
                "Creating {} {!r} failed: HTTP {} {}",
                new.work_item_type,
                new.title,
                r.status_code,
                r.text[:200],
            )
            return None
        item = parse_work_item(self._json(r))
        logger.info("Created work item {}: {!r}", item.id, new.title)
        return item

    def clear_parents(self, child_id: int) -> bool:
        """Remove every parent link of a work item.

        Returns:
            True if there was nothing to remove or the removal succeeded.
        """
        item = self.get_work_item(child_id)
        if item is None:
            return False
        indices = [i for i, rel in enumerate(item.relations) if rel.rel == PARENT_RELATION]
        if not indices:
            return True
        # Highest index first so the remaining indices stay valid.
        operations = [{"op": "remove", "path": f"/relations/{i}"} for i in reversed(indices)]
        r = self._patch(child_id, operations)
        if not r.ok:
            logger.warning("Clearing parents of {} failed: HTTP {}", child_id, r.status_code)
            return False
        return True

    def set_parent(self, child_id: int, parent_id: int) -> bool:
        """Replace the parent of ``child_id`` with ``parent_id``."""
        if not self.clear_parents(child_id):
            logger.warning("Could not clear the old parent of {}", child_id)
        operations = [
            {
                "op": "add",
                "path": "/relations/-",
                "value": {"rel": PARENT_RELATION, "url": self.work_item_url(parent_id)},
            }
        ]
        r = self._patch(child_id, operations)
        if not r.ok:
            logger.warning(
                "Setting parent of {} to {} failed: HTTP {} {}",
                child_id,
                parent_id,
                r.status_code,
                r.text[:200],
            )
            return False
        return True

    def update_fields(self, work_item_id: int, updates: FieldUpdates) -> bool:
        operations = build_patch(updates, use_markdown=self.settings.use_markdown)
        if not operations:
            logger.warning("No fields to update for work item {}", work_item_id)
            return False
        r = self._patch(work_item_id, operations)
        if not r.ok:
            logger.warning(
                "Updating work item {} failed: HTTP {} {}",
                work_item_id,
                r.status_code,
                r.text[:200],
            )
            return False
        return True


def build_patch(updates: FieldUpdates, *, use_markdown: bool = False) -> list[dict[str, Any]]:
    """Translate field updates into JSON-patch operations."""
    operations: list[dict[str, Any]] = []
    for attr, name in _FIELD_NAMES.items():
        value = getattr(updates, attr)
        if value is not None:
            operations.append({"op": "replace", "path": f"/fields/{name}", "value": value})

    if updates.description is not None:
        operations.append(
            {"op": "replace", "path": "/fields/System.Description", "value": updates.description}
        )
        if use_markdown:
            operations.append(
                {
                    "op": "add",
                    "path": "/multilineFieldsFormat/System.Description",
                    "value": "Markdown",
                }
            )

    if updates.tags is not None:
        if updates.tags.strip():
            operations.append(
                {"op": "replace", "path": "/fields/System.Tags", "value": updates.tags}
            )
        else:
            operations.append({"op": "remove", "path": "/fields/System.Tags"})

    for name, value in updates.custom_fields.items():
        if value is None or value == "":
            operations.append({"op": "remove", "path": f"/fields/{name}"})
        else:
            operations.append({"op": "replace", "path": f"/fields/{name}", "value": value})
    return operations


def build_create_patch(new: NewWorkItem) -> list[dict[str, Any]]:
    """Translate a new work item into JSON-patch ``add`` operations."""
    values: list[tuple[str, Any]] = [
        ("System.Title", new.title),
        ("System.Description", new.description.strip() and new.description),
        ("System.State", new.state),
        ("System.AssignedTo", new.assigned_to),
        ("Microsoft.VSTS.Common.Priority", new.priority),
        ("System.Tags", new.tags),
        ("System.AreaPath", new.area_path),
        ("System.IterationPath", new.iteration_path),
        *new.custom_fields.items(),
    ]
    return [
        {"op": "add", "path": f"/fields/{name}", "value": value}
        for name, value in values
        if value not in (None, "")
    ]
