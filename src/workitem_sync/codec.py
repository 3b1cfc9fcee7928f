"""Work item notes: markdown with YAML front matter.

A pulled note looks like::

    ---
    id: 42
    title: Login page
    state: Active
    ...
    ---

    # Login page

    ## Description

    ...

    ---
    *Last pulled: 2024-05-01 10:00:00*

The timestamp markers and the ``synced:`` field change on every pull or push
and are ignored when comparing notes.
"""

import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import frontmatter

from workitem_sync.config import PARENT_RELATION
from workitem_sync.core.importer.json_reader import relation_target_id
from workitem_sync.documents import sanitize_file_name
from workitem_sync.models.work_item import FieldUpdates, RemoteItem

CHILD_RELATION = "System.LinkTypes.Hierarchy-Forward"
RELATED_RELATION = "System.LinkTypes.Related"

# Front matter keys that map to standard fields, not custom ones.
STANDARD_KEYS = frozenset(
    {
        "id", "title", "type", "state", "assignedto", "createddate", "changeddate",
        "priority", "areapath", "iterationpath", "tags", "azureurl", "synced",
    }
)

# Headings of the generated note body that are never a title.
SECTION_HEADINGS = frozenset({"Details", "Description", "Custom Fields", "Links"})

_LAST_MARKER = re.compile(r"\*Last (?:pulled|pushed): .*?\*")
_SYNCED_LINE = re.compile(r"^synced: .*$", re.MULTILINE)
_WHITESPACE = re.compile(r"\s+")
_H1 = re.compile(r"^# (.+)$", re.MULTILINE)
_DESCRIPTION = re.compile(r"## Description\n\n(.*?)(?=\n## |---\n\*Last|\Z)", re.DOTALL)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class NoteCodec:
    """Convert between remote work items and note text."""

    def __init__(
        self,
        *,
        organization: str = "",
        project: str = "",
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self.organization = organization
        self.project = project
        self.clock = clock

    def work_item_url(self, work_item_id: int) -> str:
        return (
            f"https://dev.azure.com/{self.organization}/{quote(self.project)}"
            f"/_workitems/edit/{work_item_id}"
        )

    # --- Comparison ---

    def normalize(self, text: str) -> str:
        """Drop volatile markers and collapse whitespace."""
        text = _LAST_MARKER.sub("", text)
        text = _SYNCED_LINE.sub("", text, count=1)
        return _WHITESPACE.sub(" ", text).strip()

    # --- Note -> remote ---

    def extract_field_updates(self, text: str) -> FieldUpdates:
        """Read the fields a note sets.

        Only fields that carry a value are returned, except tags: a present
        but empty ``tags`` key yields ``""`` so the remote tags get cleared.
        """
        post = frontmatter.loads(text)
        meta: dict[str, Any] = post.metadata
        body = post.content

        title = None
        heading = _H1.search(body)
        if heading:
            candidate = heading.group(1).strip()
            if candidate not in SECTION_HEADINGS and candidate != str(meta.get("title", "")):
                title = candidate

        state = str(meta["state"]) if meta.get("state") else None

        assigned_to = meta.get("assignedTo")
        if not assigned_to or assigned_to == "Unassigned":
            assigned_to = None

        priority = None
        try:
            priority = int(meta["priority"])
        except (KeyError, TypeError, ValueError):
            pass

        tags = None
        if "tags" in meta:
            tags = _tags_value(meta["tags"])

        description = None
        match = _DESCRIPTION.search(body)
        if match and match.group(1).strip():
            description = match.group(1).strip()

        custom_fields: dict[str, Any] = {}
        for key, value in meta.items():
            if key.lower() in STANDARD_KEYS or "." not in key:
                continue
            custom_fields[key] = "" if value is None else value

        return FieldUpdates(
            title=title,
            description=description,
            state=state,
            assigned_to=str(assigned_to) if assigned_to else None,
            priority=priority,
            tags=tags,
            custom_fields=custom_fields,
        )

    # --- Remote -> note ---

    def render_note(self, item: RemoteItem, *, related: dict[int, str] | None = None) -> str:
        """Render a remote work item as a note.

        Args:
            item: The work item, with relations.
            related: Titles of other work items by id, used for note links.
        """
        related = related or {}
        fields = item.fields
        title = fields.get("System.Title") or "Untitled"
        assigned = fields.get("System.AssignedTo")
        if isinstance(assigned, dict):
            assigned = assigned.get("displayName")
        assigned = assigned or "Unassigned"
        priority = fields.get("Microsoft.VSTS.Common.Priority")
        tags = fields.get("System.Tags") or ""
        now = self.clock()

        metadata: dict[str, Any] = {
            "id": item.id,
            "title": title,
            "type": fields.get("System.WorkItemType", "Unknown"),
            "state": fields.get("System.State", "Unknown"),
            "assignedTo": assigned,
            "createdDate": fields.get("System.CreatedDate", ""),
            "changedDate": fields.get("System.ChangedDate", ""),
            "priority": priority,
            "areaPath": fields.get("System.AreaPath", ""),
            "iterationPath": fields.get("System.IterationPath", ""),
            "tags": tags,
            "azureUrl": self.work_item_url(item.id),
            "synced": now.astimezone(UTC).isoformat(),
        }
        metadata.update(_custom_fields(fields))

        links = self._render_links(item, related)
        body = (
            f"# {title}\n\n"
            f"**Work Item ID:** {item.id}  \n"
            f"**Type:** {metadata['type']}  \n"
            f"**State:** {metadata['state']}  \n"
            f"**Assigned To:** {assigned}  \n"
            f"**Priority:** {priority if priority is not None else 'Not set'}\n\n"
            "## Details\n\n"
            f"**Created:** {metadata['createdDate']}  \n"
            f"**Last Changed:** {metadata['changedDate']}  \n"
            f"**Area Path:** {metadata['areaPath']}  \n"
            f"**Iteration:** {metadata['iterationPath']}  \n"
            f"**Tags:** {tags or 'None'}\n\n"
            "## Description\n\n"
            f"{fields.get('System.Description') or ''}\n\n"
            "## Links\n\n"
            f"[View in Azure DevOps]({metadata['azureUrl']})\n\n"
            f"{links}\n\n"
            "---\n"
            f"*Last pulled: {now:%Y-%m-%d %H:%M:%S}*\n"
        )
        post = frontmatter.Post(body, **metadata)
        return frontmatter.dumps(post, sort_keys=False) + "\n"

    def _render_links(self, item: RemoteItem, related: dict[int, str]) -> str:
        labels = {PARENT_RELATION: "Parent", CHILD_RELATION: "Child", RELATED_RELATION: "Related"}
        lines: list[str] = []
        for relation in item.relations:
            label = labels.get(relation.rel)
            if label is None:
                continue
            target = relation_target_id(relation)
            if target is None:
                continue
            if target in related:
                link = f"[[WI-{target} {sanitize_file_name(related[target])}]]"
            else:
                link = f"[Work item {target}]({self.work_item_url(target)})"
            lines.append(f"- **{label}:** {link}")
        return "\n".join(lines) if lines else "*No additional links or relationships*"

    def stamp_pushed(self, text: str) -> str:
        """Replace the last pulled/pushed marker with a fresh pushed marker."""
        marker = f"*Last pushed: {self.clock():%Y-%m-%d %H:%M:%S}*"
        stamped, count = _LAST_MARKER.subn(lambda _m: marker, text)
        if count:
            return stamped
        return text.rstrip().removesuffix("---").rstrip() + f"\n\n---\n{marker}\n"


def _tags_value(value: Any) -> str:
    if isinstance(value, list):
        value = "; ".join(str(v) for v in value)
    if value is None or str(value) in ("", "None"):
        return ""
    return str(value)


def _custom_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Return the non-system fields that can round-trip through front matter."""
    return {
        name: value
        for name, value in fields.items()
        if not name.startswith(("System.", "Microsoft.VSTS."))
        and isinstance(value, str | int | float | bool)
    }
