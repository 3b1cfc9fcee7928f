"""Local tree of work items."""

from collections.abc import Iterator
from dataclasses import dataclass, field

from workitem_sync.exceptions import WorkItemNotFound


@dataclass(eq=False)
class WorkItemNode:
    """One remote work item in the local tree.

    The parent is held as an id and resolved through the owning tree, so
    nodes never reference their parent object directly.
    """

    id: int
    title: str
    type: str
    state: str
    assigned_to: str
    priority: str
    resource_ref: str | None = None
    parent_id: int | None = None
    children: list["WorkItemNode"] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def __repr__(self) -> str:
        return f"WorkItemNode(id={self.id!r}, title={self.title!r}, parent_id={self.parent_id!r})"


class WorkItemTree:
    """A forest of work item nodes plus an id index.

    The tree owns every node: ``roots`` and the ``children`` lists hold the
    structure, ``all_nodes`` maps id to node for every node exactly once.
    """

    def __init__(
        self,
        roots: list[WorkItemNode] | None = None,
        all_nodes: dict[int, WorkItemNode] | None = None,
    ) -> None:
        self.roots: list[WorkItemNode] = roots if roots is not None else []
        self.all_nodes: dict[int, WorkItemNode] = all_nodes if all_nodes is not None else {}

    def __len__(self) -> int:
        return len(self.all_nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.all_nodes

    def __getitem__(self, node_id: int) -> WorkItemNode:
        try:
            return self.all_nodes[node_id]
        except KeyError:
            raise WorkItemNotFound(node_id) from None

    def get(self, node_id: int) -> WorkItemNode | None:
        return self.all_nodes.get(node_id)

    def parent_of(self, node: WorkItemNode) -> WorkItemNode | None:
        if node.parent_id is None:
            return None
        return self.all_nodes.get(node.parent_id)

    def siblings_list(self, node: WorkItemNode) -> list[WorkItemNode]:
        """Return the list that holds ``node``: its parent's children or the roots."""
        parent = self.parent_of(node)
        return self.roots if parent is None else parent.children

    def walk(self) -> Iterator[tuple[WorkItemNode, int]]:
        """Yield (node, depth) pairs in pre-order, following display order."""
        todo: list[tuple[WorkItemNode, int]] = [(n, 0) for n in reversed(self.roots)]
        while todo:
            node, depth = todo.pop()
            yield node, depth
            todo.extend((c, depth + 1) for c in reversed(node.children))

    def detach(self, node: WorkItemNode) -> None:
        """Remove ``node`` from its current list, leaving it parentless."""
        container = self.siblings_list(node)
        container[:] = [n for n in container if n.id != node.id]
        node.parent_id = None

    def attach(self, node: WorkItemNode, parent: WorkItemNode | None) -> None:
        """Append a detached ``node`` under ``parent`` (None appends to the roots)."""
        if parent is None:
            node.parent_id = None
            self.roots.append(node)
        else:
            node.parent_id = parent.id
            parent.children.append(node)
