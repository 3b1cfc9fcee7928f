"""Build the local work item forest from flat remote data."""

from collections.abc import Callable

from loguru import logger

from workitem_sync.config import PARENT_RELATION
from workitem_sync.core.importer.json_reader import relation_target_id
from workitem_sync.models.node import WorkItemNode, WorkItemTree
from workitem_sync.models.work_item import RemoteItem

TYPE_PRIORITY: dict[str, int] = {
    "Epic": 1,
    "Feature": 2,
    "User Story": 3,
    "Task": 4,
    "Bug": 5,
    "Issue": 6,
}
UNKNOWN_TYPE_PRIORITY = 7


def sort_key(node: WorkItemNode) -> tuple[int, str]:
    return (TYPE_PRIORITY.get(node.type, UNKNOWN_TYPE_PRIORITY), node.title.casefold())


def sort_nodes(nodes: list[WorkItemNode], *, recursive: bool = True) -> None:
    """Sort nodes in place by type priority, then title.

    The sort is stable, so equal keys keep their relative order.
    """
    nodes.sort(key=sort_key)
    if recursive:
        for node in nodes:
            if node.children:
                sort_nodes(node.children)


def make_node(item: RemoteItem) -> WorkItemNode:
    """Create a node from the display fields of a remote item."""
    assigned = item.get("System.AssignedTo")
    if isinstance(assigned, dict):
        assigned = assigned.get("displayName")
    priority = item.get("Microsoft.VSTS.Common.Priority")
    return WorkItemNode(
        id=item.id,
        title=item.get("System.Title") or "Untitled",
        type=item.get("System.WorkItemType") or "Unknown",
        state=item.get("System.State") or "Unknown",
        assigned_to=assigned or "Unassigned",
        priority="" if priority is None else str(priority),
    )


def parent_id_of(item: RemoteItem) -> int | None:
    """Return the id named by the first parent relation, if it is well formed.

    Only the first parent relation counts. A malformed first relation means
    no parent, even if a later one would parse.
    """
    for relation in item.relations:
        if relation.rel == PARENT_RELATION:
            return relation_target_id(relation)
    return None


def build_tree(
    items: list[RemoteItem],
    *,
    resource_ref: Callable[[int, str], str] | None = None,
) -> WorkItemTree:
    """Convert flat remote items into a sorted forest.

    Unresolvable parent links (unknown or malformed ids) make the item a root;
    this never fails.

    Args:
        items: Remote items, each carrying its relations.
        resource_ref: Optional function deriving a note reference from (id, title).

    Returns:
        The tree with every item indexed in ``all_nodes``.
    """
    all_nodes: dict[int, WorkItemNode] = {}
    for item in items:
        node = make_node(item)
        if resource_ref is not None:
            node.resource_ref = resource_ref(node.id, node.title)
        all_nodes[item.id] = node

    roots: list[WorkItemNode] = []
    placed: set[int] = set()
    unresolved = 0
    for item in items:
        if item.id in placed:
            continue
        placed.add(item.id)
        node = all_nodes[item.id]
        parent_id = parent_id_of(item)
        parent = all_nodes.get(parent_id) if parent_id is not None else None
        if parent is None or parent is node:
            if parent_id is not None:
                unresolved += 1
            roots.append(node)
            continue
        node.parent_id = parent.id
        parent.children.append(node)

    tree = WorkItemTree(roots=roots, all_nodes=all_nodes)
    _break_cycles(tree)
    sort_nodes(tree.roots)

    logger.debug(
        "Built tree: {} nodes, {} roots, {} unresolved parent links",
        len(all_nodes),
        len(tree.roots),
        unresolved,
    )
    return tree


def _break_cycles(tree: WorkItemTree) -> None:
    """Promote nodes unreachable from any root, so the result is a forest.

    Remote data with a parent cycle would otherwise leave the cycle detached
    from every root.
    """
    reachable = {node.id for node, _depth in tree.walk()}
    for node_id in list(tree.all_nodes):
        if node_id in reachable:
            continue
        node = tree.all_nodes[node_id]
        logger.warning("Work item {} is part of a parent cycle; treating it as a root", node_id)
        tree.detach(node)
        tree.attach(node, None)
        reachable.update(n.id for n, _depth in _subtree(node))


def _subtree(node: WorkItemNode) -> list[tuple[WorkItemNode, int]]:
    result: list[tuple[WorkItemNode, int]] = []
    todo = [(node, 0)]
    while todo:
        current, depth = todo.pop()
        result.append((current, depth))
        todo.extend((c, depth + 1) for c in current.children)
    return result
