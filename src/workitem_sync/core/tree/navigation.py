"""Tree navigation: ancestry checks and breadcrumbs."""

from collections.abc import Iterator

from workitem_sync.models.node import WorkItemNode, WorkItemTree


def iter_ancestors(tree: WorkItemTree, node: WorkItemNode) -> Iterator[WorkItemNode]:
    """Yield the ancestors of ``node``, nearest first, up to its root."""
    seen = {node.id}
    current = tree.parent_of(node)
    while current is not None and current.id not in seen:
        yield current
        seen.add(current.id)
        current = tree.parent_of(current)


def is_ancestor(tree: WorkItemTree, ancestor: WorkItemNode, node: WorkItemNode) -> bool:
    """Check whether ``ancestor`` appears on the parent chain of ``node``."""
    return any(a.id == ancestor.id for a in iter_ancestors(tree, node))


def get_breadcrumbs(tree: WorkItemTree, node: WorkItemNode) -> tuple[WorkItemNode, ...]:
    """Get ancestors in order from root to immediate parent (excludes the node itself)."""
    return tuple(reversed(list(iter_ancestors(tree, node))))


def format_path(tree: WorkItemTree, node: WorkItemNode) -> str:
    """Render the node's position as ``[1] Epic > [2] Feature > [3] Story``."""
    parts = [*get_breadcrumbs(tree, node), node]
    return " > ".join(f"[{n.id}] {n.title}" for n in parts)
