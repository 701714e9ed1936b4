"""Materializes the dependency tree below one item.

One visited set spans the whole walk, so an item reachable along several paths
is expanded at its first (preorder) occurrence only; every later edge to it,
including back-edges of a stored cycle, becomes a ``TRUNCATED`` marker. Edges
to ids that no longer resolve become ``MISSING`` markers.

Nodes are collected in an index-addressed arena during an explicit-stack walk
and assembled bottom-up afterwards, so depth is bounded by memory rather than
the interpreter's recursion limit.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from craftchain.domain.models import DependencyEdge, Item, TreeEdge, TreeEdgeStatus, TreeNode
from craftchain.errors import NotFoundError
from craftchain.graph.store import GraphStore
from craftchain.graph.validation import require_text

# Child slot: a finished marker edge, or (qty, arena index) of an expanded child.
_Slot = TreeEdge | tuple[int, int] | None


@dataclass(slots=True)
class _PendingNode:
    item: Item
    slots: list[_Slot] = field(default_factory=list)


class TreeBuilder:
    def __init__(self, store: GraphStore) -> None:
        self._store = store

    def build_tree(self, root_item_id: str) -> TreeNode:
        root_item_id = require_text(root_item_id, "root_item_id")
        root = self._store.find_by_id(root_item_id)
        if root is None:
            raise NotFoundError("Item not found", item_id=root_item_id)

        arena: list[_PendingNode] = []
        visited: set[str] = set()
        pending: list[tuple[int, int, DependencyEdge]] = []

        def expand(item: Item) -> int:
            visited.add(item.id)
            arena.append(_PendingNode(item=item, slots=[None] * len(item.dependencies)))
            index = len(arena) - 1
            for slot, edge in reversed(list(enumerate(item.dependencies))):
                pending.append((index, slot, edge))
            return index

        expand(root)
        while pending:
            parent_index, slot, edge = pending.pop()
            parent = arena[parent_index]
            if edge.item_id in visited:
                parent.slots[slot] = TreeEdge(
                    dependency_id=edge.item_id,
                    qty=edge.qty,
                    status=TreeEdgeStatus.TRUNCATED,
                )
                continue
            child = self._store.find_by_id(edge.item_id)
            if child is None:
                parent.slots[slot] = TreeEdge(
                    dependency_id=edge.item_id,
                    qty=edge.qty,
                    status=TreeEdgeStatus.MISSING,
                )
                continue
            parent.slots[slot] = (edge.qty, expand(child))

        return _assemble(arena)


def _assemble(arena: list[_PendingNode]) -> TreeNode:
    # Children always sit at higher indices than their parent.
    built: list[TreeNode | None] = [None] * len(arena)
    for index in range(len(arena) - 1, -1, -1):
        pending_node = arena[index]
        children: list[TreeEdge] = []
        for slot in pending_node.slots:
            if isinstance(slot, TreeEdge):
                children.append(slot)
                continue
            if slot is None:
                raise RuntimeError("tree slot left unresolved")
            qty, child_index = slot
            child = built[child_index]
            if child is None:
                raise RuntimeError("child node assembled out of order")
            children.append(
                TreeEdge(
                    dependency_id=child.id,
                    qty=qty,
                    status=TreeEdgeStatus.EXPANDED,
                    node=child,
                )
            )
        item = pending_node.item
        built[index] = TreeNode(
            id=item.id,
            name=item.name,
            required_qty=item.required_qty,
            completed_qty=item.completed_qty,
            children=tuple(children),
        )
    root = built[0]
    if root is None:
        raise RuntimeError("tree root missing")
    return root


__all__ = ["TreeBuilder"]
