"""Graph engine: edge admission, gated crafting, contributions and tree views."""

from __future__ import annotations

from craftchain.graph.craft_engine import CraftEngine, CraftReadiness, UnmetDependency
from craftchain.graph.cycle_guard import CycleGuard
from craftchain.graph.ledger import ContributionLedger, contribution_total
from craftchain.graph.store import ActivityStore, GraphStore
from craftchain.graph.tree_builder import TreeBuilder

__all__ = [
    "ActivityStore",
    "ContributionLedger",
    "CraftEngine",
    "CraftReadiness",
    "CycleGuard",
    "GraphStore",
    "TreeBuilder",
    "UnmetDependency",
    "contribution_total",
]
