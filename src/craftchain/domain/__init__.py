"""Domain models and identifiers for the crafting dependency graph."""

from __future__ import annotations

from craftchain.domain.ids import (
    generate_activity_id,
    generate_contribution_id,
    generate_item_id,
)
from craftchain.domain.models import (
    ActivityRecord,
    Contribution,
    ContributionType,
    DependencyEdge,
    Item,
    TreeEdge,
    TreeEdgeStatus,
    TreeNode,
)

__all__ = [
    "ActivityRecord",
    "Contribution",
    "ContributionType",
    "DependencyEdge",
    "Item",
    "TreeEdge",
    "TreeEdgeStatus",
    "TreeNode",
    "generate_activity_id",
    "generate_contribution_id",
    "generate_item_id",
]
