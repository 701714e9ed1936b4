"""
Gated crafting progress.

``CraftEngine.apply_progress`` raises an item's ``completed_qty`` only when
every direct dependency has reached the quantity its edge requires. The gate
is shallow: a dependency counts as satisfied from its own ``completed_qty``,
whatever the state of its own prerequisites. Progress is clamped to
``required_qty``; the activity ledger records the requested amount. The ledger
entry and the item update are written in one unit of work.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

import structlog

from craftchain.constants import MAX_REF_LENGTH
from craftchain.domain.ids import generate_activity_id
from craftchain.domain.models import ActivityRecord, ContributionType, DependencyEdge, Item
from craftchain.errors import DependencyIncompleteError, NotFoundError
from craftchain.graph.store import ActivityStore, GraphStore
from craftchain.graph.validation import require_positive_qty, require_text


@dataclass(frozen=True, slots=True)
class UnmetDependency:
    dependency_id: str
    name: str
    completed_qty: int
    required_qty: int

    def to_dict(self) -> dict[str, object]:
        return {
            "dependency_id": self.dependency_id,
            "name": self.name,
            "completed_qty": self.completed_qty,
            "required_qty": self.required_qty,
        }


@dataclass(frozen=True, slots=True)
class CraftReadiness:
    """Whether an item may be crafted right now, and what is blocking it."""

    item_id: str
    unmet: tuple[UnmetDependency, ...] = ()

    @property
    def ready(self) -> bool:
        return not self.unmet

    def to_dict(self) -> dict[str, object]:
        return {
            "item_id": self.item_id,
            "ready": self.ready,
            "unmet": [entry.to_dict() for entry in self.unmet],
        }


class CraftEngine:
    """Applies dependency-gated progress and records crafted activity."""

    def __init__(
        self,
        store: GraphStore,
        activity: ActivityStore,
        *,
        logger: Any | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._activity = activity
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._clock = clock if clock is not None else _utc_now

    def apply_progress(self, item_id: str, increment_by: int, *, user_id: str) -> Item:
        item_id = require_text(item_id, "item_id")
        increment_by = require_positive_qty(increment_by, "increment_by")
        user_id = require_text(user_id, "user_id", max_len=MAX_REF_LENGTH)

        item = self._load(item_id)
        for edge, dependency in self._resolve_dependencies(item):
            if dependency.completed_qty < edge.qty:
                self._logger.warning(
                    "craft_rejected",
                    project_id=item.project_id,
                    item_id=item.id,
                    dependency_id=dependency.id,
                    completed_qty=dependency.completed_qty,
                    required_qty=edge.qty,
                )
                raise DependencyIncompleteError(
                    item_id=item.id,
                    dependency_id=dependency.id,
                    dependency_name=dependency.name,
                    completed_qty=dependency.completed_qty,
                    required_qty=edge.qty,
                )

        now = max(self._clock(), item.updated_at)
        completed = min(item.required_qty, item.completed_qty + increment_by)
        record = ActivityRecord(
            id=generate_activity_id(),
            project_id=item.project_id,
            item_id=item.id,
            user_id=user_id,
            quantity=increment_by,
            type=ContributionType.CRAFTED,
            created_at=now,
        )
        updated = replace(item, completed_qty=completed, updated_at=now)
        with self._store.transaction(), self._activity.transaction():
            self._activity.append(record)
            self._store.save(updated)
        self._logger.info(
            "item_crafted",
            project_id=item.project_id,
            item_id=item.id,
            user_id=user_id,
            increment_by=increment_by,
            completed_qty=completed,
            required_qty=item.required_qty,
            clamped=item.completed_qty + increment_by > item.required_qty,
        )
        return updated

    def readiness(self, item_id: str) -> CraftReadiness:
        """Report unmet dependencies without changing anything."""
        item = self._load(require_text(item_id, "item_id"))
        unmet = tuple(
            UnmetDependency(
                dependency_id=dependency.id,
                name=dependency.name,
                completed_qty=dependency.completed_qty,
                required_qty=edge.qty,
            )
            for edge, dependency in self._resolve_dependencies(item)
            if dependency.completed_qty < edge.qty
        )
        return CraftReadiness(item_id=item.id, unmet=unmet)

    def _load(self, item_id: str) -> Item:
        item = self._store.find_by_id(item_id)
        if item is None:
            raise NotFoundError("Item not found", item_id=item_id)
        return item

    def _resolve_dependencies(self, item: Item) -> Iterator[tuple[DependencyEdge, Item]]:
        for edge in item.dependencies:
            dependency = self._store.find_by_id(edge.item_id)
            if dependency is None:
                raise NotFoundError(
                    "Dependency item not found",
                    item_id=item.id,
                    dependency_id=edge.item_id,
                )
            yield edge, dependency


def _utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = ["CraftEngine", "CraftReadiness", "UnmetDependency"]
