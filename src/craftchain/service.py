"""
craftchain: service facade

File: src/craftchain/service.py

Purpose
- Single entry point for the serving layer (CLI today, HTTP tomorrow). Wires the
  graph components to a store and binds correlation fields for logging.

What should be included in this file
- One method per exposed operation; each validates before mutating.
- Bulk import that bypasses cycle validation (callers own consistency).

Functional requirements
- Every failure surfaces as a ``CraftChainError`` subclass.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from craftchain.constants import (
    DEFAULT_ACTIVITY_FEED_LIMIT,
    MAX_ACTIVITY_FEED_LIMIT,
    MAX_NAME_LENGTH,
    MAX_REF_LENGTH,
)
from craftchain.domain.ids import generate_item_id
from craftchain.domain.models import ActivityRecord, Contribution, DependencyEdge, Item, TreeNode
from craftchain.errors import InvalidInputError
from craftchain.graph import (
    ActivityStore,
    ContributionLedger,
    CraftEngine,
    CraftReadiness,
    CycleGuard,
    GraphStore,
    TreeBuilder,
)
from craftchain.graph.validation import require_positive_qty, require_text
from craftchain.observability.logging import correlation_scope
from craftchain.persistence import ActivityRepo, ItemRepo, StateDB

_BULK_ENTRY_FIELDS = frozenset({"id", "name", "required_qty", "completed_qty", "dependencies"})


@dataclass(frozen=True, slots=True)
class ProjectProgress:
    project_id: str
    total_contributed: int
    contributions: tuple[tuple[Item, Contribution], ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "project_id": self.project_id,
            "total_contributed": self.total_contributed,
            "contributions": [
                {
                    "item_id": item.id,
                    "item_name": item.name,
                    "contribution_id": entry.id,
                    "user_id": entry.user_id,
                    "qty": entry.qty,
                    "created_at": entry.to_dict()["created_at"],
                }
                for item, entry in self.contributions
            ],
        }


class CraftChainService:
    """Operations exposed to the serving layer."""

    def __init__(
        self,
        store: GraphStore,
        activity: ActivityStore,
        *,
        logger: Any | None = None,
        clock: Callable[[], datetime] | None = None,
        feed_limit: int = DEFAULT_ACTIVITY_FEED_LIMIT,
        max_feed_limit: int = MAX_ACTIVITY_FEED_LIMIT,
    ) -> None:
        self._store = store
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._clock = clock if clock is not None else _utc_now
        self.cycle_guard = CycleGuard(store, logger=logger, clock=clock)
        self.craft_engine = CraftEngine(store, activity, logger=logger, clock=clock)
        self.ledger = ContributionLedger(
            store,
            activity,
            logger=logger,
            clock=clock,
            feed_limit=feed_limit,
            max_feed_limit=max_feed_limit,
        )
        self.tree_builder = TreeBuilder(store)

    @classmethod
    def from_state_db(
        cls,
        db: StateDB,
        *,
        logger: Any | None = None,
        feed_limit: int = DEFAULT_ACTIVITY_FEED_LIMIT,
        max_feed_limit: int = MAX_ACTIVITY_FEED_LIMIT,
    ) -> CraftChainService:
        return cls(
            ItemRepo(db),
            ActivityRepo(db),
            logger=logger,
            feed_limit=feed_limit,
            max_feed_limit=max_feed_limit,
        )

    # ------------------------------------------------------------------
    # Graph shape
    # ------------------------------------------------------------------

    def create_item(
        self,
        project_id: str,
        name: str,
        required_qty: int,
        dependencies: Iterable[tuple[str, int]] = (),
    ) -> Item:
        """Create an item; initial dependencies are existence- and cycle-checked."""
        project_id = require_text(project_id, "project_id", max_len=MAX_REF_LENGTH)
        name = require_text(name, "name", max_len=MAX_NAME_LENGTH)
        required_qty = require_positive_qty(required_qty, "required_qty")
        with correlation_scope(project_id=project_id):
            edges = self.cycle_guard.validate_new_item(project_id, name, dependencies)
            now = self._clock()
            item = Item(
                id=generate_item_id(),
                project_id=project_id,
                name=name,
                required_qty=required_qty,
                dependencies=edges,
                created_at=now,
                updated_at=now,
            )
            self._store.add(item)
            self._logger.info(
                "item_created",
                item_id=item.id,
                name=name,
                required_qty=required_qty,
                dependency_count=len(edges),
            )
            return item

    def add_dependency_by_name(
        self,
        project_id: str,
        parent_name: str,
        dependency_name: str,
        qty: int,
    ) -> Item:
        with correlation_scope(project_id=project_id):
            return self.cycle_guard.add_edge_by_name(project_id, parent_name, dependency_name, qty)

    def bulk_insert(self, project_id: str, entries: Sequence[Mapping[str, object]]) -> list[Item]:
        """Insert many items at once without cycle validation.

        Each entry holds ``name`` and ``required_qty`` plus optional ``id``,
        ``completed_qty`` and ``dependencies`` (``[{"item_id", "qty"}]``), so a batch
        may reference its own members by supplying ids.
        """
        project_id = require_text(project_id, "project_id", max_len=MAX_REF_LENGTH)
        if isinstance(entries, (str, bytes)) or not isinstance(entries, Sequence):
            raise InvalidInputError("items must be a list", field="items")
        with correlation_scope(project_id=project_id):
            now = self._clock()
            items = [
                _bulk_item(project_id, entry, index=index, now=now)
                for index, entry in enumerate(entries)
            ]
            inserted = self._store.insert_many(items)
            self._logger.info("items_bulk_inserted", count=len(inserted))
            return inserted

    def full_tree(self, item_id: str) -> TreeNode:
        with correlation_scope(item_id=item_id):
            return self.tree_builder.build_tree(item_id)

    def project_items(self, project_id: str) -> list[Item]:
        return self._store.list_for_project(require_text(project_id, "project_id"))

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def craft(self, item_id: str, increment_by: int, *, user_id: str) -> Item:
        with correlation_scope(item_id=item_id, user_id=user_id):
            return self.craft_engine.apply_progress(item_id, increment_by, user_id=user_id)

    def readiness(self, item_id: str) -> CraftReadiness:
        return self.craft_engine.readiness(item_id)

    def contribute(self, item_id: str, qty: int, *, user_id: str) -> Item:
        with correlation_scope(item_id=item_id, user_id=user_id):
            return self.ledger.append(item_id, user_id, qty)

    def remove_contribution(self, item_id: str, contribution_id: str, *, user_id: str) -> Item:
        # Any project member may remove any contribution; user_id is recorded only.
        with correlation_scope(item_id=item_id, user_id=user_id):
            return self.ledger.remove(item_id, contribution_id)

    def project_activity(self, project_id: str, limit: int | None = None) -> list[ActivityRecord]:
        with correlation_scope(project_id=project_id):
            return self.ledger.recent_activity(project_id, limit)

    def item_activity(self, item_id: str, limit: int | None = None) -> list[ActivityRecord]:
        with correlation_scope(item_id=item_id):
            return self.ledger.item_activity(item_id, limit)

    def project_progress(self, project_id: str) -> ProjectProgress:
        with correlation_scope(project_id=project_id):
            contributions = self.ledger.project_contributions(project_id)
            return ProjectProgress(
                project_id=project_id,
                total_contributed=self.ledger.project_aggregate(project_id),
                contributions=tuple(contributions),
            )


def _bulk_item(
    project_id: str,
    entry: Mapping[str, object],
    *,
    index: int,
    now: datetime,
) -> Item:
    path = f"items[{index}]"
    if not isinstance(entry, Mapping):
        raise InvalidInputError(f"{path} must be an object", field=path)
    unknown = sorted(str(key) for key in entry if key not in _BULK_ENTRY_FIELDS)
    if unknown:
        raise InvalidInputError(f"{path} has unexpected fields: {unknown}", field=path)

    raw_edges = entry.get("dependencies", [])
    if not isinstance(raw_edges, list):
        raise InvalidInputError(f"{path}.dependencies must be a list", field=path)
    edges: list[DependencyEdge] = []
    try:
        for edge in raw_edges:
            if not isinstance(edge, Mapping):
                raise InvalidInputError(
                    f"{path}.dependencies entries must be objects", field=path
                )
            edges.append(DependencyEdge.from_dict(edge))
        return Item(
            id=entry["id"] if "id" in entry else generate_item_id(),
            project_id=project_id,
            name=entry.get("name"),
            required_qty=entry.get("required_qty"),
            completed_qty=entry.get("completed_qty", 0),
            dependencies=tuple(edges),
            created_at=now,
            updated_at=now,
        )
    except ValueError as exc:
        if isinstance(exc, InvalidInputError):
            raise
        raise InvalidInputError(f"{path}: {exc}", field=path) from exc


def _utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = ["CraftChainService", "ProjectProgress"]
