"""
Edge admission for the crafting dependency graph.

Every new dependency edge passes through ``CycleGuard`` before it is stored.
The guard rejects self-edges, duplicate edges and edges that would close a
cycle. Cycle detection is name-based: starting from the proposed dependency,
the guard walks everything reachable and rejects the edge if any visited item
carries the parent's name. Two distinct items sharing a name therefore count
as the same node for this check.

The walk uses an explicit stack plus a visited set scoped to one call, so it
terminates on stored graphs that already contain cycles.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, NoReturn

import structlog

from craftchain.constants import (
    CIRCULAR_DEPENDENCY_MESSAGE,
    MAX_DEPENDENCIES_PER_ITEM,
    MAX_NAME_LENGTH,
    MAX_REF_LENGTH,
)
from craftchain.domain.models import DependencyEdge, Item
from craftchain.errors import (
    InvalidInputError,
    InvalidOperationError,
    InvalidOperationReason,
    NotFoundError,
)
from craftchain.graph.store import GraphStore
from craftchain.graph.validation import require_positive_qty, require_text


class CycleGuard:
    """Validates and applies dependency edges."""

    def __init__(
        self,
        store: GraphStore,
        *,
        logger: Any | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._clock = clock if clock is not None else _utc_now

    def would_create_cycle(self, candidate_id: str, proposed_parent_name: str) -> bool:
        """True when an item named ``proposed_parent_name`` is reachable from ``candidate_id``.

        The candidate itself is included in the name check. Unresolvable ids are
        skipped, so a candidate that does not exist yields ``False``.
        """
        visited: set[str] = set()
        pending: list[str] = [candidate_id]
        while pending:
            current_id = pending.pop()
            if current_id in visited:
                continue
            item = self._store.find_by_id(current_id)
            if item is None:
                continue
            if item.name == proposed_parent_name:
                return True
            visited.add(current_id)
            # Reverse so stored edge order is walked first-to-last.
            pending.extend(reversed(item.dependency_ids))
        return False

    def add_edge_by_name(
        self,
        project_id: str,
        parent_name: str,
        dependency_name: str,
        qty: int,
    ) -> Item:
        """Add ``parent -> dependency`` with ``qty`` and return the updated parent."""
        project_id = require_text(project_id, "project_id")
        parent_name = require_text(parent_name, "parent_name")
        dependency_name = require_text(dependency_name, "dependency_name")
        qty = require_positive_qty(qty, "qty")

        parent = self._store.find_by_name(project_id, parent_name)
        if parent is None:
            raise NotFoundError("Parent item not found", project_id=project_id, name=parent_name)
        dependency = self._store.find_by_name(project_id, dependency_name)
        if dependency is None:
            raise NotFoundError(
                "Dependency item not found", project_id=project_id, name=dependency_name
            )

        if parent.id == dependency.id:
            self._reject(
                "Item cannot depend on itself",
                InvalidOperationReason.SELF_DEPENDENCY,
                parent=parent,
                dependency=dependency,
            )
        if parent.edge_to(dependency.id) is not None:
            self._reject(
                "Dependency already exists",
                InvalidOperationReason.DUPLICATE_EDGE,
                parent=parent,
                dependency=dependency,
            )
        if self.would_create_cycle(dependency.id, parent.name):
            self._reject(
                CIRCULAR_DEPENDENCY_MESSAGE,
                InvalidOperationReason.CIRCULAR_DEPENDENCY,
                parent=parent,
                dependency=dependency,
            )
        if len(parent.dependencies) >= MAX_DEPENDENCIES_PER_ITEM:
            self._reject(
                f"Item cannot have more than {MAX_DEPENDENCIES_PER_ITEM} dependencies",
                InvalidOperationReason.DEPENDENCY_LIMIT,
                parent=parent,
                dependency=dependency,
            )

        now = max(self._clock(), parent.updated_at)
        updated = replace(
            parent,
            dependencies=(*parent.dependencies, DependencyEdge(item_id=dependency.id, qty=qty)),
            updated_at=now,
        )
        self._store.save(updated)
        self._logger.info(
            "edge_added",
            project_id=project_id,
            item_id=parent.id,
            dependency_id=dependency.id,
            qty=qty,
        )
        return updated

    def validate_new_item(
        self,
        project_id: str,
        name: str,
        dependencies: Iterable[tuple[str, int]],
    ) -> tuple[DependencyEdge, ...]:
        """Resolve and check the initial edges of an item that is about to be created.

        ``dependencies`` holds ``(dependency_item_id, qty)`` pairs. Each target must
        exist; none may reach an item already called ``name``.
        """
        project_id = require_text(project_id, "project_id", max_len=MAX_REF_LENGTH)
        name = require_text(name, "name", max_len=MAX_NAME_LENGTH)

        edges: list[DependencyEdge] = []
        seen: set[str] = set()
        for dependency_id, qty in dependencies:
            if len(edges) == MAX_DEPENDENCIES_PER_ITEM:
                raise InvalidInputError(
                    f"dependencies must hold at most {MAX_DEPENDENCIES_PER_ITEM} entries",
                    field="dependencies",
                )
            dependency_id = require_text(dependency_id, "dependency_id")
            qty = require_positive_qty(qty, "qty")
            if dependency_id in seen:
                raise InvalidOperationError(
                    "Dependency already exists",
                    reason=InvalidOperationReason.DUPLICATE_EDGE,
                    dependency_id=dependency_id,
                )
            seen.add(dependency_id)
            if self._store.find_by_id(dependency_id) is None:
                raise NotFoundError("Dependency item not found", dependency_id=dependency_id)
            if self.would_create_cycle(dependency_id, name):
                self._logger.warning(
                    "edge_rejected",
                    project_id=project_id,
                    name=name,
                    dependency_id=dependency_id,
                    reason=InvalidOperationReason.CIRCULAR_DEPENDENCY.value,
                )
                raise InvalidOperationError(
                    CIRCULAR_DEPENDENCY_MESSAGE,
                    reason=InvalidOperationReason.CIRCULAR_DEPENDENCY,
                    dependency_id=dependency_id,
                )
            edges.append(DependencyEdge(item_id=dependency_id, qty=qty))
        return tuple(edges)

    def _reject(
        self,
        message: str,
        reason: InvalidOperationReason,
        *,
        parent: Item,
        dependency: Item,
    ) -> NoReturn:
        self._logger.warning(
            "edge_rejected",
            project_id=parent.project_id,
            item_id=parent.id,
            dependency_id=dependency.id,
            reason=reason.value,
        )
        raise InvalidOperationError(
            message,
            reason=reason,
            item_id=parent.id,
            dependency_id=dependency.id,
        )


def _utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = ["CycleGuard"]