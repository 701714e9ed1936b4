"""Raw contribution pledges and the project activity feed.

Contributions are embedded in each item and never gated by dependencies. Their
sum is a second progress signal kept apart from ``completed_qty``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

import structlog

from craftchain.constants import (
    DEFAULT_ACTIVITY_FEED_LIMIT,
    MAX_ACTIVITY_FEED_LIMIT,
    MAX_CONTRIBUTIONS_PER_ITEM,
    MAX_REF_LENGTH,
)
from craftchain.domain.ids import generate_contribution_id
from craftchain.domain.models import ActivityRecord, Contribution, Item
from craftchain.errors import (
    InvalidInputError,
    InvalidOperationError,
    InvalidOperationReason,
    NotFoundError,
)
from craftchain.graph.store import ActivityStore, GraphStore
from craftchain.graph.validation import require_positive_qty, require_text


def contribution_total(item: Item) -> int:
    return item.contributed_qty


class ContributionLedger:
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
        if feed_limit < 1 or feed_limit > max_feed_limit:
            raise ValueError(f"feed_limit must be in [1, {max_feed_limit}]")
        self._store = store
        self._activity = activity
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._clock = clock if clock is not None else _utc_now
        self._feed_limit = feed_limit
        self._max_feed_limit = max_feed_limit

    def append(self, item_id: str, user_id: str, qty: int) -> Item:
        item_id = require_text(item_id, "item_id")
        user_id = require_text(user_id, "user_id", max_len=MAX_REF_LENGTH)
        qty = require_positive_qty(qty, "qty")

        item = self._load(item_id)
        if len(item.contributions) >= MAX_CONTRIBUTIONS_PER_ITEM:
            raise InvalidOperationError(
                f"Item cannot hold more than {MAX_CONTRIBUTIONS_PER_ITEM} contributions",
                reason=InvalidOperationReason.CONTRIBUTION_LIMIT,
                item_id=item.id,
            )
        now = max(self._clock(), item.updated_at)
        contribution = Contribution(
            id=generate_contribution_id(),
            user_id=user_id,
            qty=qty,
            created_at=now,
        )
        updated = replace(
            item,
            contributions=(*item.contributions, contribution),
            updated_at=now,
        )
        self._store.save(updated)
        self._logger.info(
            "contribution_appended",
            project_id=item.project_id,
            item_id=item.id,
            user_id=user_id,
            contribution_id=contribution.id,
            qty=qty,
        )
        return updated

    def remove(self, item_id: str, contribution_id: str) -> Item:
        """Drop a contribution; removing an unknown id returns the item unchanged."""
        item_id = require_text(item_id, "item_id")
        contribution_id = require_text(contribution_id, "contribution_id")

        item = self._load(item_id)
        if item.find_contribution(contribution_id) is None:
            self._logger.debug(
                "contribution_remove_noop",
                item_id=item.id,
                contribution_id=contribution_id,
            )
            return item

        updated = replace(
            item,
            contributions=tuple(
                entry for entry in item.contributions if entry.id != contribution_id
            ),
            updated_at=max(self._clock(), item.updated_at),
        )
        self._store.save(updated)
        self._logger.info(
            "contribution_removed",
            project_id=item.project_id,
            item_id=item.id,
            contribution_id=contribution_id,
        )
        return updated

    def aggregate(self, item_id: str) -> int:
        return contribution_total(self._load(require_text(item_id, "item_id")))

    def project_contributions(self, project_id: str) -> list[tuple[Item, Contribution]]:
        """Every embedded contribution in the project, newest first."""
        project_id = require_text(project_id, "project_id")
        entries = [
            (item, entry)
            for item in self._store.list_for_project(project_id)
            for entry in item.contributions
        ]
        entries.sort(key=lambda pair: (pair[1].created_at, pair[1].id), reverse=True)
        return entries

    def project_aggregate(self, project_id: str) -> int:
        project_id = require_text(project_id, "project_id")
        return sum(contribution_total(item) for item in self._store.list_for_project(project_id))

    def recent_activity(self, project_id: str, limit: int | None = None) -> list[ActivityRecord]:
        project_id = require_text(project_id, "project_id")
        return self._activity.list_for_project(project_id, limit=self._page_limit(limit))

    def item_activity(self, item_id: str, limit: int | None = None) -> list[ActivityRecord]:
        """Crafted history of one item, newest first."""
        item = self._load(require_text(item_id, "item_id"))
        return self._activity.list_for_item(item.id, limit=self._page_limit(limit))

    def _page_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._feed_limit
        limit = require_positive_qty(limit, "limit")
        if limit > self._max_feed_limit:
            raise InvalidInputError(f"limit must be <= {self._max_feed_limit}", field="limit")
        return limit

    def _load(self, item_id: str) -> Item:
        item = self._store.find_by_id(item_id)
        if item is None:
            raise NotFoundError("Item not found", item_id=item_id)
        return item


def _utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = ["ContributionLedger", "contribution_total"]
