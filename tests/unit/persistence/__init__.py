"""Shared deterministic builders for persistence tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Final

from craftchain.domain import ids
from craftchain.domain.models import (
    ActivityRecord,
    Contribution,
    ContributionType,
    DependencyEdge,
    Item,
)

_BASE_TS: Final[datetime] = datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


def _bytes(seed: int) -> bytes:
    return seed.to_bytes(10, "big")


def ts(offset_seconds: int) -> datetime:
    return _BASE_TS + timedelta(seconds=offset_seconds)


def make_item_id(seed: int) -> str:
    return ids.generate_item_id(timestamp_ms=1_000 + seed, randbytes=lambda _: _bytes(seed))


def make_item(
    seed: int,
    *,
    name: str | None = None,
    project_id: str = "proj-1",
    required_qty: int = 4,
    completed_qty: int = 0,
    dependencies: tuple[str, ...] = (),
    contributions: int = 0,
) -> Item:
    created = ts(seed)
    return Item(
        id=make_item_id(seed),
        project_id=project_id,
        name=name or f"Item {seed}",
        required_qty=required_qty,
        completed_qty=completed_qty,
        dependencies=tuple(DependencyEdge(item_id=dep, qty=1) for dep in dependencies),
        contributions=tuple(
            Contribution(
                id=ids.generate_contribution_id(
                    timestamp_ms=2_000 + seed * 10 + index,
                    randbytes=lambda _: _bytes(seed),
                ),
                user_id=f"user-{index}",
                qty=index + 1,
                created_at=created,
            )
            for index in range(contributions)
        ),
        created_at=created,
        updated_at=created,
    )


def make_activity(
    seed: int,
    *,
    item_id: str,
    project_id: str = "proj-1",
    quantity: int = 1,
) -> ActivityRecord:
    return ActivityRecord(
        id=ids.generate_activity_id(timestamp_ms=3_000 + seed, randbytes=lambda _: _bytes(seed)),
        project_id=project_id,
        item_id=item_id,
        user_id="alice",
        quantity=quantity,
        type=ContributionType.CRAFTED,
        created_at=ts(seed),
    )


__all__ = ["make_activity", "make_item", "make_item_id", "ts"]
