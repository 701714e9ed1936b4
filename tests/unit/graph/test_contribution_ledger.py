"""Contribution ledger: append, idempotent removal, aggregates, activity feed."""

from __future__ import annotations

from dataclasses import replace

import pytest

from craftchain.domain import ids
from craftchain.domain.models import ActivityRecord
from craftchain.errors import (
    InvalidInputError,
    InvalidOperationError,
    InvalidOperationReason,
    NotFoundError,
)
from craftchain.graph.ledger import ContributionLedger, contribution_total

from . import (
    InMemoryActivityStore,
    InMemoryGraphStore,
    RecordingLogger,
    TickingClock,
    contribution_id,
    item_id,
    make_contribution,
    make_item,
    ts,
)


def _ledger(
    store: InMemoryGraphStore,
    activity: InMemoryActivityStore | None = None,
    *,
    logger: RecordingLogger | None = None,
    feed_limit: int = 20,
    max_feed_limit: int = 500,
) -> ContributionLedger:
    return ContributionLedger(
        store,
        activity or InMemoryActivityStore(),
        logger=logger or RecordingLogger(),
        clock=TickingClock(),
        feed_limit=feed_limit,
        max_feed_limit=max_feed_limit,
    )


def test_append_embeds_contribution_without_touching_completed_qty() -> None:
    ore = make_item(seed=1, name="Iron Ore", required_qty=10, completed_qty=2)
    store = InMemoryGraphStore([ore])
    logger = RecordingLogger()
    ledger = _ledger(store, logger=logger)

    updated = ledger.append(ore.id, "alice", 4)
    updated = ledger.append(ore.id, "bob", 30)

    assert updated.completed_qty == 2
    assert [(entry.user_id, entry.qty) for entry in updated.contributions] == [
        ("alice", 4),
        ("bob", 30),
    ]
    assert contribution_total(updated) == 34
    assert ledger.aggregate(ore.id) == 34
    assert logger.names() == ["contribution_appended", "contribution_appended"]


def test_append_validates_and_requires_existing_item() -> None:
    ledger = _ledger(InMemoryGraphStore([make_item(seed=1, name="Ore")]))

    with pytest.raises(NotFoundError):
        ledger.append(item_id(42), "alice", 1)
    with pytest.raises(InvalidInputError):
        ledger.append(item_id(1), "alice", 0)
    with pytest.raises(InvalidInputError):
        ledger.append(item_id(1), "", 1)


def test_remove_is_idempotent() -> None:
    first = make_contribution(seed=1, qty=3)
    second = make_contribution(seed=2, qty=5)
    ore = make_item(seed=1, name="Ore", contributions=[first, second])
    store = InMemoryGraphStore([ore])
    logger = RecordingLogger()
    ledger = _ledger(store, logger=logger)

    once = ledger.remove(ore.id, first.id)
    twice = ledger.remove(ore.id, first.id)

    assert once == twice
    assert once.contributions == (second,)
    assert store.saves == 1
    assert logger.names() == ["contribution_removed", "contribution_remove_noop"]


def test_removing_unknown_contribution_returns_item_unchanged() -> None:
    ore = make_item(seed=1, name="Ore")
    store = InMemoryGraphStore([ore])

    assert _ledger(store).remove(ore.id, contribution_id(9)) == ore
    assert store.saves == 0


def test_project_contributions_are_newest_first_across_items() -> None:
    ore = make_item(seed=1, name="Ore", contributions=[make_contribution(seed=10, qty=1)])
    wood = make_item(
        seed=2,
        name="Wood",
        contributions=[make_contribution(seed=5, qty=2), make_contribution(seed=20, qty=4)],
    )
    elsewhere = make_item(
        seed=3,
        name="Gem",
        project_id="proj-2",
        contributions=[make_contribution(seed=30, qty=100)],
    )
    ledger = _ledger(InMemoryGraphStore([ore, wood, elsewhere]))

    entries = ledger.project_contributions("proj-1")

    assert [(item.name, entry.qty) for item, entry in entries] == [
        ("Wood", 4),
        ("Ore", 1),
        ("Wood", 2),
    ]
    assert ledger.project_aggregate("proj-1") == 7


def _record(seed: int, project_id: str = "proj-1") -> ActivityRecord:
    return ActivityRecord(
        id=ids.generate_activity_id(timestamp_ms=1_706_000_000_000 + seed),
        project_id=project_id,
        item_id=item_id(1),
        user_id="alice",
        quantity=seed,
        created_at=ts(seed),
    )


def test_recent_activity_applies_default_and_explicit_limits() -> None:
    activity = InMemoryActivityStore()
    for seed in range(1, 8):
        activity.append(_record(seed))
    activity.append(_record(50, project_id="proj-2"))
    ledger = _ledger(InMemoryGraphStore(), activity, feed_limit=3, max_feed_limit=5)

    assert [record.quantity for record in ledger.recent_activity("proj-1")] == [7, 6, 5]
    assert len(ledger.recent_activity("proj-1", 5)) == 5
    with pytest.raises(InvalidInputError):
        ledger.recent_activity("proj-1", 6)
    with pytest.raises(InvalidInputError):
        ledger.recent_activity("proj-1", 0)


def test_feed_limit_must_fit_inside_maximum() -> None:
    with pytest.raises(ValueError, match="feed_limit"):
        _ledger(InMemoryGraphStore(), feed_limit=10, max_feed_limit=5)


def test_item_activity_is_scoped_to_one_item_and_paged() -> None:
    hilt = make_item(seed=1, name="Hilt")
    activity = InMemoryActivityStore()
    for seed in range(1, 5):
        activity.append(_record(seed))
    activity.append(replace(_record(40), item_id=item_id(2)))
    ledger = _ledger(InMemoryGraphStore([hilt]), activity, feed_limit=3, max_feed_limit=5)

    assert [record.quantity for record in ledger.item_activity(hilt.id)] == [4, 3, 2]
    assert len(ledger.item_activity(hilt.id, 5)) == 4
    with pytest.raises(InvalidInputError):
        ledger.item_activity(hilt.id, 6)
    with pytest.raises(NotFoundError):
        ledger.item_activity(item_id(2))


def test_append_rejects_over_length_user_and_full_items(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr("craftchain.graph.ledger.MAX_CONTRIBUTIONS_PER_ITEM", 2)
    full = make_item(
        seed=1,
        name="Ore",
        contributions=[make_contribution(seed=5), make_contribution(seed=6)],
    )
    store = InMemoryGraphStore([full])
    ledger = _ledger(store)

    with pytest.raises(InvalidInputError) as long_user:
        ledger.append(full.id, "u" * 200, 1)
    assert long_user.value.details["field"] == "user_id"
    with pytest.raises(InvalidOperationError) as excinfo:
        ledger.append(full.id, "alice", 1)
    assert excinfo.value.reason is InvalidOperationReason.CONTRIBUTION_LIMIT
    assert store.items[full.id] == full
    assert store.saves == 0
