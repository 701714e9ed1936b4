"""Shared deterministic fixtures and builders for graph component tests."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Final

from craftchain.domain import ids
from craftchain.domain.models import ActivityRecord, Contribution, DependencyEdge, Item

_BASE_TS: Final[datetime] = datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


def ts(offset_seconds: int = 0) -> datetime:
    return _BASE_TS + timedelta(seconds=offset_seconds)


def _randbytes_for(seed: int) -> bytes:
    return seed.to_bytes(10, "big")


def item_id(seed: int) -> str:
    return ids.generate_item_id(
        timestamp_ms=1_706_000_000_000 + seed,
        randbytes=lambda size: _randbytes_for(seed)[:size],
    )


def contribution_id(seed: int) -> str:
    return ids.generate_contribution_id(
        timestamp_ms=1_706_000_000_000 + seed,
        randbytes=lambda size: _randbytes_for(seed)[:size],
    )


def make_item(
    *,
    seed: int,
    name: str,
    required_qty: int = 5,
    completed_qty: int = 0,
    project_id: str = "proj-1",
    dependencies: Sequence[tuple[str, int]] = (),
    contributions: Sequence[Contribution] = (),
    created_offset: int | None = None,
) -> Item:
    created = ts(seed if created_offset is None else created_offset)
    return Item(
        id=item_id(seed),
        project_id=project_id,
        name=name,
        required_qty=required_qty,
        completed_qty=completed_qty,
        dependencies=tuple(DependencyEdge(item_id=dep, qty=qty) for dep, qty in dependencies),
        contributions=tuple(contributions),
        created_at=created,
        updated_at=created,
    )


def make_contribution(*, seed: int, user_id: str = "alice", qty: int = 1) -> Contribution:
    return Contribution(id=contribution_id(seed), user_id=user_id, qty=qty, created_at=ts(seed))


class InMemoryGraphStore:
    """Dict-backed graph store keyed by item id."""

    def __init__(self, items: Sequence[Item] = ()) -> None:
        self.items: dict[str, Item] = {item.id: item for item in items}
        self.saves = 0

    def find_by_id(self, item_id: str) -> Item | None:
        return self.items.get(item_id)

    def find_by_name(self, project_id: str, name: str) -> Item | None:
        matches = [
            item
            for item in self.items.values()
            if item.project_id == project_id and item.name == name
        ]
        matches.sort(key=lambda item: (item.created_at, item.id))
        return matches[0] if matches else None

    def save(self, item: Item) -> Item:
        self.items[item.id] = item
        self.saves += 1
        return item

    def add(self, item: Item) -> Item:
        if item.id in self.items:
            raise ValueError(f"duplicate item {item.id}")
        return self.save(item)

    def insert_many(self, items: Sequence[Item]) -> list[Item]:
        batch = list(items)
        for item in batch:
            self.add(item)
        return batch

    def list_for_project(self, project_id: str) -> list[Item]:
        return sorted(
            (item for item in self.items.values() if item.project_id == project_id),
            key=lambda item: (item.created_at, item.id),
        )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        snapshot = dict(self.items)
        try:
            yield
        except Exception:
            self.items = snapshot
            raise


class InMemoryActivityStore:
    def __init__(self) -> None:
        self.records: list[ActivityRecord] = []

    def append(self, record: ActivityRecord) -> ActivityRecord:
        self.records.append(record)
        return record

    def list_for_project(
        self, project_id: str, *, limit: int = 100, offset: int = 0
    ) -> list[ActivityRecord]:
        matching = [record for record in self.records if record.project_id == project_id]
        matching.sort(key=lambda record: (record.created_at, record.id), reverse=True)
        return matching[offset : offset + limit]

    def list_for_item(
        self, item_id: str, *, limit: int = 100, offset: int = 0
    ) -> list[ActivityRecord]:
        matching = [record for record in self.records if record.item_id == item_id]
        matching.sort(key=lambda record: (record.created_at, record.id), reverse=True)
        return matching[offset : offset + limit]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        snapshot = list(self.records)
        try:
            yield
        except Exception:
            self.records = snapshot
            raise


@dataclass
class RecordingLogger:
    events: list[tuple[str, str, dict[str, object]]] = field(default_factory=list)

    def info(self, event: str, **fields: object) -> None:
        self.events.append(("info", event, fields))

    def warning(self, event: str, **fields: object) -> None:
        self.events.append(("warning", event, fields))

    def debug(self, event: str, **fields: object) -> None:
        self.events.append(("debug", event, fields))

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]


class TickingClock:
    """Returns a strictly increasing timestamp on every call."""

    def __init__(self, start: datetime | None = None, step_seconds: int = 1) -> None:
        self._current = start if start is not None else ts(10_000)
        self._step = timedelta(seconds=step_seconds)

    def __call__(self) -> datetime:
        self._current = self._current + self._step
        return self._current


__all__ = [
    "InMemoryActivityStore",
    "InMemoryGraphStore",
    "RecordingLogger",
    "TickingClock",
    "contribution_id",
    "item_id",
    "make_contribution",
    "make_item",
    "ts",
]
