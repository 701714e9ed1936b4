"""Storage ports consumed by the graph engine.

The engine never talks to SQLite directly; any object satisfying these
protocols works, which keeps the core testable with in-memory fakes.

``transaction()`` opens a unit of work: writes made through either store inside
the block land together or not at all. Stores backed by the same state DB share
one transaction.
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Any, Protocol

from craftchain.domain.models import ActivityRecord, Item


class GraphStore(Protocol):
    """Item document store. Failures raise ``StorageError``."""

    def find_by_id(self, item_id: str) -> Item | None: ...

    def find_by_name(self, project_id: str, name: str) -> Item | None: ...

    def save(self, item: Item) -> Item: ...

    def add(self, item: Item) -> Item: ...

    def insert_many(self, items: Sequence[Item]) -> list[Item]: ...

    def list_for_project(self, project_id: str) -> list[Item]: ...

    def transaction(self) -> AbstractContextManager[Any]: ...


class ActivityStore(Protocol):
    """Append-only craft ledger, read back newest first."""

    def append(self, record: ActivityRecord) -> ActivityRecord: ...

    def list_for_project(
        self,
        project_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ActivityRecord]: ...

    def list_for_item(
        self,
        item_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ActivityRecord]: ...

    def transaction(self) -> AbstractContextManager[Any]: ...


__all__ = ["ActivityStore", "GraphStore"]
