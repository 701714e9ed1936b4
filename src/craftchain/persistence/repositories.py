"""
craftchain: repositories

File: src/craftchain/persistence/repositories.py

Purpose
- Repository/DAO implementations that read and write item documents and
  activity records to the state DB.

What should be included in this file
- ItemRepo: the graph store consumed by the engine (lookup by id and by
  project-scoped name, upsert, all-or-nothing bulk insert, project listing).
- ActivityRepo: append-only craft ledger with a newest-first project feed
  and a per-item history.
- transaction(): a unit of work shared by every repo bound to the same DB.

Functional requirements
- Each write is one transaction; bulk inserts either land entirely or not at all.
- Storage failures surface as ``StorageError`` subclasses, never raw sqlite errors.

Non-functional requirements
- Project listings are index-backed; the activity feed is always bounded.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping, Sequence
from contextlib import AbstractContextManager
from datetime import UTC, datetime
from typing import Final, TypeVar

from craftchain.domain.models import ActivityRecord, CanonicalModel, Item
from craftchain.persistence.state_db import (
    RowValue,
    SQLParams,
    StateDB,
    StateDBCorruptionError,
    StateDBError,
)

_MAX_PAGE_SIZE: Final[int] = 1_000

TModel = TypeVar("TModel", bound=CanonicalModel)

_UPSERT_ITEM_SQL: Final[str] = """
INSERT INTO items (
    id,
    project_id,
    name,
    required_qty,
    completed_qty,
    created_at,
    updated_at,
    payload_json
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    project_id=excluded.project_id,
    name=excluded.name,
    required_qty=excluded.required_qty,
    completed_qty=excluded.completed_qty,
    created_at=excluded.created_at,
    updated_at=excluded.updated_at,
    payload_json=excluded.payload_json
"""

_INSERT_ITEM_SQL: Final[str] = """
INSERT INTO items (
    id,
    project_id,
    name,
    required_qty,
    completed_qty,
    created_at,
    updated_at,
    payload_json
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


class _BaseRepo:
    def __init__(self, db: StateDB) -> None:
        self._db = db
        self._db.migrate()

    def transaction(self) -> AbstractContextManager[sqlite3.Connection]:
        """Group writes from every repo on this state DB into one commit."""
        return self._db.unit_of_work()

    @staticmethod
    def _validate_page(limit: int, offset: int) -> None:
        if limit <= 0 or limit > _MAX_PAGE_SIZE:
            raise ValueError(f"limit must be in [1, {_MAX_PAGE_SIZE}]")
        if offset < 0:
            raise ValueError("offset must be >= 0")


class ItemRepo(_BaseRepo):
    """Document store for items; edges and contributions live inside each payload."""

    def add(self, item: Item) -> Item:
        return self._persist(item, upsert=False)

    def upsert(self, item: Item) -> Item:
        return self._persist(item, upsert=True)

    def save(self, item: Item) -> Item:
        return self.upsert(item)

    def find_by_id(self, item_id: str) -> Item | None:
        row = self._db.query_one("SELECT payload_json FROM items WHERE id = ?", (item_id,))
        if row is None:
            return None
        return _load_payload(Item, row, "items.payload_json")

    def find_by_name(self, project_id: str, name: str) -> Item | None:
        """Oldest item with ``name`` in the project; names are not unique."""
        row = self._db.query_one(
            """
            SELECT payload_json
            FROM items
            WHERE project_id = ? AND name = ?
            ORDER BY created_at ASC, id ASC
            LIMIT 1
            """,
            (project_id, name),
        )
        if row is None:
            return None
        return _load_payload(Item, row, "items.payload_json")

    def insert_many(self, items: Sequence[Item]) -> list[Item]:
        """Insert every item in one transaction; no graph validation is performed."""
        batch = list(items)
        if not batch:
            return []
        try:
            with self._db.transaction() as conn:
                self._db.executemany(
                    _INSERT_ITEM_SQL,
                    [_item_params(item) for item in batch],
                    conn=conn,
                )
        except sqlite3.IntegrityError as exc:
            raise StateDBError(f"bulk insert rejected, nothing was written: {exc}") from exc
        return batch

    def list_for_project(self, project_id: str) -> list[Item]:
        rows = self._db.query_all(
            """
            SELECT payload_json
            FROM items
            WHERE project_id = ?
            ORDER BY created_at ASC, id ASC
            """,
            (project_id,),
        )
        return [_load_payload(Item, row, "items.payload_json") for row in rows]

    def _persist(self, item: Item, *, upsert: bool) -> Item:
        try:
            with self._db.transaction() as conn:
                self._db.execute(
                    _UPSERT_ITEM_SQL if upsert else _INSERT_ITEM_SQL,
                    _item_params(item),
                    conn=conn,
                )
        except sqlite3.IntegrityError as exc:
            raise StateDBError(f"cannot persist item {item.id}: {exc}") from exc
        return item


class ActivityRepo(_BaseRepo):
    """Append-only repository for craft activity records."""

    def append(self, record: ActivityRecord) -> ActivityRecord:
        try:
            self._db.execute(
                """
                INSERT INTO activity (
                    id,
                    project_id,
                    item_id,
                    user_id,
                    quantity,
                    type,
                    created_at,
                    payload_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.project_id,
                    record.item_id,
                    record.user_id,
                    record.quantity,
                    record.type.value,
                    _iso8601z(record.created_at),
                    record.to_json(),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise StateDBError(f"cannot append activity {record.id}: {exc}") from exc
        return record

    def list_for_project(
        self,
        project_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ActivityRecord]:
        self._validate_page(limit, offset)
        rows = self._db.query_all(
            """
            SELECT payload_json
            FROM activity
            WHERE project_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (project_id, limit, offset),
        )
        return [_load_payload(ActivityRecord, row, "activity.payload_json") for row in rows]

    def list_for_item(
        self,
        item_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ActivityRecord]:
        self._validate_page(limit, offset)
        rows = self._db.query_all(
            """
            SELECT payload_json
            FROM activity
            WHERE item_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (item_id, limit, offset),
        )
        return [_load_payload(ActivityRecord, row, "activity.payload_json") for row in rows]


def _item_params(item: Item) -> SQLParams:
    return (
        item.id,
        item.project_id,
        item.name,
        item.required_qty,
        item.completed_qty,
        _iso8601z(item.created_at),
        _iso8601z(item.updated_at),
        item.to_json(),
    )


def _load_payload(
    model: type[TModel],
    row: Mapping[str, RowValue],
    path: str,
) -> TModel:
    try:
        return model.from_json(_row_text(row, "payload_json", path))
    except ValueError as exc:
        raise StateDBCorruptionError(f"stored payload failed validation: {exc}") from exc


def _row_text(row: Mapping[str, RowValue], key: str, path: str) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected text value")
    return value


def _iso8601z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = ["ActivityRepo", "ItemRepo"]
