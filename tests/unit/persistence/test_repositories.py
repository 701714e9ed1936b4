"""Item document store and activity ledger repository tests."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

import pytest

from craftchain.domain.models import Item
from craftchain.graph.craft_engine import CraftEngine
from craftchain.persistence.repositories import ActivityRepo, ItemRepo
from craftchain.persistence.state_db import StateDB, StateDBCorruptionError, StateDBError

from . import make_activity, make_item, make_item_id, ts

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def db(tmp_path: Path) -> StateDB:
    return StateDB(tmp_path / "state" / "craftchain.sqlite")


def test_item_document_roundtrip_keeps_edges_and_contributions(db: StateDB) -> None:
    repo = ItemRepo(db)
    dep = make_item(1, name="Hilt")
    item = make_item(2, name="Sword", dependencies=(dep.id,), contributions=3)

    repo.add(dep)
    repo.add(item)

    loaded = repo.find_by_id(item.id)
    assert loaded == item
    assert loaded is not None and loaded.contributed_qty == 6
    assert repo.find_by_id(make_item_id(99)) is None


def test_add_rejects_existing_id_but_save_upserts(db: StateDB) -> None:
    repo = ItemRepo(db)
    item = make_item(1)
    repo.add(item)

    with pytest.raises(StateDBError):
        repo.add(item)

    progressed = replace(item, completed_qty=3, updated_at=ts(500))
    repo.save(progressed)
    assert repo.find_by_id(item.id) == progressed


def test_find_by_name_is_project_scoped_and_returns_oldest(db: StateDB) -> None:
    repo = ItemRepo(db)
    older = make_item(1, name="Plank")
    newer = make_item(5, name="Plank")
    other_project = make_item(0, name="Plank", project_id="proj-2")
    for item in (newer, older, other_project):
        repo.add(item)

    assert repo.find_by_name("proj-1", "Plank") == older
    assert repo.find_by_name("proj-2", "Plank") == other_project
    assert repo.find_by_name("proj-1", "Nail") is None


def test_list_for_project_orders_by_creation(db: StateDB) -> None:
    repo = ItemRepo(db)
    for seed in (3, 1, 2):
        repo.add(make_item(seed))
    repo.add(make_item(4, project_id="proj-2"))

    assert [item.name for item in repo.list_for_project("proj-1")] == [
        "Item 1",
        "Item 2",
        "Item 3",
    ]


def test_insert_many_is_all_or_nothing(db: StateDB) -> None:
    repo = ItemRepo(db)
    existing = make_item(1)
    repo.add(existing)

    with pytest.raises(StateDBError, match="nothing was written"):
        repo.insert_many([make_item(2), make_item(3), existing])

    assert [item.id for item in repo.list_for_project("proj-1")] == [existing.id]
    assert repo.insert_many([]) == []
    assert len(repo.insert_many([make_item(2), make_item(3)])) == 2


def test_corrupt_payload_surfaces_corruption_error(db: StateDB) -> None:
    repo = ItemRepo(db)
    item = make_item(1)
    repo.add(item)
    db.execute("UPDATE items SET payload_json = ? WHERE id = ?", ('{"id": 1}', item.id))

    with pytest.raises(StateDBCorruptionError, match="failed validation"):
        repo.find_by_id(item.id)


def test_activity_feed_is_newest_first_and_paged(db: StateDB) -> None:
    repo = ActivityRepo(db)
    item_id = make_item_id(1)
    for seed in range(1, 6):
        repo.append(make_activity(seed, item_id=item_id, quantity=seed))
    repo.append(make_activity(9, item_id=item_id, project_id="proj-2"))

    page = repo.list_for_project("proj-1", limit=2)
    assert [record.quantity for record in page] == [5, 4]
    assert [record.quantity for record in repo.list_for_project("proj-1", limit=2, offset=2)] == [
        3,
        2,
    ]
    assert len(repo.list_for_item(item_id)) == 6
    with pytest.raises(ValueError, match="limit"):
        repo.list_for_project("proj-1", limit=0)


def test_activity_append_rejects_duplicate_ids(db: StateDB) -> None:
    repo = ActivityRepo(db)
    record = make_activity(1, item_id=make_item_id(1))
    repo.append(record)

    assert repo.list_for_item(record.item_id) == [record]
    with pytest.raises(StateDBError):
        repo.append(record)


def test_transaction_spans_both_repositories(db: StateDB) -> None:
    items, activity = ItemRepo(db), ActivityRepo(db)
    existing = make_item(1)
    items.add(existing)
    record = make_activity(1, item_id=existing.id)

    with pytest.raises(StateDBError):
        with items.transaction(), activity.transaction():
            activity.append(record)
            assert activity.list_for_item(existing.id) == [record]
            items.add(existing)

    assert activity.list_for_item(existing.id) == []

    progressed = replace(existing, completed_qty=2, updated_at=ts(600))
    with items.transaction(), activity.transaction():
        activity.append(record)
        items.save(progressed)

    assert activity.list_for_item(existing.id) == [record]
    assert items.find_by_id(existing.id) == progressed


class _DiskFullItemRepo(ItemRepo):
    def save(self, item: Item) -> Item:
        raise StateDBError("disk full")


def test_failed_craft_save_rolls_back_the_activity_row(db: StateDB) -> None:
    items = _DiskFullItemRepo(db)
    activity = ActivityRepo(db)
    anvil = make_item(1, name="Anvil")
    items.add(anvil)

    with pytest.raises(StateDBError, match="disk full"):
        CraftEngine(items, activity).apply_progress(anvil.id, 2, user_id="alice")

    assert activity.list_for_project("proj-1") == []
    assert items.find_by_id(anvil.id) == anvil
