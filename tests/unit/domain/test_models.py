"""Unit tests for item, contribution, activity and tree models."""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from craftchain.domain import ids, models


def _fixed_bytes(size: int) -> bytes:
    return b"\x01" * size


def _utc_dt() -> datetime:
    return datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


def _item(**overrides: object) -> models.Item:
    base = models.Item(
        id=ids.generate_item_id(timestamp_ms=100, randbytes=_fixed_bytes),
        project_id="proj-1",
        name="Sword",
        required_qty=3,
        created_at=_utc_dt(),
        updated_at=_utc_dt(),
    )
    return replace(base, **overrides)  # type: ignore[arg-type]


def test_item_json_is_canonical_and_roundtrips() -> None:
    hilt_id = ids.generate_item_id(timestamp_ms=101, randbytes=_fixed_bytes)
    contribution = models.Contribution(
        id=ids.generate_contribution_id(timestamp_ms=102, randbytes=_fixed_bytes),
        user_id="alice",
        qty=2,
        created_at=_utc_dt(),
    )
    item = _item(
        completed_qty=1,
        dependencies=(models.DependencyEdge(item_id=hilt_id, qty=2),),
        contributions=(contribution,),
    )

    raw = item.to_json()
    payload = json.loads(raw)

    assert raw == json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    assert payload["created_at"] == "2026-02-01T12:00:00.000000Z"
    assert payload["dependencies"] == [{"item_id": hilt_id, "qty": 2}]
    assert models.Item.from_json(raw) == item
    assert item.contributed_qty == 2
    assert item.edge_to(hilt_id) == models.DependencyEdge(item_id=hilt_id, qty=2)
    assert item.find_contribution(contribution.id) == contribution


def test_item_from_dict_fills_optional_fields() -> None:
    item_id = ids.generate_item_id(timestamp_ms=5, randbytes=_fixed_bytes)

    item = models.Item.from_dict(
        {"id": item_id, "project_id": "p", "name": " Hilt ", "required_qty": 1}
    )

    assert item.name == "Hilt"
    assert item.completed_qty == 0
    assert item.dependencies == ()
    assert item.is_complete is False


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"required_qty": 0}, "Item.required_qty"),
        ({"completed_qty": 4}, "must be <= Item.required_qty"),
        ({"completed_qty": -1}, "Item.completed_qty"),
        ({"name": "   "}, "Item.name"),
        ({"required_qty": True}, "expected integer"),
        ({"updated_at": _utc_dt() - timedelta(seconds=1)}, "Item.updated_at"),
        ({"created_at": datetime(2026, 2, 1)}, "timezone-aware"),
    ],
)
def test_item_rejects_invalid_fields(overrides: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        _item(**overrides)


def test_item_rejects_duplicate_edges_and_contribution_ids() -> None:
    dep = ids.generate_item_id(timestamp_ms=7, randbytes=_fixed_bytes)
    edge = models.DependencyEdge(item_id=dep, qty=1)
    with pytest.raises(ValueError, match="duplicate edge"):
        _item(dependencies=(edge, models.DependencyEdge(item_id=dep, qty=2)))

    entry = models.Contribution(
        id=ids.generate_contribution_id(timestamp_ms=8, randbytes=_fixed_bytes),
        user_id="bob",
        qty=1,
        created_at=_utc_dt(),
    )
    with pytest.raises(ValueError, match="duplicate contribution id"):
        _item(contributions=(entry, entry))


def test_stored_self_edge_is_representable() -> None:
    item = _item()
    looped = replace(item, dependencies=(models.DependencyEdge(item_id=item.id, qty=1),))

    assert looped.dependency_ids == (item.id,)


def test_from_dict_rejects_unknown_fields() -> None:
    payload = _item().to_dict()
    payload["colour"] = "red"

    with pytest.raises(ValueError, match="unexpected fields"):
        models.Item.from_dict(payload)


def test_activity_record_defaults_to_crafted() -> None:
    record = models.ActivityRecord(
        id=ids.generate_activity_id(timestamp_ms=9, randbytes=_fixed_bytes),
        project_id="proj-1",
        item_id=_item().id,
        user_id="alice",
        quantity=10,
        created_at=_utc_dt(),
    )

    payload = record.to_dict()
    assert payload["type"] == "crafted"
    assert models.ActivityRecord.from_dict(payload) == record
    with pytest.raises(ValueError, match="ActivityRecord.type"):
        models.ActivityRecord.from_dict({**payload, "type": "stolen"})


def test_tree_node_to_dict_shapes_markers() -> None:
    leaf = models.TreeNode(id="itm-leaf", name="Grip", required_qty=2, completed_qty=1)
    root = models.TreeNode(
        id="itm-root",
        name="Hilt",
        required_qty=1,
        completed_qty=0,
        children=(
            models.TreeEdge(
                dependency_id="itm-leaf",
                qty=2,
                status=models.TreeEdgeStatus.EXPANDED,
                node=leaf,
            ),
            models.TreeEdge(
                dependency_id="itm-gone",
                qty=1,
                status=models.TreeEdgeStatus.MISSING,
            ),
        ),
    )

    assert root.to_dict() == {
        "id": "itm-root",
        "name": "Hilt",
        "required_qty": 1,
        "completed_qty": 0,
        "dependencies": [
            {
                "dependency_id": "itm-leaf",
                "qty": 2,
                "status": "expanded",
                "node": {
                    "id": "itm-leaf",
                    "name": "Grip",
                    "required_qty": 2,
                    "completed_qty": 1,
                    "dependencies": [],
                },
            },
            {
                "dependency_id": "itm-gone",
                "qty": 1,
                "status": "missing",
                "message": "Dependency not found",
            },
        ],
    }
