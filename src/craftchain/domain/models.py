"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import NoReturn, TypeVar, cast

from craftchain.constants import (
    CIRCULAR_DEPENDENCY_MESSAGE,
    ITEM_SCHEMA_VERSION,
    MAX_CONTRIBUTIONS_PER_ITEM,
    MAX_DEPENDENCIES_PER_ITEM,
    MAX_NAME_LENGTH,
    MAX_REF_LENGTH,
    MISSING_DEPENDENCY_MESSAGE,
)
from craftchain.domain import ids as domain_ids

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_SCHEMA_VERSION = ITEM_SCHEMA_VERSION
_MAX_NAME = MAX_NAME_LENGTH
_MAX_REF = MAX_REF_LENGTH
_MAX_EDGES = MAX_DEPENDENCIES_PER_ITEM
_MAX_CONTRIBUTIONS = MAX_CONTRIBUTIONS_PER_ITEM


class ContributionType(StrEnum):
    CRAFTED = "crafted"
    RESOURCE = "resource"


class TreeEdgeStatus(StrEnum):
    EXPANDED = "expanded"
    TRUNCATED = "truncated"
    MISSING = "missing"


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        if not isinstance(raw, str):
            _fail(cls.__name__, f"expected JSON string, got {type(raw).__name__}")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_schema_version(value: object, path: str) -> int:
    return _as_int(value, path, minimum=1)


def _as_str(
    value: object,
    path: str,
    *,
    min_len: int = 1,
    max_len: int = _MAX_NAME,
) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _datetime_to_iso8601z(value: datetime) -> str:
    normalized = _as_datetime(value, "datetime")
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str, *, max_items: int) -> list[object]:
    if not isinstance(value, (list, tuple)):
        _fail(path, f"expected array, got {type(value).__name__}")
    if len(value) > max_items:
        _fail(path, f"too many items (>{max_items})")
    return list(value)


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, (int, str)):
        return value
    if isinstance(value, Enum):
        raw = value.value
        if not isinstance(raw, str):
            _fail(path, "enum value must be string")
        return raw
    if isinstance(value, datetime):
        return _datetime_to_iso8601z(value)
    if isinstance(value, (tuple, list)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out
    if is_dataclass(value):
        out_obj: dict[str, JSONValue] = {}
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = _serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


def _validate_item_id(value: str, path: str) -> str:
    try:
        domain_ids.validate_item_id(value)
    except ValueError as exc:
        _fail(path, str(exc))
    return value


def _validate_contribution_id(value: str, path: str) -> str:
    try:
        domain_ids.validate_contribution_id(value)
    except ValueError as exc:
        _fail(path, str(exc))
    return value


def _validate_activity_id(value: str, path: str) -> str:
    try:
        domain_ids.validate_activity_id(value)
    except ValueError as exc:
        _fail(path, str(exc))
    return value


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class DependencyEdge(CanonicalModel):
    """Directed requirement: the owning item needs ``qty`` of ``item_id`` completed first."""

    item_id: str
    qty: int

    def __post_init__(self) -> None:
        self.item_id = _validate_item_id(
            _as_str(self.item_id, "DependencyEdge.item_id", max_len=_MAX_REF),
            "DependencyEdge.item_id",
        )
        self.qty = _as_int(self.qty, "DependencyEdge.qty", minimum=1)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DependencyEdge:
        parsed = _expect_object(data, "DependencyEdge", required={"item_id", "qty"})
        return cls(
            item_id=_as_str(parsed["item_id"], "DependencyEdge.item_id", max_len=_MAX_REF),
            qty=_as_int(parsed["qty"], "DependencyEdge.qty", minimum=1),
        )


@dataclass(slots=True)
class Contribution(CanonicalModel):
    """Raw pledge embedded in an item; no dependency gating applies."""

    id: str
    user_id: str
    qty: int
    created_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        self.id = _validate_contribution_id(_as_str(self.id, "Contribution.id"), "Contribution.id")
        self.user_id = _as_str(self.user_id, "Contribution.user_id", max_len=_MAX_REF)
        self.qty = _as_int(self.qty, "Contribution.qty", minimum=1)
        self.created_at = _as_datetime(self.created_at, "Contribution.created_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Contribution:
        parsed = _expect_object(
            data,
            "Contribution",
            required={"id", "user_id", "qty", "created_at"},
        )
        return cls(
            id=_as_str(parsed["id"], "Contribution.id"),
            user_id=_as_str(parsed["user_id"], "Contribution.user_id", max_len=_MAX_REF),
            qty=_as_int(parsed["qty"], "Contribution.qty", minimum=1),
            created_at=_as_datetime(parsed["created_at"], "Contribution.created_at"),
        )


@dataclass(slots=True)
class Item(CanonicalModel):
    id: str
    project_id: str
    name: str
    required_qty: int
    completed_qty: int = 0
    dependencies: tuple[DependencyEdge, ...] = ()
    contributions: tuple[Contribution, ...] = ()
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
    schema_version: int = _SCHEMA_VERSION

    def __post_init__(self) -> None:
        self.schema_version = _as_schema_version(self.schema_version, "Item.schema_version")
        self.id = _validate_item_id(_as_str(self.id, "Item.id"), "Item.id")
        self.project_id = _as_str(self.project_id, "Item.project_id", max_len=_MAX_REF)
        self.name = _as_str(self.name, "Item.name")
        self.required_qty = _as_int(self.required_qty, "Item.required_qty", minimum=1)
        self.completed_qty = _as_int(self.completed_qty, "Item.completed_qty", minimum=0)
        if self.completed_qty > self.required_qty:
            _fail("Item.completed_qty", "must be <= Item.required_qty")

        edges = _as_sequence(self.dependencies, "Item.dependencies", max_items=_MAX_EDGES)
        seen_dependencies: set[str] = set()
        for index, edge in enumerate(edges):
            if not isinstance(edge, DependencyEdge):
                _fail(f"Item.dependencies[{index}]", "must be DependencyEdge")
            if edge.item_id in seen_dependencies:
                _fail(
                    f"Item.dependencies[{index}]",
                    f"duplicate edge to dependency {edge.item_id}",
                )
            seen_dependencies.add(edge.item_id)
        self.dependencies = tuple(cast("list[DependencyEdge]", edges))

        entries = _as_sequence(
            self.contributions, "Item.contributions", max_items=_MAX_CONTRIBUTIONS
        )
        seen_contributions: set[str] = set()
        for index, entry in enumerate(entries):
            if not isinstance(entry, Contribution):
                _fail(f"Item.contributions[{index}]", "must be Contribution")
            if entry.id in seen_contributions:
                _fail(f"Item.contributions[{index}]", f"duplicate contribution id {entry.id}")
            seen_contributions.add(entry.id)
        self.contributions = tuple(cast("list[Contribution]", entries))

        self.created_at = _as_datetime(self.created_at, "Item.created_at")
        self.updated_at = _as_datetime(self.updated_at, "Item.updated_at")
        if self.updated_at < self.created_at:
            _fail("Item.updated_at", "must be >= Item.created_at")

    @property
    def dependency_ids(self) -> tuple[str, ...]:
        return tuple(edge.item_id for edge in self.dependencies)

    @property
    def contributed_qty(self) -> int:
        """Sum of raw pledges; independent of ``completed_qty``."""
        return sum(entry.qty for entry in self.contributions)

    @property
    def is_complete(self) -> bool:
        return self.completed_qty >= self.required_qty

    def edge_to(self, dependency_id: str) -> DependencyEdge | None:
        for edge in self.dependencies:
            if edge.item_id == dependency_id:
                return edge
        return None

    def find_contribution(self, contribution_id: str) -> Contribution | None:
        for entry in self.contributions:
            if entry.id == contribution_id:
                return entry
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Item:
        parsed = _expect_object(
            data,
            "Item",
            required={"id", "project_id", "name", "required_qty"},
            optional={
                "completed_qty",
                "dependencies",
                "contributions",
                "created_at",
                "updated_at",
                "schema_version",
            },
        )
        now = _utc_now()
        edges = _as_sequence(
            parsed.get("dependencies", ()), "Item.dependencies", max_items=_MAX_EDGES
        )
        entries = _as_sequence(
            parsed.get("contributions", ()), "Item.contributions", max_items=_MAX_CONTRIBUTIONS
        )
        return cls(
            id=_as_str(parsed["id"], "Item.id"),
            project_id=_as_str(parsed["project_id"], "Item.project_id", max_len=_MAX_REF),
            name=_as_str(parsed["name"], "Item.name"),
            required_qty=_as_int(parsed["required_qty"], "Item.required_qty", minimum=1),
            completed_qty=_as_int(
                parsed.get("completed_qty", 0), "Item.completed_qty", minimum=0
            ),
            dependencies=tuple(
                edge if isinstance(edge, DependencyEdge) else DependencyEdge.from_dict(
                    _expect_object(
                        edge, f"Item.dependencies[{index}]", required={"item_id", "qty"}
                    )
                )
                for index, edge in enumerate(edges)
            ),
            contributions=tuple(
                entry if isinstance(entry, Contribution) else Contribution.from_dict(
                    _expect_object(
                        entry,
                        f"Item.contributions[{index}]",
                        required={"id", "user_id", "qty", "created_at"},
                    )
                )
                for index, entry in enumerate(entries)
            ),
            created_at=_as_datetime(parsed.get("created_at", now), "Item.created_at"),
            updated_at=_as_datetime(parsed.get("updated_at", now), "Item.updated_at"),
            schema_version=_as_schema_version(
                parsed.get("schema_version", _SCHEMA_VERSION), "Item.schema_version"
            ),
        )


@dataclass(slots=True)
class ActivityRecord(CanonicalModel):
    """Durable project activity entry written by the gated craft path."""

    id: str
    project_id: str
    item_id: str
    user_id: str
    quantity: int
    type: ContributionType = ContributionType.CRAFTED
    created_at: datetime = field(default_factory=_utc_now)
    schema_version: int = _SCHEMA_VERSION

    def __post_init__(self) -> None:
        self.schema_version = _as_schema_version(
            self.schema_version, "ActivityRecord.schema_version"
        )
        self.id = _validate_activity_id(_as_str(self.id, "ActivityRecord.id"), "ActivityRecord.id")
        self.project_id = _as_str(self.project_id, "ActivityRecord.project_id", max_len=_MAX_REF)
        self.item_id = _validate_item_id(
            _as_str(self.item_id, "ActivityRecord.item_id"), "ActivityRecord.item_id"
        )
        self.user_id = _as_str(self.user_id, "ActivityRecord.user_id", max_len=_MAX_REF)
        self.quantity = _as_int(self.quantity, "ActivityRecord.quantity", minimum=1)
        self.type = _as_enum(ContributionType, self.type, "ActivityRecord.type")
        self.created_at = _as_datetime(self.created_at, "ActivityRecord.created_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ActivityRecord:
        parsed = _expect_object(
            data,
            "ActivityRecord",
            required={"id", "project_id", "item_id", "user_id", "quantity", "created_at"},
            optional={"type", "schema_version"},
        )
        return cls(
            id=_as_str(parsed["id"], "ActivityRecord.id"),
            project_id=_as_str(parsed["project_id"], "ActivityRecord.project_id", max_len=_MAX_REF),
            item_id=_as_str(parsed["item_id"], "ActivityRecord.item_id"),
            user_id=_as_str(parsed["user_id"], "ActivityRecord.user_id", max_len=_MAX_REF),
            quantity=_as_int(parsed["quantity"], "ActivityRecord.quantity", minimum=1),
            type=_as_enum(
                ContributionType,
                parsed.get("type", ContributionType.CRAFTED),
                "ActivityRecord.type",
            ),
            created_at=_as_datetime(parsed["created_at"], "ActivityRecord.created_at"),
            schema_version=_as_schema_version(
                parsed.get("schema_version", _SCHEMA_VERSION), "ActivityRecord.schema_version"
            ),
        )


@dataclass(frozen=True, slots=True)
class TreeEdge:
    """One child slot of a tree node.

    ``node`` is populated only for ``EXPANDED`` edges. ``TRUNCATED`` marks a target
    that was already expanded elsewhere in the same traversal; ``MISSING`` marks a
    dangling reference.
    """

    dependency_id: str
    qty: int
    status: TreeEdgeStatus
    node: TreeNode | None = None

    @property
    def message(self) -> str | None:
        if self.status is TreeEdgeStatus.TRUNCATED:
            return CIRCULAR_DEPENDENCY_MESSAGE
        if self.status is TreeEdgeStatus.MISSING:
            return MISSING_DEPENDENCY_MESSAGE
        return None


@dataclass(frozen=True, slots=True)
class TreeNode:
    """Read-only materialized dependency tree rooted at one item."""

    id: str
    name: str
    required_qty: int
    completed_qty: int
    children: tuple[TreeEdge, ...] = ()

    def iter_nodes(self) -> Iterator[TreeNode]:
        """Yield every expanded node in depth-first preorder."""
        pending: list[TreeNode] = [self]
        while pending:
            node = pending.pop()
            yield node
            for edge in reversed(node.children):
                if edge.node is not None:
                    pending.append(edge.node)

    def to_dict(self) -> dict[str, JSONValue]:
        root_payload = self._shallow_dict()
        pending: list[tuple[TreeNode, dict[str, JSONValue]]] = [(self, root_payload)]
        while pending:
            node, payload = pending.pop()
            rendered: list[JSONValue] = []
            for edge in node.children:
                entry: dict[str, JSONValue] = {
                    "dependency_id": edge.dependency_id,
                    "qty": edge.qty,
                    "status": edge.status.value,
                }
                if edge.node is not None:
                    child_payload = edge.node._shallow_dict()
                    entry["node"] = child_payload
                    pending.append((edge.node, child_payload))
                else:
                    entry["message"] = edge.message
                rendered.append(entry)
            payload["dependencies"] = rendered
        return root_payload

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    def _shallow_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "name": self.name,
            "required_qty": self.required_qty,
            "completed_qty": self.completed_qty,
        }


__all__ = [
    "ActivityRecord",
    "CanonicalModel",
    "Contribution",
    "ContributionType",
    "DependencyEdge",
    "Item",
    "JSONValue",
    "TreeEdge",
    "TreeEdgeStatus",
    "TreeNode",
]
