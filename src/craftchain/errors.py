"""Structured error kinds surfaced by the graph engine and its serving layer.

Every failure carries a stable ``kind`` plus a human-readable message so a thin
HTTP or CLI layer can marshal it without inspecting exception types. Validation
always runs before mutation, so raising any of these means nothing was written.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar, Final


class ErrorKind(StrEnum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    INVALID_OPERATION = "invalid_operation"
    DEPENDENCY_INCOMPLETE = "dependency_incomplete"
    STORAGE_ERROR = "storage_error"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS_BY_KIND[self]


class InvalidOperationReason(StrEnum):
    SELF_DEPENDENCY = "self_dependency"
    DUPLICATE_EDGE = "duplicate_edge"
    CIRCULAR_DEPENDENCY = "circular_dependency"
    DEPENDENCY_LIMIT = "dependency_limit"
    CONTRIBUTION_LIMIT = "contribution_limit"


_HTTP_STATUS_BY_KIND: Final[dict[ErrorKind, int]] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_OPERATION: 400,
    ErrorKind.DEPENDENCY_INCOMPLETE: 400,
    ErrorKind.STORAGE_ERROR: 500,
}


class CraftChainError(Exception):
    """Base class for all structured craftchain failures."""

    kind: ClassVar[ErrorKind] = ErrorKind.STORAGE_ERROR

    def __init__(self, message: str, **details: object) -> None:
        self.message = message
        self.details = {key: value for key, value in details.items() if value is not None}
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"kind": self.kind.value, "message": self.message}
        for key in sorted(self.details):
            payload[key] = self.details[key]
        return payload


class InvalidInputError(CraftChainError, ValueError):
    """A required field is missing, malformed, or not a positive integer."""

    kind = ErrorKind.INVALID_INPUT


class NotFoundError(CraftChainError, LookupError):
    """A referenced item, project member, or contribution does not exist."""

    kind = ErrorKind.NOT_FOUND


class InvalidOperationError(CraftChainError):
    """The request is well-formed but would break a graph invariant."""

    kind = ErrorKind.INVALID_OPERATION

    def __init__(self, message: str, *, reason: InvalidOperationReason, **details: object) -> None:
        self.reason = reason
        super().__init__(message, reason=reason.value, **details)


class DependencyIncompleteError(CraftChainError):
    """Crafting was attempted before a prerequisite reached its edge quantity."""

    kind = ErrorKind.DEPENDENCY_INCOMPLETE

    def __init__(
        self,
        *,
        item_id: str,
        dependency_id: str,
        dependency_name: str,
        completed_qty: int,
        required_qty: int,
    ) -> None:
        self.item_id = item_id
        self.dependency_id = dependency_id
        self.dependency_name = dependency_name
        self.completed_qty = completed_qty
        self.required_qty = required_qty
        super().__init__(
            f'Cannot craft. Dependency "{dependency_name}" incomplete',
            item_id=item_id,
            dependency_id=dependency_id,
            dependency_name=dependency_name,
            completed_qty=completed_qty,
            required_qty=required_qty,
        )


class StorageError(CraftChainError, RuntimeError):
    """Opaque adapter failure; never retried by the graph engine."""

    kind = ErrorKind.STORAGE_ERROR


__all__ = [
    "CraftChainError",
    "DependencyIncompleteError",
    "ErrorKind",
    "InvalidInputError",
    "InvalidOperationError",
    "InvalidOperationReason",
    "NotFoundError",
    "StorageError",
]
