"""Input checks shared by the graph components."""

from __future__ import annotations

from craftchain.errors import InvalidInputError


def require_text(value: object, field: str, *, max_len: int | None = None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{field} is required", field=field)
    normalized = value.strip()
    if max_len is not None and len(normalized) > max_len:
        raise InvalidInputError(
            f"{field} must be at most {max_len} characters", field=field, max_len=max_len
        )
    return normalized


def require_positive_qty(value: object, field: str) -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidInputError(f"{field} must be a positive integer", field=field)
    return value


__all__ = ["require_positive_qty", "require_text"]
