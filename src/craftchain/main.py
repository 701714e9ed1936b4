"""Executable CLI entrypoint for ``craftchain``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from craftchain.config import ConfigLoadError, ConfigValidationError
from craftchain.errors import CraftChainError, ErrorKind

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    INVALID_REQUEST = 1
    CONFIG_ERROR = 2
    NOT_FOUND = 3
    STORAGE_ERROR = 4
    INTERNAL_ERROR = 5


_EXIT_CODE_BY_KIND: dict[ErrorKind, ExitCode] = {
    ErrorKind.INVALID_INPUT: ExitCode.INVALID_REQUEST,
    ErrorKind.INVALID_OPERATION: ExitCode.INVALID_REQUEST,
    ErrorKind.DEPENDENCY_INCOMPLETE: ExitCode.INVALID_REQUEST,
    ErrorKind.NOT_FOUND: ExitCode.NOT_FOUND,
    ErrorKind.STORAGE_ERROR: ExitCode.STORAGE_ERROR,
}


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m craftchain`` and script shims."""

    try:
        from craftchain.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = exit_code_for_error(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def exit_code_for_error(exc: BaseException) -> ExitCode:
    """Map an exception (or anything in its cause chain) to a process exit code."""

    for item in _iter_exception_chain(exc):
        if isinstance(item, CraftChainError):
            return _EXIT_CODE_BY_KIND[item.kind]
        if isinstance(item, (ConfigLoadError, ConfigValidationError)):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, int) and raw_code in {code.value for code in ExitCode}:
        return raw_code
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None:
        marker = id(current)
        if marker in seen:
            break
        seen.add(marker)
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
            continue
        if current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
            continue
        break
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for_error"]
