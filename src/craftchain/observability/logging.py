"""Structured logging setup: structlog over stdlib handlers, JSON lines, redaction."""

from __future__ import annotations

import logging
import re
import sys
import threading
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_REDACTED_VALUE: Final[str] = "***REDACTED***"
_DEFAULT_LOG_FILENAME: Final[str] = "craftchain.jsonl"
_ROOT_LOGGER_NAME: Final[str] = "craftchain"

_CORRELATION_KEYS: Final[frozenset[str]] = frozenset(
    {"project_id", "item_id", "user_id", "command", "correlation_id"}
)

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: LoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging settings, usually derived from the ``observability`` config section."""

    level: int | str = "WARNING"
    log_format: str = "json"
    log_dir: Path | None = None
    redact_secrets: bool = True
    console: bool = False
    console_stream: IO[str] | None = None
    log_filename: str = _DEFAULT_LOG_FILENAME

    @classmethod
    def from_settings(
        cls,
        observability: Mapping[str, object],
        *,
        console: bool = False,
        level_override: str | None = None,
    ) -> LoggingConfig:
        log_dir = observability.get("log_dir")
        return cls(
            level=level_override or str(observability.get("log_level", "WARNING")),
            log_format=str(observability.get("log_format", "json")),
            log_dir=Path(log_dir) if isinstance(log_dir, str) else None,
            redact_secrets=bool(observability.get("redact_secrets", True)),
            console=console,
        )


class LoggingHandle:
    """Runtime handle for an active logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        handlers: tuple[logging.Handler, ...],
        log_path: Path | None,
    ) -> None:
        self.logger = logger
        self.log_path = log_path
        self._handlers = handlers
        self._lock = threading.Lock()
        self._is_shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def shutdown(self) -> None:
        with self._lock:
            if self._is_shutdown:
                return
            for handler in self._handlers:
                handler.flush()
                self.logger.removeHandler(handler)
                handler.close()
            self._is_shutdown = True


def configure_logging(config: LoggingConfig) -> LoggingHandle:
    """Route structlog events through stdlib handlers; replaces any earlier setup."""
    global _ACTIVE_HANDLE

    level = _parse_log_level(config.level)
    if config.log_format not in ("json", "text"):
        raise ValueError(f"unsupported log_format {config.log_format!r}")

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if config.redact_secrets:
        shared.append(redact_event_dict)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handlers: list[logging.Handler] = []
    log_path: Path | None = None
    if config.log_dir is not None:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        log_path = config.log_dir / config.log_filename
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(_formatter(shared, structlog.processors.JSONRenderer()))
        handlers.append(file_handler)
    if config.console:
        renderer: Any = (
            structlog.processors.JSONRenderer()
            if config.log_format == "json"
            else structlog.dev.ConsoleRenderer(colors=False)
        )
        console_handler = logging.StreamHandler(config.console_stream or sys.stderr)
        console_handler.setFormatter(_formatter(shared, renderer))
        handlers.append(console_handler)

    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    with _ACTIVE_HANDLE_LOCK:
        if _ACTIVE_HANDLE is not None:
            _ACTIVE_HANDLE.shutdown()
        for handler in handlers:
            handler.setLevel(level)
            logger.addHandler(handler)
        if not handlers:
            logger.addHandler(logging.NullHandler())
        logger.setLevel(level)
        logger.propagate = False
        handle = LoggingHandle(logger=logger, handlers=tuple(handlers), log_path=log_path)
        _ACTIVE_HANDLE = handle
    return handle


def shutdown_logging(handle: LoggingHandle | None = None) -> None:
    """Flush and close sinks of ``handle`` (or the active one)."""
    global _ACTIVE_HANDLE

    with _ACTIVE_HANDLE_LOCK:
        resolved = handle if handle is not None else _ACTIVE_HANDLE
        if resolved is None:
            return
        resolved.shutdown()
        if _ACTIVE_HANDLE is resolved:
            _ACTIVE_HANDLE = None


def get_active_logging_handle() -> LoggingHandle | None:
    with _ACTIVE_HANDLE_LOCK:
        return _ACTIVE_HANDLE


def get_correlation_context() -> dict[str, Any]:
    return dict(structlog.contextvars.get_contextvars())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields for every log event in scope."""
    bound: dict[str, str] = {}
    for key, value in fields.items():
        if key not in _CORRELATION_KEYS:
            raise ValueError(f"unsupported correlation key {key!r}")
        if isinstance(value, str) and value.strip():
            bound[key] = value
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def redact_event_dict(
    logger: object,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor applying :func:`default_log_redactor` to every field."""
    del logger, method_name
    for key in list(event_dict):
        event_dict[key] = _redact_value(event_dict[key], key_context=key)
    return event_dict


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Deep redaction for secret-looking keys and inline credentials."""
    return _redact_value(value, key_context=None)


def _formatter(shared: list[Any], renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value

    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")

    normalized = value.strip().upper()
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed

    raise ValueError(f"unsupported logging level {value!r}")


def _redact_value(value: Any, *, key_context: str | None) -> Any:
    if key_context is not None and _requires_redaction_for_key(key_context):
        return _REDACTED_VALUE

    if isinstance(value, str):
        return _redact_string(value)

    if isinstance(value, (list, tuple)):
        return [_redact_value(item, key_context=None) for item in value]

    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=key) for key, item in value.items()}

    return value


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


def _redact_string(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", text
    )
    return _BEARER_TOKEN_PATTERN.sub(f"Bearer {_REDACTED_VALUE}", redacted)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LoggingConfig",
    "LoggingHandle",
    "configure_logging",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "redact_event_dict",
    "shutdown_logging",
]
