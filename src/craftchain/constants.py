"""Stable constants shared across craftchain layers."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
ITEM_SCHEMA_VERSION: Final[int] = 1
STATE_DB_SCHEMA_VERSION: Final[int] = 2

# Default runtime paths (relative to the config file directory unless overridden).
STATE_DIR: Final[PurePosixPath] = PurePosixPath("state")
DEFAULT_STATE_DB_PATH: Final[PurePosixPath] = STATE_DIR / "craftchain.sqlite"
LOGS_DIR: Final[PurePosixPath] = PurePosixPath("logs")

# Activity feed paging.
DEFAULT_ACTIVITY_FEED_LIMIT: Final[int] = 20
MAX_ACTIVITY_FEED_LIMIT: Final[int] = 500

# Size limits for item documents and the references they carry.
MAX_NAME_LENGTH: Final[int] = 256
MAX_REF_LENGTH: Final[int] = 128
MAX_DEPENDENCIES_PER_ITEM: Final[int] = 512
MAX_CONTRIBUTIONS_PER_ITEM: Final[int] = 10_000

# Display marker for an edge whose target was already expanded in the same tree.
CIRCULAR_DEPENDENCY_MESSAGE: Final[str] = "Circular dependency detected"
MISSING_DEPENDENCY_MESSAGE: Final[str] = "Dependency not found"

__all__ = [
    "CIRCULAR_DEPENDENCY_MESSAGE",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_ACTIVITY_FEED_LIMIT",
    "DEFAULT_STATE_DB_PATH",
    "ITEM_SCHEMA_VERSION",
    "LOGS_DIR",
    "MAX_ACTIVITY_FEED_LIMIT",
    "MAX_CONTRIBUTIONS_PER_ITEM",
    "MAX_DEPENDENCIES_PER_ITEM",
    "MAX_NAME_LENGTH",
    "MAX_REF_LENGTH",
    "MISSING_DEPENDENCY_MESSAGE",
    "STATE_DB_SCHEMA_VERSION",
    "STATE_DIR",
]
