"""SQLite persistence for item documents and the craft activity ledger."""

from __future__ import annotations

from craftchain.persistence.repositories import ActivityRepo, ItemRepo
from craftchain.persistence.state_db import (
    MigrationRecord,
    StateDB,
    StateDBBusyError,
    StateDBCorruptionError,
    StateDBError,
    StateDBMigrationError,
)

__all__ = [
    "ActivityRepo",
    "ItemRepo",
    "MigrationRecord",
    "StateDB",
    "StateDBBusyError",
    "StateDBCorruptionError",
    "StateDBError",
    "StateDBMigrationError",
]
