"""
Schema migrations.

Migrations live in db/migrations/versions/ as ``NNN_name.py`` files. The
applied version is tracked in the durable key-value store.

Usage:
    python -m db.migrations migrate
    python -m db.migrations rollback --target 1
    python -m db.migrations status
    python -m db.migrations create "add card tags"
"""

from db.migrations.runner import (
    MIGRATIONS_DIR,
    VERSION_KEY,
    Migration,
    MigrationRunner,
    discover_migrations,
)

__all__ = [
    "MIGRATIONS_DIR",
    "VERSION_KEY",
    "Migration",
    "MigrationRunner",
    "discover_migrations",
]
