"""
Migration Runner.

Handles discovery, execution, and tracking of schema migrations.

The current schema version is a single integer in the durable key-value
store, separate from the active backend, so it survives provider switches.
"""

import importlib.util
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from db.base import StorageBackend
from db.exceptions import BackendError, ConfigError, NotInitializedError
from db.kv import KeyValueStore
from utils.logging import get_logger

logger = get_logger("db.migrations")

# Migration directory
MIGRATIONS_DIR = Path(__file__).parent / "versions"

# Allowed migration names (the part after NNN_)
NAME_PATTERN = r"[a-z0-9_]+"

VERSION_KEY = "sparx_db_version"

MigrationFn = Callable[[StorageBackend], Awaitable[None]]


async def _noop(backend: StorageBackend) -> None:
    return None


@dataclass
class Migration:
    """Represents a single migration."""

    version: int  # e.g., 1
    name: str  # e.g., "initial_schema"
    upgrade: MigrationFn
    downgrade: MigrationFn
    description: str = ""

    @property
    def full_name(self) -> str:
        """Get full migration name (version_name)."""
        return f"{self.version:03d}_{self.name}"


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> list[Migration]:
    """
    Load migrations from ``NNN_name.py`` files in ``directory``.

    Each file defines ``async upgrade(backend)``, optionally
    ``async downgrade(backend)`` and ``DESCRIPTION``.

    Raises:
        ConfigError: a migration file cannot be loaded or has no upgrade
    """
    migrations: list[Migration] = []

    if not directory.exists():
        logger.warning(f"[MIGRATIONS] Versions directory not found: {directory}")
        return migrations

    # Pattern: NNN_name.py (e.g., 001_initial_schema.py)
    pattern = re.compile(rf"^(\d{{3}})_({NAME_PATTERN})\.py$")

    for file_path in sorted(directory.glob("*.py")):
        if file_path.name.startswith("_"):
            continue

        match = pattern.match(file_path.name)
        if not match:
            logger.warning(f"[MIGRATIONS] Skipping invalid migration file: {file_path.name}")
            continue

        version = int(match.group(1))
        name = match.group(2)

        try:
            spec = importlib.util.spec_from_file_location(
                f"sparx_migration_{version:03d}_{name}", file_path
            )
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except Exception as e:
            logger.error(f"[MIGRATIONS] Failed to load {file_path.name}: {e}")
            raise ConfigError(f"Cannot load migration {file_path.name}: {e}") from e

        upgrade_fn = getattr(module, "upgrade", None)
        if upgrade_fn is None:
            raise ConfigError(f"Migration {file_path.name} is missing an upgrade function")

        migration = Migration(
            version=version,
            name=name,
            upgrade=upgrade_fn,
            downgrade=getattr(module, "downgrade", None) or _noop,
            description=getattr(module, "DESCRIPTION", ""),
        )
        migrations.append(migration)
        logger.debug(f"[MIGRATIONS] Discovered: {migration.full_name}")

    return migrations


class MigrationRunner:
    """
    Applies and reverts ordered migrations against the active backend.

    Features:
    - Discovers migrations from db/migrations/versions/ unless given a list
    - Persists the version after every single step
    - Fail-stop: the first failure aborts the run, nothing is retried
    """

    def __init__(
        self,
        version_store: KeyValueStore,
        backend_source: Callable[[], StorageBackend | None],
        migrations: list[Migration] | None = None,
    ):
        """
        Initialize migration runner.

        Args:
            version_store: Durable store holding the schema version
            backend_source: Returns the backend migrations run against
            migrations: Explicit migration list (discovered when omitted)
        """
        self._store = version_store
        self._backend_source = backend_source
        self._migrations = discover_migrations() if migrations is None else list(migrations)

        previous = 0
        for migration in self._migrations:
            if migration.version <= previous:
                raise ConfigError(
                    f"Migration versions must be strictly ascending from 1: "
                    f"{migration.full_name} follows version {previous}"
                )
            previous = migration.version

    @property
    def migrations(self) -> list[Migration]:
        return list(self._migrations)

    def get_latest_version(self) -> int:
        return self._migrations[-1].version if self._migrations else 0

    def _backend(self) -> StorageBackend:
        backend = self._backend_source()
        if backend is None:
            raise NotInitializedError("No active backend to migrate")
        return backend

    # =========================================================================
    # VERSION TRACKING
    # =========================================================================

    async def get_current_version(self) -> int:
        """Persisted schema version, 0 when nothing has been applied."""
        raw = await self._store.get_item(VERSION_KEY)
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError as e:
            raise BackendError(
                f"Stored schema version is not an integer: {raw!r}",
                operation="get_current_version",
            ) from e

    async def _set_version(self, version: int) -> None:
        await self._store.set_item(VERSION_KEY, str(version))

    # =========================================================================
    # MIGRATE / ROLLBACK
    # =========================================================================

    async def migrate_to_latest(self) -> bool:
        """
        Apply every migration above the current version, in ascending order.

        Returns:
            True if at least one migration ran
        """
        current = await self.get_current_version()
        latest = self.get_latest_version()

        if current >= latest:
            logger.info(f"[MIGRATIONS] Schema is current (version {current})")
            return False

        backend = self._backend()
        for migration in self._migrations:
            if migration.version <= current:
                continue

            logger.info(f"[MIGRATIONS] Applying {migration.full_name}: {migration.description}")
            try:
                await migration.upgrade(backend)
            except Exception as e:
                logger.error(f"[MIGRATIONS] Failed to apply {migration.full_name}: {e}")
                raise

            await self._set_version(migration.version)
            logger.info(f"[MIGRATIONS] Applied {migration.full_name}")

        return True

    async def rollback_to_version(self, target: int) -> bool:
        """
        Revert migrations above ``target``, newest first.

        After each downgrade the version drops to the next lower migration
        (or 0), stopping once it is at or below ``target``.

        Returns:
            True if at least one migration was reverted
        """
        if target < 0:
            raise ConfigError(f"Rollback target must be >= 0, got {target}")

        current = await self.get_current_version()
        if current <= target:
            logger.info(f"[MIGRATIONS] Nothing to roll back (version {current})")
            return False

        backend = self._backend()
        for index in range(len(self._migrations) - 1, -1, -1):
            migration = self._migrations[index]
            if migration.version > current:
                continue

            logger.info(f"[MIGRATIONS] Rolling back {migration.full_name}")
            try:
                await migration.downgrade(backend)
            except Exception as e:
                logger.error(f"[MIGRATIONS] Failed to rollback {migration.full_name}: {e}")
                raise

            new_version = self._migrations[index - 1].version if index > 0 else 0
            await self._set_version(new_version)
            logger.info(f"[MIGRATIONS] Rolled back {migration.full_name}")

            if new_version <= target:
                break

        return True

    async def provision(self, backend: StorageBackend) -> int:
        """
        Replay the upgrades of every applied migration against ``backend``.

        Used after a provider switch so the new backend has the schema the
        version says it has. The version itself is not changed.

        Returns:
            Number of upgrades replayed
        """
        current = await self.get_current_version()
        replayed = 0
        for migration in self._migrations:
            if migration.version > current:
                break
            await migration.upgrade(backend)
            replayed += 1

        if replayed:
            logger.info(f"[MIGRATIONS] Provisioned {backend.name} up to version {current}")
        return replayed

    async def get_status(self) -> dict[str, Any]:
        """Get migration status."""
        current = await self.get_current_version()

        def describe(m: Migration) -> dict[str, Any]:
            return {"version": m.version, "name": m.name, "description": m.description}

        applied = [m for m in self._migrations if m.version <= current]
        pending = [m for m in self._migrations if m.version > current]

        return {
            "current_version": current,
            "latest_version": self.get_latest_version(),
            "total_migrations": len(self._migrations),
            "applied_count": len(applied),
            "pending_count": len(pending),
            "applied_migrations": [describe(m) for m in applied],
            "pending_migrations": [describe(m) for m in pending],
        }
