"""
Storage service.

The only entry point the rest of the application uses. Forwards every call
to the factory's current backend, so the provider can be swapped without
callers noticing.

Usage:
    service = StorageService.from_settings()
    await service.initialize()

    card = await service.save_card(BusinessCard(name="Ann"))
    await service.switch_provider(new_config)
"""

import json
from typing import Any

from pydantic import ValidationError

from db.base import StorageBackend
from db.exceptions import ConfigError, NotInitializedError
from db.factory import BackendBuilder, BackendFactory
from db.kv import KeyValueStore, SQLiteKeyValueStore
from db.migrations import MigrationRunner
from models import (
    AnalyticsSummary,
    BusinessCard,
    CardView,
    DatabaseConfig,
    DatabaseProvider,
    TeamMember,
    TeamMemberUpdate,
    local_config,
)
from utils.logging import get_logger, operation_context

logger = get_logger("db.service")

CONFIG_KEY = "sparx_db_config"


class StorageService:
    """
    Façade over the active backend and the migration runner.

    Holds no state of its own beyond references to the factory, the runner
    and the store the configuration is persisted in.
    """

    def __init__(
        self,
        factory: BackendFactory,
        runner: MigrationRunner,
        config_store: KeyValueStore,
        default_config: DatabaseConfig | None = None,
    ):
        self._factory = factory
        self._runner = runner
        self._config_store = config_store
        self._default_config = default_config or local_config()

    @classmethod
    def from_settings(
        cls,
        settings=None,
        builders: dict[DatabaseProvider, BackendBuilder] | None = None,
    ) -> "StorageService":
        """
        Build the service from application settings.

        The on-device store holds the local provider's data, the persisted
        configuration and the schema version.
        """
        if settings is None:
            from app_settings import get_settings

            settings = get_settings()

        store = SQLiteKeyValueStore(settings.local_store_path)
        factory = BackendFactory(local_store=store, builders=builders)
        runner = MigrationRunner(store, factory.get_instance)
        return cls(factory, runner, store, default_config=settings.default_database_config())

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    async def load_config(self) -> DatabaseConfig:
        """Persisted configuration, or the default when none was saved."""
        raw = await self._config_store.get_item(CONFIG_KEY)
        if raw is None:
            return self._default_config
        try:
            return DatabaseConfig.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(f"Stored database configuration is invalid: {e}") from e

    async def save_config(self, config: DatabaseConfig) -> None:
        await self._config_store.set_json(CONFIG_KEY, config.to_record())

    def get_current_config(self) -> DatabaseConfig | None:
        return self._factory.get_current_config()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def initialize(
        self, config: DatabaseConfig | None = None, run_migrations: bool = True
    ) -> bool:
        """
        Create and connect the backend, then bring the schema up to date.

        Args:
            config: Configuration to use. Persisted when given; otherwise the
                persisted (or default) configuration is loaded.
            run_migrations: Apply pending migrations after connecting

        Returns:
            True once the backend is connected
        """
        with operation_context():
            resolved = config or await self.load_config()
            backend = self._factory.create_backend(resolved)
            await backend.connect()

            if config is not None:
                await self.save_config(config)
            if run_migrations:
                await self._runner.migrate_to_latest()

            logger.info(f"[STORAGE] Initialized with {backend.name} provider")
            return True

    async def switch_provider(self, config: DatabaseConfig) -> bool:
        """
        Switch to another provider and persist the choice.

        The new backend gets the schema of every applied migration, then any
        pending migrations are applied.
        """
        with operation_context():
            backend = await self._factory.switch_provider(config)
            await self._runner.provision(backend)
            await self._runner.migrate_to_latest()
            await self.save_config(config)
            logger.info(f"[STORAGE] Now using {backend.name} provider")
            return True

    async def shutdown(self) -> None:
        await self._factory.close()
        await self._config_store.close()

    def _backend(self) -> StorageBackend:
        backend = self._factory.get_instance()
        if backend is None:
            raise NotInitializedError()
        return backend

    @property
    def backend_name(self) -> str | None:
        backend = self._factory.get_instance()
        return backend.name if backend is not None else None

    def is_connected(self) -> bool:
        backend = self._factory.get_instance()
        return backend is not None and backend.is_connected()

    # =========================================================================
    # MIGRATIONS
    # =========================================================================

    async def run_migrations(self) -> bool:
        self._backend()
        return await self._runner.migrate_to_latest()

    async def rollback_migrations(self, target_version: int) -> bool:
        self._backend()
        return await self._runner.rollback_to_version(target_version)

    async def get_database_version(self) -> int:
        return await self._runner.get_current_version()

    async def get_migration_status(self) -> dict[str, Any]:
        return await self._runner.get_status()

    # =========================================================================
    # CARDS
    # =========================================================================

    async def get_card(self, card_id: str) -> BusinessCard | None:
        return await self._backend().get_card(card_id)

    async def get_cards(self) -> list[BusinessCard]:
        return await self._backend().get_cards()

    async def save_card(self, card: BusinessCard | dict[str, Any]) -> BusinessCard:
        return await self._backend().save_card(card)

    async def update_card(self, card: BusinessCard | dict[str, Any]) -> BusinessCard:
        return await self._backend().update_card(card)

    async def delete_card(self, card_id: str) -> bool:
        return await self._backend().delete_card(card_id)

    async def get_user_cards(self, user_id: str) -> list[BusinessCard]:
        return await self._backend().get_user_cards(user_id)

    async def get_team_cards(self, team_id: str) -> list[BusinessCard]:
        return await self._backend().get_team_cards(team_id)

    # =========================================================================
    # TEAMS
    # =========================================================================

    async def get_team_members(self, team_id: str) -> list[TeamMember]:
        return await self._backend().get_team_members(team_id)

    async def add_team_member(
        self, team_id: str, member: TeamMember | dict[str, Any]
    ) -> TeamMember:
        return await self._backend().add_team_member(team_id, member)

    async def update_team_member(
        self,
        team_id: str,
        member_id: str,
        updates: TeamMemberUpdate | dict[str, Any],
    ) -> TeamMember:
        return await self._backend().update_team_member(team_id, member_id, updates)

    async def remove_team_member(self, team_id: str, member_id: str) -> bool:
        return await self._backend().remove_team_member(team_id, member_id)

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    async def record_card_view(
        self, card_id: str, view_data: CardView | dict[str, Any] | None = None
    ) -> bool:
        return await self._backend().record_card_view(card_id, view_data)

    async def get_card_analytics(self, card_id: str) -> AnalyticsSummary:
        return await self._backend().get_card_analytics(card_id)

    async def clear_all_data(self) -> bool:
        return await self._backend().clear_all_data()
