"""
Backend factory.

Single authority for which storage provider is live. Holds at most one
backend instance and hands over safely when the provider changes.

Usage:
    factory = BackendFactory(local_store=SQLiteKeyValueStore(path))
    backend = factory.create_backend(config)
    await backend.connect()

    # Later, at runtime
    backend = await factory.switch_provider(new_config)
"""

import asyncio
from typing import Callable

from db.backends import FirebaseBackend, LocalBackend, PostgresBackend, SupabaseBackend
from db.base import StorageBackend
from db.exceptions import BackendError, ConfigError
from db.kv import KeyValueStore
from models import DatabaseConfig, DatabaseProvider, LocalConfig, ProviderBlock
from utils.logging import get_logger, operation_context

logger = get_logger("db.factory")

BackendBuilder = Callable[[ProviderBlock], StorageBackend]

MISSING_BLOCK_MESSAGES = {
    DatabaseProvider.POSTGRES: "PostgreSQL configuration is required when using PostgreSQL provider",
    DatabaseProvider.FIREBASE: "Firebase configuration is required when using Firebase provider",
    DatabaseProvider.SUPABASE: "Supabase configuration is required when using Supabase provider",
}


class BackendFactory:
    """
    Builds and owns the active StorageBackend.

    ``builders`` overrides how a provider is constructed from its config
    block, e.g. to inject a pre-built SDK client.
    """

    def __init__(
        self,
        local_store: KeyValueStore | None = None,
        builders: dict[DatabaseProvider, BackendBuilder] | None = None,
    ):
        self._local_store = local_store
        self._builders: dict[DatabaseProvider, BackendBuilder] = {
            DatabaseProvider.LOCAL: self._build_local,
            DatabaseProvider.POSTGRES: PostgresBackend,
            DatabaseProvider.FIREBASE: FirebaseBackend,
            DatabaseProvider.SUPABASE: SupabaseBackend,
        }
        if builders:
            self._builders.update(builders)

        self._instance: StorageBackend | None = None
        self._config: DatabaseConfig | None = None
        self._switch_lock = asyncio.Lock()

    def _build_local(self, block: LocalConfig) -> StorageBackend:
        if self._local_store is None:
            raise ConfigError("Local provider requires a key-value store")
        return LocalBackend(self._local_store, block)

    def _build(self, config: DatabaseConfig) -> StorageBackend:
        """Construct (not connect) a backend for ``config``."""
        block = config.provider_block()
        if block is None:
            raise ConfigError(MISSING_BLOCK_MESSAGES[config.provider])

        builder = self._builders.get(config.provider)
        if builder is None:
            raise ConfigError(f"Unsupported database provider: {config.provider}")
        return builder(block)

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_instance(self) -> StorageBackend | None:
        return self._instance

    def get_current_config(self) -> DatabaseConfig | None:
        return self._config

    # =========================================================================
    # CREATION / SWITCHING
    # =========================================================================

    def create_backend(self, config: DatabaseConfig) -> StorageBackend:
        """
        Return the backend for ``config``, building it if needed.

        If the held instance already has the same provider it is returned
        unchanged. Does not connect.

        Raises:
            ConfigError: the config has no block for its provider
            BackendError: a connected backend of another provider is live
        """
        if self._instance is not None and self._config.provider == config.provider:
            return self._instance

        if self._instance is not None and self._instance.is_connected():
            raise BackendError(
                f"A connected {self._instance.name} backend is active; "
                "use switch_provider to change providers"
            )

        backend = self._build(config)
        self._instance = backend
        self._config = config
        logger.info(f"[FACTORY] Created {backend.name} backend")
        return backend

    async def switch_provider(self, new_config: DatabaseConfig) -> StorageBackend:
        """
        Replace the active backend with a connected one for ``new_config``.

        The new config is validated before the current backend is touched.
        A failure to disconnect the current backend is logged and ignored.
        If the new backend fails to connect, the factory is left with no
        backend and the error is raised.

        Concurrent calls run one at a time.
        """
        async with self._switch_lock:
            with operation_context():
                backend = self._build(new_config)

                old = self._instance
                if old is not None:
                    try:
                        await old.disconnect()
                    except Exception as e:
                        logger.warning(
                            f"[FACTORY] Error disconnecting {old.name} backend, continuing: {e}"
                        )

                self._instance = None
                self._config = None

                try:
                    connected = await backend.connect()
                    if not connected:
                        raise BackendError(
                            f"{backend.name} backend did not connect",
                            provider=backend.name,
                            operation="connect",
                        )
                except Exception as e:
                    logger.error(f"[FACTORY] Switch to {backend.name} failed: {e}")
                    raise

                self._instance = backend
                self._config = new_config
                previous = old.name if old is not None else "none"
                logger.info(f"[FACTORY] Switched provider {previous} -> {backend.name}")
                return backend

    async def close(self) -> None:
        """Disconnect and forget the current backend."""
        backend = self._instance
        self._instance = None
        self._config = None
        if backend is not None:
            await backend.disconnect()
