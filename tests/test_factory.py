"""
Tests for BackendFactory.

These tests verify:
- Creation and reuse of the held backend
- Config validation with provider-specific messages
- Safe provider switching (validate first, tolerate disconnect errors)
- The factory is left empty when the new backend fails to connect
"""

import asyncio

import pytest

from db.backends import LocalBackend, PostgresBackend
from db.exceptions import BackendError, ConfigError
from db.factory import BackendFactory
from db.kv import MemoryKeyValueStore
from models import DatabaseConfig, DatabaseProvider, PostgresConfig
from tests.conftest import make_config


class NeverConnects(LocalBackend):
    """Local backend whose connect reports failure without raising."""

    async def connect(self) -> bool:
        return False


class TestCreateBackend:
    """create_backend()"""

    def test_same_provider_returns_held_instance(self, factory):
        """A second call for the same provider reuses the instance."""
        first = factory.create_backend(make_config("local"))
        second = factory.create_backend(make_config("local"))

        assert first is second
        assert factory.get_instance() is first
        assert factory.get_current_config().provider == DatabaseProvider.LOCAL

    def test_does_not_connect(self, factory):
        """Connecting is the caller's job."""
        backend = factory.create_backend(make_config("postgres"))

        assert isinstance(backend, PostgresBackend)
        assert backend.is_connected() is False

    @pytest.mark.parametrize(
        "provider,message",
        [
            (
                DatabaseProvider.POSTGRES,
                "PostgreSQL configuration is required when using PostgreSQL provider",
            ),
            (
                DatabaseProvider.FIREBASE,
                "Firebase configuration is required when using Firebase provider",
            ),
            (
                DatabaseProvider.SUPABASE,
                "Supabase configuration is required when using Supabase provider",
            ),
        ],
    )
    def test_missing_block_is_config_error(self, factory, provider, message):
        """A remote provider without its block is rejected with a specific message."""
        with pytest.raises(ConfigError) as exc_info:
            factory.create_backend(DatabaseConfig(provider=provider))

        assert str(exc_info.value) == message
        assert factory.get_instance() is None

    def test_local_provider_needs_a_store(self):
        """Without a key-value store the local provider cannot be built."""
        with pytest.raises(ConfigError):
            BackendFactory().create_backend(make_config("local"))

    def test_provider_credentials_are_validated(self, factory):
        """Blocks missing required fields fail at build time."""
        config = DatabaseConfig(provider=DatabaseProvider.POSTGRES, postgres=PostgresConfig())

        with pytest.raises(ConfigError, match="host, database, user"):
            factory.create_backend(config)

    async def test_refuses_to_replace_connected_backend(self, factory):
        """Changing provider under a live backend goes through switch_provider."""
        backend = factory.create_backend(make_config("local"))
        await backend.connect()

        with pytest.raises(BackendError, match="switch_provider"):
            factory.create_backend(make_config("postgres"))

        assert factory.get_instance() is backend
        await factory.close()

    def test_replaces_unconnected_backend(self, factory):
        """An idle backend of another provider may be replaced."""
        factory.create_backend(make_config("local"))
        backend = factory.create_backend(make_config("postgres"))

        assert factory.get_instance() is backend
        assert factory.get_current_config().provider == DatabaseProvider.POSTGRES


class TestSwitchProvider:
    """switch_provider()"""

    async def test_switch_hands_over_to_connected_backend(self, factory):
        """The old backend is disconnected and the new one connected."""
        old = factory.create_backend(make_config("local"))
        await old.connect()

        new = await factory.switch_provider(make_config("postgres"))

        assert old.is_connected() is False
        assert new.is_connected() is True
        assert factory.get_instance() is new
        assert factory.get_current_config().provider == DatabaseProvider.POSTGRES
        await factory.close()

    async def test_switch_without_current_backend(self, factory):
        """Switching also works as a first connect."""
        backend = await factory.switch_provider(make_config("firebase"))

        assert backend.name == "firebase"
        assert backend.is_connected()
        await factory.close()

    async def test_invalid_config_leaves_current_backend_alone(self, factory):
        """Validation happens before the current backend is touched."""
        old = factory.create_backend(make_config("local"))
        await old.connect()

        with pytest.raises(ConfigError):
            await factory.switch_provider(DatabaseConfig(provider=DatabaseProvider.SUPABASE))

        assert factory.get_instance() is old
        assert old.is_connected() is True
        await factory.close()

    async def test_disconnect_error_is_tolerated(self, factory, monkeypatch):
        """A failing disconnect of the old backend does not abort the switch."""
        old = factory.create_backend(make_config("local"))
        await old.connect()

        async def broken_disconnect():
            raise BackendError("store closed underneath us")

        monkeypatch.setattr(old, "disconnect", broken_disconnect)

        new = await factory.switch_provider(make_config("postgres"))

        assert factory.get_instance() is new
        assert new.is_connected()
        await factory.close()

    async def test_connect_failure_leaves_no_backend(self, factory, tmp_path):
        """If the new backend cannot connect the factory holds nothing."""
        old = factory.create_backend(make_config("local"))
        await old.connect()
        unreachable = DatabaseConfig(
            provider=DatabaseProvider.POSTGRES,
            postgres=PostgresConfig(url=f"sqlite:///{tmp_path / 'missing' / 'cards.db'}"),
        )

        with pytest.raises(BackendError):
            await factory.switch_provider(unreachable)

        assert factory.get_instance() is None
        assert factory.get_current_config() is None
        assert old.is_connected() is False

    async def test_connect_returning_false_is_an_error(self):
        """A backend that reports a failed connect is not installed."""
        factory = BackendFactory(
            local_store=MemoryKeyValueStore(),
            builders={
                DatabaseProvider.LOCAL: lambda block: NeverConnects(MemoryKeyValueStore(), block)
            },
        )

        with pytest.raises(BackendError, match="did not connect"):
            await factory.switch_provider(make_config("local"))

        assert factory.get_instance() is None

    async def test_concurrent_switches_run_one_at_a_time(self, factory):
        """Only the last switch remains connected."""
        first, second = await asyncio.gather(
            factory.switch_provider(make_config("postgres")),
            factory.switch_provider(make_config("supabase")),
        )

        assert first.is_connected() is False
        assert second.is_connected() is True
        assert factory.get_instance() is second
        await factory.close()


class TestClose:
    """close()"""

    async def test_close_disconnects_and_forgets(self, factory):
        """After close the factory holds no backend."""
        backend = factory.create_backend(make_config("local"))
        await backend.connect()

        await factory.close()
        await factory.close()

        assert backend.is_connected() is False
        assert factory.get_instance() is None
        assert factory.get_current_config() is None
