"""
Pytest configuration and fixtures for testing.

This module provides:
- Connected backends for every provider (local, postgres on SQLite,
  firebase and supabase over in-process fakes)
- A parametrized ``any_backend`` fixture for contract tests
- Factory, runner and service fixtures wired to an in-memory store
"""

import os

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["DB_PROVIDER"] = "local"

import pytest

from db.backends import FirebaseBackend, LocalBackend, PostgresBackend, SupabaseBackend
from db.base import Collection, StorageBackend
from db.factory import BackendFactory
from db.kv import MemoryKeyValueStore
from db.migrations import MigrationRunner
from db.service import StorageService
from models import (
    BusinessCard,
    DatabaseConfig,
    DatabaseProvider,
    FirebaseConfig,
    LocalConfig,
    PostgresConfig,
    SupabaseConfig,
)
from tests.fakes import FakeFirestoreClient, FakeSupabaseClient

PROVIDERS = ["local", "postgres", "firebase", "supabase"]


# =============================================================================
# CONFIG HELPERS
# =============================================================================


def make_config(provider: str) -> DatabaseConfig:
    """DatabaseConfig for ``provider`` pointing at test-only resources."""
    if provider == "local":
        return DatabaseConfig(provider=DatabaseProvider.LOCAL, local=LocalConfig())
    if provider == "postgres":
        return DatabaseConfig(
            provider=DatabaseProvider.POSTGRES,
            postgres=PostgresConfig(url="sqlite://"),
        )
    if provider == "firebase":
        return DatabaseConfig(
            provider=DatabaseProvider.FIREBASE,
            firebase=FirebaseConfig(project_id="sparx-test"),
        )
    if provider == "supabase":
        return DatabaseConfig(
            provider=DatabaseProvider.SUPABASE,
            supabase=SupabaseConfig(url="https://sparx-test.supabase.co", key="test-key"),
        )
    raise ValueError(provider)


def build_backend(provider: str) -> StorageBackend:
    """Unconnected backend for ``provider``."""
    if provider == "local":
        return LocalBackend(MemoryKeyValueStore())
    if provider == "postgres":
        return PostgresBackend(PostgresConfig(url="sqlite://"))
    if provider == "firebase":
        return FirebaseBackend(FirebaseConfig(project_id="sparx-test"), client=FakeFirestoreClient())
    if provider == "supabase":
        return SupabaseBackend(
            SupabaseConfig(url="https://sparx-test.supabase.co", key="test-key"),
            client=FakeSupabaseClient(),
        )
    raise ValueError(provider)


async def connect_with_schema(backend: StorageBackend) -> StorageBackend:
    await backend.connect()
    for collection in Collection:
        await backend.ensure_collection(collection)
    return backend


def card(name: str = "Ann", **fields) -> BusinessCard:
    return BusinessCard(name=name, **fields)


# =============================================================================
# BACKEND FIXTURES
# =============================================================================


@pytest.fixture
async def local_backend():
    backend = await connect_with_schema(build_backend("local"))
    yield backend
    await backend.disconnect()


@pytest.fixture
async def postgres_backend():
    backend = await connect_with_schema(build_backend("postgres"))
    yield backend
    await backend.disconnect()


@pytest.fixture
async def firebase_backend():
    backend = await connect_with_schema(build_backend("firebase"))
    yield backend
    await backend.disconnect()


@pytest.fixture
async def supabase_backend():
    backend = await connect_with_schema(build_backend("supabase"))
    yield backend
    await backend.disconnect()


@pytest.fixture(params=PROVIDERS)
async def any_backend(request):
    """Each connected provider in turn."""
    backend = await connect_with_schema(build_backend(request.param))
    yield backend
    await backend.disconnect()


@pytest.fixture(params=PROVIDERS)
def disconnected_backend(request) -> StorageBackend:
    """Each provider, never connected."""
    return build_backend(request.param)


# =============================================================================
# FACTORY / SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def firestore_client() -> FakeFirestoreClient:
    return FakeFirestoreClient()


@pytest.fixture
def supabase_client() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def factory(kv_store, firestore_client, supabase_client) -> BackendFactory:
    return BackendFactory(
        local_store=kv_store,
        builders={
            DatabaseProvider.FIREBASE: lambda block: FirebaseBackend(block, client=firestore_client),
            DatabaseProvider.SUPABASE: lambda block: SupabaseBackend(block, client=supabase_client),
        },
    )


@pytest.fixture
def runner(kv_store, factory) -> MigrationRunner:
    return MigrationRunner(kv_store, factory.get_instance)


@pytest.fixture
async def service(factory, runner, kv_store):
    storage = StorageService(factory, runner, kv_store)
    yield storage
    await storage.shutdown()
