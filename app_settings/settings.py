"""
Pydantic Settings for the Sparx card storage layer.

This module provides type-safe, validated configuration using Pydantic BaseSettings.
Environment variables (and an optional .env file) are loaded once at startup.

Usage:
    from app_settings import settings

    print(settings.db_provider)
    config = settings.default_database_config()
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from models.config import (
    DatabaseConfig,
    DatabaseProvider,
    FirebaseConfig,
    LocalConfig,
    PostgresConfig,
    SupabaseConfig,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Provider credentials are optional here; a missing block only fails
    when that provider is actually selected.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # ENVIRONMENT
    # =========================================================================

    environment: Literal["local", "development", "production", "test"] = Field(
        default="local",
        description="Application environment",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # =========================================================================
    # LOGGING
    # =========================================================================

    log_level: str = Field(
        default="INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit JSON log lines instead of colored console output",
    )

    # =========================================================================
    # PATHS
    # =========================================================================

    data_dir: Optional[str] = Field(
        default=None,
        description="Base directory for on-device data (defaults to ./data)",
    )
    local_store_file: str = Field(
        default="sparx_storage.db",
        description="File name of the on-device key-value store inside data_dir",
    )

    # =========================================================================
    # DATABASE PROVIDER
    # =========================================================================

    db_provider: Literal["local", "postgres", "firebase", "supabase"] = Field(
        default="local",
        description="Storage provider used when no configuration has been persisted",
    )

    # =========================================================================
    # LOCAL
    # =========================================================================

    local_encrypt_data: bool = Field(
        default=False,
        description="Encrypt card data at rest in the local store",
    )
    local_encryption_key: Optional[str] = Field(
        default=None,
        description="Secret used to derive the local encryption key",
    )

    # =========================================================================
    # POSTGRES
    # =========================================================================

    postgres_url: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL, overrides the individual POSTGRES_* fields",
    )
    postgres_host: Optional[str] = None
    postgres_port: int = 5432
    postgres_database: Optional[str] = None
    postgres_user: Optional[str] = None
    postgres_password: Optional[str] = None
    postgres_ssl: bool = False

    # =========================================================================
    # FIREBASE
    # =========================================================================

    firebase_api_key: Optional[str] = None
    firebase_auth_domain: Optional[str] = None
    firebase_project_id: Optional[str] = None
    firebase_storage_bucket: Optional[str] = None
    firebase_messaging_sender_id: Optional[str] = None
    firebase_app_id: Optional[str] = None
    firebase_credentials_path: Optional[str] = Field(
        default=None,
        description="Service account JSON used by firebase-admin",
    )

    # =========================================================================
    # SUPABASE
    # =========================================================================

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.upper()

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def base_dir(self) -> Path:
        """Project root directory."""
        return Path(__file__).parent.parent

    @property
    def resolved_data_dir(self) -> Path:
        """Data directory, created on first access."""
        path = Path(self.data_dir) if self.data_dir else self.base_dir / "data"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def local_store_path(self) -> Path:
        return self.resolved_data_dir / self.local_store_file

    def default_database_config(self) -> DatabaseConfig:
        """
        Build the DatabaseConfig for the configured provider.

        Only the block for ``db_provider`` is populated. Incomplete credentials
        are passed through and rejected when the provider is built.
        """
        provider = DatabaseProvider(self.db_provider)
        config = DatabaseConfig(
            provider=provider,
            local=LocalConfig(
                encrypt_data=self.local_encrypt_data,
                encryption_key=self.local_encryption_key,
            ),
        )

        if provider == DatabaseProvider.POSTGRES and (self.postgres_url or self.postgres_host):
            config.postgres = PostgresConfig(
                url=self.postgres_url,
                host=self.postgres_host or "",
                port=self.postgres_port,
                database=self.postgres_database or "",
                user=self.postgres_user or "",
                password=self.postgres_password or "",
                ssl=self.postgres_ssl,
            )
        elif provider == DatabaseProvider.FIREBASE and self.firebase_project_id:
            config.firebase = FirebaseConfig(
                api_key=self.firebase_api_key or "",
                auth_domain=self.firebase_auth_domain or "",
                project_id=self.firebase_project_id,
                storage_bucket=self.firebase_storage_bucket or "",
                messaging_sender_id=self.firebase_messaging_sender_id or "",
                app_id=self.firebase_app_id or "",
                credentials_path=self.firebase_credentials_path,
            )
        elif provider == DatabaseProvider.SUPABASE and self.supabase_url and self.supabase_key:
            config.supabase = SupabaseConfig(url=self.supabase_url, key=self.supabase_key)

        return config


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Global settings instance
settings = get_settings()
