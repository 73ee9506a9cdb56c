"""
Storage provider configuration.

A DatabaseConfig selects one provider and carries the parameter block that
provider needs. It is persisted as JSON so the choice survives restarts.
"""

from enum import Enum

from models.card import RecordModel


class DatabaseProvider(str, Enum):
    """Supported storage providers."""

    LOCAL = "local"
    POSTGRES = "postgres"
    FIREBASE = "firebase"
    SUPABASE = "supabase"

    @classmethod
    def _missing_(cls, value):
        # Generic tag names used by older persisted configs
        aliases = {
            "relational": cls.POSTGRES,
            "document-store": cls.FIREBASE,
            "rest-store": cls.SUPABASE,
        }
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


class LocalConfig(RecordModel):
    encrypt_data: bool = False
    encryption_key: str | None = None


class PostgresConfig(RecordModel):
    # Full SQLAlchemy URL. Takes precedence over the individual fields.
    url: str | None = None
    host: str = ""
    port: int = 5432
    database: str = ""
    user: str = ""
    password: str = ""
    ssl: bool = False


class FirebaseConfig(RecordModel):
    api_key: str = ""
    auth_domain: str = ""
    project_id: str = ""
    storage_bucket: str = ""
    messaging_sender_id: str = ""
    app_id: str = ""
    # Service account JSON for firebase-admin. Application default credentials when unset.
    credentials_path: str | None = None


class SupabaseConfig(RecordModel):
    url: str = ""
    key: str = ""


ProviderBlock = LocalConfig | PostgresConfig | FirebaseConfig | SupabaseConfig


class DatabaseConfig(RecordModel):
    """Tagged union: ``provider`` names which of the blocks below is used."""

    provider: DatabaseProvider = DatabaseProvider.LOCAL
    local: LocalConfig | None = None
    postgres: PostgresConfig | None = None
    firebase: FirebaseConfig | None = None
    supabase: SupabaseConfig | None = None

    def provider_block(self) -> ProviderBlock | None:
        """
        Return the parameter block matching ``provider``.

        The local block is optional and falls back to defaults. For remote
        providers a missing block returns None.
        """
        if self.provider == DatabaseProvider.LOCAL:
            return self.local or LocalConfig()
        return getattr(self, self.provider.value)

    def redacted(self) -> dict:
        """Config as a dict with secrets masked, for logging."""
        data = self.model_dump(mode="json", exclude_none=True)
        for block, secret in (
            ("local", "encryption_key"),
            ("postgres", "password"),
            ("postgres", "url"),
            ("firebase", "api_key"),
            ("supabase", "key"),
        ):
            if data.get(block, {}).get(secret):
                data[block][secret] = "***"
        return data


def local_config() -> DatabaseConfig:
    """Default configuration: unencrypted on-device storage."""
    return DatabaseConfig(provider=DatabaseProvider.LOCAL, local=LocalConfig())


__all__ = [
    "DatabaseConfig",
    "DatabaseProvider",
    "FirebaseConfig",
    "LocalConfig",
    "PostgresConfig",
    "ProviderBlock",
    "SupabaseConfig",
    "local_config",
]
