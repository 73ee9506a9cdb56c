"""
Storage layer exceptions.

Every error raised by a provider, the factory, the migration runner or the
service derives from StorageError.
"""


class StorageError(Exception):
    """Base class for storage layer failures."""


class ConfigError(StorageError, ValueError):
    """Configuration is malformed or does not match the selected provider."""


class NotConnectedError(StorageError, ConnectionError):
    """An operation was attempted on a backend that is not connected."""

    def __init__(self, provider: str, operation: str):
        self.provider = provider
        self.operation = operation
        super().__init__(f"{provider} backend is not connected (operation: {operation})")


class BackendError(StorageError):
    """The underlying storage medium rejected an operation."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        operation: str | None = None,
        entity_id: str | None = None,
    ):
        self.provider = provider
        self.operation = operation
        self.entity_id = entity_id
        super().__init__(message)


class NotInitializedError(StorageError, RuntimeError):
    """StorageService was used before a backend was created."""

    def __init__(self, message: str = "Database not initialized"):
        super().__init__(message)
