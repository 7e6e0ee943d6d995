from typing import Optional


class StorageError(Exception):
    """Base exception for persistence-related errors."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class DatabaseConnectionError(StorageError):
    """Raised for errors connecting to the database."""

    pass


class SchemaInitializationError(StorageError):
    """Raised for errors during schema setup."""

    pass


class StatsOperationError(StorageError):
    """Raised for errors reading or writing per-item statistics."""

    pass


class DeadlineOperationError(StorageError):
    """Indicates an error during a deadline-related database operation."""

    pass


class BaselineOperationError(StorageError):
    """Indicates an error reading or storing a motor baseline."""

    pass


class MarshallingError(StorageError):
    """Indicates an error during data conversion between application models
    and DB format."""

    pass
