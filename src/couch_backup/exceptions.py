"""
Exceptions for the couch backup system.

All errors raised by this package derive from BackupError so callers at the
scheduling boundary can turn them into failed results.
"""

from typing import Optional


RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class BackupError(Exception):
    """Base class for all backup errors."""


class ConfigurationError(BackupError):
    """Raised when the configuration is missing or invalid."""


class StoreRequestError(BackupError):
    """Raised when a request against a document store fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url

    @property
    def retryable(self) -> bool:
        """Transport failures (no status) and transient HTTP statuses can be retried."""
        return self.status_code is None or self.status_code in RETRYABLE_STATUS_CODES


class DocumentConflictError(StoreRequestError):
    """Raised when a document write is rejected because its revision is stale."""

    @property
    def retryable(self) -> bool:
        return False


class RevisionUnavailableError(StoreRequestError):
    """Raised when the source no longer holds a revision (missing or compacted)."""

    @property
    def retryable(self) -> bool:
        return False


class CatalogError(BackupError):
    """Raised when the dataset catalog cannot be listed."""


class ChangeFeedError(BackupError):
    """Raised when a change feed cannot be read."""


class TargetCreationError(BackupError):
    """Raised when a backup store cannot be created."""


class BootstrapDeploymentError(BackupError):
    """Raised when the bootstrap application cannot be deployed to a backup store."""


class CheckpointConflictError(BackupError):
    """Raised when a checkpoint write keeps losing to concurrent writers."""
