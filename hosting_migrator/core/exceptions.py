"""
Custom exceptions for the Hosting Migrator.

This module defines the error taxonomy of the migration pipeline.
Errors are split into step-fatal errors, which stop a whole migration,
and item-level errors, which are recorded on a single migration item
while the owning step carries on.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class MigrationError(Exception):
    """Base exception class for Hosting Migrator errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(MigrationError):
    """Raised when a migration request or the service settings are invalid."""
    pass


class AcquisitionError(MigrationError):
    """Raised when the source backup cannot be obtained."""
    pass


class BackupTooLargeError(AcquisitionError):
    """Raised when the acquired backup exceeds the configured size limit."""

    def __init__(self, size: int, limit: int, **kwargs):
        super().__init__(
            f"Backup file too large: {size} > {limit}",
            details={"size": size, "limit": limit},
            **kwargs
        )
        self.size = size
        self.limit = limit


class ExtractionError(MigrationError):
    """Raised when a backup archive is corrupt or has an unsupported format."""
    pass


class ParseError(MigrationError):
    """Raised when the extracted backup layout cannot be understood."""
    pass


class UnsupportedPanelError(ParseError):
    """Raised for control panels whose backup layout is not supported yet."""
    pass


class ItemMigrationError(MigrationError):
    """Raised when a single file, database, mailbox or zone fails to migrate."""
    pass


class ChecksumMismatchError(ItemMigrationError):
    """Raised when a copied file does not match its source checksum."""
    pass


class InfrastructureError(MigrationError):
    """Raised when a destination service cannot be used at all."""
    pass


class ServiceUnavailableError(InfrastructureError):
    """Raised when a destination database, mail or DNS service is unreachable."""
    pass


class StoreError(MigrationError):
    """Raised when the status store cannot read or write migration state."""
    pass


class MigrationNotFoundError(StoreError):
    """Raised when a migration id is unknown to the status store."""
    pass


class InvalidStatusTransitionError(StoreError):
    """Raised when a migration status would move backwards."""
    pass


class MigrationCancelledError(MigrationError):
    """Raised inside a running migration once cancellation was requested."""
    pass


@dataclass
class OperationResult:
    """Outcome of a best-effort operation that reports instead of raising."""
    success: bool
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **details) -> "OperationResult":
        return cls(success=True, details=details)

    @classmethod
    def failed(cls, error: str, **details) -> "OperationResult":
        return cls(success=False, error=error, details=details)
