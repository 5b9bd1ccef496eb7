"""
Core module for the Hosting Migrator.

This module contains the error taxonomy shared by every pipeline component.
"""

from hosting_migrator.core.exceptions import (
    MigrationError,
    ConfigurationError,
    AcquisitionError,
    BackupTooLargeError,
    ExtractionError,
    ParseError,
    UnsupportedPanelError,
    ItemMigrationError,
    ChecksumMismatchError,
    InfrastructureError,
    ServiceUnavailableError,
    StoreError,
    MigrationNotFoundError,
    InvalidStatusTransitionError,
    MigrationCancelledError,
    OperationResult,
)
from hosting_migrator.core.cancellation import CancellationToken

__all__ = [
    "MigrationError",
    "ConfigurationError",
    "AcquisitionError",
    "BackupTooLargeError",
    "ExtractionError",
    "ParseError",
    "UnsupportedPanelError",
    "ItemMigrationError",
    "ChecksumMismatchError",
    "InfrastructureError",
    "ServiceUnavailableError",
    "StoreError",
    "MigrationNotFoundError",
    "InvalidStatusTransitionError",
    "MigrationCancelledError",
    "OperationResult",
    "CancellationToken",
]
