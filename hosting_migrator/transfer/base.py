"""
Base classes for backup acquisition.

This module defines the abstract base class and common data structures
shared by every way of obtaining a source backup.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type
import logging

from hosting_migrator.core.exceptions import BackupTooLargeError
from hosting_migrator.models.config import BackupSource, MigrationSettings

logger = logging.getLogger(__name__)


@dataclass
class AcquiredBackup:
    """A backup that now lives in the migration's private workspace."""
    path: Path
    size: int
    is_directory: bool = False
    source_kind: str = "upload"
    metadata: Dict[str, Any] = field(default_factory=dict)


class SizeGuard:
    """Tracks bytes received and fails as soon as the limit is passed."""

    def __init__(self, limit: int, expected: Optional[int] = None):
        self.limit = limit
        self.received = 0
        if expected is not None:
            self.check(expected)

    def check(self, size: int) -> None:
        if size > self.limit:
            raise BackupTooLargeError(size, self.limit)

    def add(self, count: int) -> None:
        self.received += count
        self.check(self.received)


class AcquisitionMethod(ABC):
    """
    Abstract base class for all acquisition methods.

    A method copies or downloads one backup source into a destination
    directory owned by the migration, enforcing the configured size
    limit while it does so.
    """

    # Exceptions that count as transient and are retried by the acquirer
    retryable_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, settings: MigrationSettings):
        self.settings = settings
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def size_guard(self, expected: Optional[int] = None) -> SizeGuard:
        return SizeGuard(self.settings.max_backup_size, expected)

    @abstractmethod
    async def fetch(
        self,
        source: BackupSource,
        destination_dir: Path,
        allow_directory: bool = False
    ) -> AcquiredBackup:
        """
        Bring the backup into ``destination_dir``.

        Args:
            source: The backup source from the migration request
            destination_dir: Existing, private directory to write into
            allow_directory: Whether a directory tree is acceptable

        Returns:
            AcquiredBackup describing the local copy
        """
        pass

    async def cleanup(self) -> None:
        """Release connections held by the method."""
        pass
