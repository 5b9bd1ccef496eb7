"""
Interfaces of the destination platform services.

Item migrators write into the target platform exclusively through these
collaborators. Implementations raise ServiceUnavailableError when the
service cannot be reached at all, which stops the owning step, and
ItemMigrationError for a failure scoped to a single resource.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from hosting_migrator.core.exceptions import OperationResult
from hosting_migrator.models.manifest import DnsRecord


class DatabaseService(ABC):
    """Creates databases and database users on the destination server."""

    @abstractmethod
    async def create_database(self, name: str) -> None:
        pass

    @abstractmethod
    async def restore_dump(self, name: str, dump_file: str) -> None:
        """Load an SQL dump into an existing database."""
        pass

    @abstractmethod
    async def create_user(
        self,
        username: str,
        password: Optional[str],
        privileges: List[str],
        databases: List[str],
        password_hash: Optional[str] = None,
        host: str = "localhost"
    ) -> None:
        """Create a user, or reuse it if it exists, and grant it ``privileges`` on ``databases``."""
        pass


class EmailService(ABC):
    """Creates mailboxes on the destination mail server."""

    @abstractmethod
    async def create_mailbox(
        self,
        address: str,
        password: Optional[str],
        quota_mb: int,
        password_hash: Optional[str] = None
    ) -> None:
        pass


class DnsService(ABC):
    """Creates DNS zones on the destination name servers."""

    @abstractmethod
    async def create_zone(self, domain: str, records: List[DnsRecord], default_ttl: int) -> None:
        pass


class Notifier(ABC):
    """Delivers migration outcome notifications."""

    @abstractmethod
    async def notify_migration_outcome(
        self,
        migration_id: str,
        status: str,
        details: Optional[Dict[str, Any]] = None
    ) -> OperationResult:
        """Deliver a notification; failures are reported, never raised."""
        pass
