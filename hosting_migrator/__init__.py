"""
Hosting Migrator

Imports customer hosting accounts (site files, databases, mailboxes and
DNS zones) from legacy control panel backups into a target platform.
"""

__version__ = "0.1.0"

from hosting_migrator.models.config import MigrationRequest, MigrationSettings
from hosting_migrator.models.session import MigrationStatus
from hosting_migrator.orchestrator import MigrationOrchestrator, RetentionSweeper

__all__ = [
    "MigrationRequest",
    "MigrationSettings",
    "MigrationStatus",
    "MigrationOrchestrator",
    "RetentionSweeper",
]
