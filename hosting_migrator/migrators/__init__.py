"""
Item migrators for files, databases, mailboxes and DNS zones.
"""

from hosting_migrator.migrators.base import ItemMigrator, ItemOutcome, MigrationContext, StepOutcome
from hosting_migrator.migrators.databases import DatabaseMigrator
from hosting_migrator.migrators.dns import DnsMigrator
from hosting_migrator.migrators.emails import EmailMigrator
from hosting_migrator.migrators.files import FileMigrator, apply_permissions

__all__ = [
    "ItemMigrator",
    "ItemOutcome",
    "MigrationContext",
    "StepOutcome",
    "FileMigrator",
    "DatabaseMigrator",
    "EmailMigrator",
    "DnsMigrator",
    "apply_permissions",
]
