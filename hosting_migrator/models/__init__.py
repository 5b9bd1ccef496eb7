"""
Data models for the Hosting Migrator.
"""

from hosting_migrator.models.config import (
    PanelType,
    MigrationType,
    TransferProtocol,
    MappingType,
    FtpConfig,
    BackupSource,
    MappingRule,
    MappingRules,
    MigrationRequest,
    MigrationSettings,
)
from hosting_migrator.models.session import (
    MigrationStatus,
    StepStatus,
    StepType,
    ItemStatus,
    ItemType,
    MigrationCounters,
    Migration,
    MigrationStep,
    MigrationItem,
    MigrationStatusReport,
    MigrationPage,
)
from hosting_migrator.models.manifest import (
    DatabaseUser,
    DatabaseInfo,
    EmailAccount,
    DnsRecord,
    DnsZone,
    FileRoots,
    AccountManifest,
)

__all__ = [
    "PanelType",
    "MigrationType",
    "TransferProtocol",
    "MappingType",
    "FtpConfig",
    "BackupSource",
    "MappingRule",
    "MappingRules",
    "MigrationRequest",
    "MigrationSettings",
    "MigrationStatus",
    "StepStatus",
    "StepType",
    "ItemStatus",
    "ItemType",
    "MigrationCounters",
    "Migration",
    "MigrationStep",
    "MigrationItem",
    "MigrationStatusReport",
    "MigrationPage",
    "DatabaseUser",
    "DatabaseInfo",
    "EmailAccount",
    "DnsRecord",
    "DnsZone",
    "FileRoots",
    "AccountManifest",
]
