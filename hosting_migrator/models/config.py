"""
Configuration models for the Hosting Migrator.

This module defines Pydantic models for migration requests, backup
sources, source-to-destination mappings and the service settings.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PanelType(str, Enum):
    """Legacy control panels a backup can come from."""
    CPANEL = "cpanel"
    DIRECTADMIN = "directadmin"
    PLESK = "plesk"
    MANUAL = "manual"


class MigrationType(str, Enum):
    """Kinds of migration the pipeline knows how to run."""
    FULL = "full"
    FILES_ONLY = "files_only"
    MANUAL = "manual"


class TransferProtocol(str, Enum):
    """Remote protocols supported for pulling a backup."""
    FTP = "ftp"
    FTPS = "ftps"
    SFTP = "sftp"


class MappingType(str, Enum):
    """Kinds of source-to-destination renaming rules."""
    USERNAME = "username"
    DOMAIN = "domain"
    DATABASE = "database"
    EMAIL = "email"
    PATH = "path"


class FtpConfig(BaseModel):
    """Connection details for pulling a backup over FTP, FTPS or SFTP."""
    host: str
    port: Optional[int] = None
    username: str
    password: Optional[str] = None
    remote_path: str = Field(..., description="Remote archive or directory path")
    protocol: TransferProtocol = TransferProtocol.FTP
    passive_mode: bool = True
    recursive: bool = Field(False, description="Mirror a directory tree instead of one archive")
    timeout: int = 30

    @field_validator('host')
    @classmethod
    def host_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('FTP host cannot be empty')
        return v.strip()

    @property
    def effective_port(self) -> int:
        if self.port:
            return self.port
        return 22 if self.protocol == TransferProtocol.SFTP else 21


class BackupSource(BaseModel):
    """Where the source backup comes from; exactly one field must be set."""
    url: Optional[str] = None
    uploaded_file: Optional[str] = None
    ftp_config: Optional[FtpConfig] = None

    @model_validator(mode='after')
    def exactly_one_source(self):
        provided = [
            name for name in ('url', 'uploaded_file', 'ftp_config')
            if getattr(self, name) is not None
        ]
        if len(provided) != 1:
            raise ValueError(
                'Exactly one of url, uploaded_file or ftp_config must be provided'
            )
        return self

    @field_validator('url')
    @classmethod
    def url_scheme(cls, v):
        if v is not None and not v.lower().startswith(('http://', 'https://')):
            raise ValueError('Backup URL must use http or https')
        return v

    @property
    def kind(self) -> str:
        if self.url is not None:
            return "url"
        if self.uploaded_file is not None:
            return "upload"
        return self.ftp_config.protocol.value


class MappingRule(BaseModel):
    """A single source-to-destination renaming rule."""
    mapping_type: MappingType
    source_value: str
    destination_value: str

    @field_validator('source_value', 'destination_value')
    @classmethod
    def value_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('Mapping values cannot be empty')
        return v.strip()


class MappingRules:
    """Applies a migration's mapping rules when computing destination names."""

    def __init__(self, rules: Optional[List[MappingRule]] = None):
        self._rules: Dict[MappingType, Dict[str, str]] = {t: {} for t in MappingType}
        for rule in rules or []:
            self._rules[rule.mapping_type][rule.source_value] = rule.destination_value

    def _lookup(self, mapping_type: MappingType, value: str) -> Optional[str]:
        return self._rules[mapping_type].get(value)

    def map_username(self, username: str) -> str:
        return self._lookup(MappingType.USERNAME, username) or username

    def map_domain(self, domain: str) -> str:
        mapped = self._lookup(MappingType.DOMAIN, domain.lower())
        return mapped or self._lookup(MappingType.DOMAIN, domain) or domain

    def _map_prefixed(self, name: str) -> str:
        # cPanel prefixes databases and database users with "<user>_"
        prefix, sep, rest = name.partition('_')
        if sep and rest:
            new_prefix = self._lookup(MappingType.USERNAME, prefix)
            if new_prefix:
                return f"{new_prefix}_{rest}"
        return name

    def map_database(self, name: str) -> str:
        explicit = self._lookup(MappingType.DATABASE, name)
        if explicit:
            return explicit
        return self._map_prefixed(name)

    def map_database_user(self, name: str) -> str:
        explicit = self._lookup(MappingType.DATABASE, name)
        if explicit:
            return explicit
        return self._map_prefixed(name)

    def map_email(self, address: str) -> str:
        explicit = self._lookup(MappingType.EMAIL, address.lower())
        if explicit:
            return explicit
        local, sep, domain = address.partition('@')
        if not sep:
            return address
        return f"{local}@{self.map_domain(domain)}"

    def map_record_name(self, name: str, source_domain: str) -> str:
        """Rewrite a DNS record name that lives under the source domain."""
        target_domain = self.map_domain(source_domain)
        if target_domain == source_domain:
            return name
        trailing_dot = name.endswith('.')
        bare = name.rstrip('.')
        if bare.lower() == source_domain.lower():
            bare = target_domain
        elif bare.lower().endswith('.' + source_domain.lower()):
            bare = bare[:-len(source_domain)] + target_domain
        else:
            return name
        return bare + '.' if trailing_dot else bare

    def map_path(self, path: str) -> str:
        for source, destination in self._rules[MappingType.PATH].items():
            if path == source or path.startswith(source.rstrip('/') + '/'):
                return destination + path[len(source):]
        return path


class MigrationRequest(BaseModel):
    """A request to import one hosting account."""
    source_panel: PanelType
    migration_type: MigrationType = MigrationType.FULL
    backup_source: BackupSource
    destination_path: str = Field(..., description="Destination root for migrated accounts")
    domain: Optional[str] = Field(None, description="Domain hint for layouts that lack one")
    include_files: bool = True
    include_databases: bool = True
    include_emails: bool = True
    include_dns: bool = True
    mappings: List[MappingRule] = Field(default_factory=list)
    source_details: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('destination_path')
    @classmethod
    def destination_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('Destination path cannot be empty')
        return v

    @field_validator('domain')
    @classmethod
    def normalize_domain(cls, v):
        if v is None:
            return v
        v = v.strip().lower().rstrip('.')
        return v or None


# Environment variables understood by MigrationSettings.from_env
ENV_VARIABLES = {
    "MIGRATION_TEMP_DIR": "temp_directory",
    "MIGRATION_UPLOAD_DIR": "upload_directory",
    "MIGRATION_MAX_BACKUP_SIZE": "max_backup_size",
    "MIGRATION_RETRY_ATTEMPTS": "retry_attempts",
    "MIGRATION_RETRY_DELAY": "retry_delay",
    "MIGRATION_DOWNLOAD_TIMEOUT": "download_timeout",
    "MIGRATION_CHUNK_SIZE": "chunk_size",
    "MIGRATION_MAX_CONCURRENT": "max_concurrent_migrations",
    "MIGRATION_FILE_WORKERS": "file_copy_workers",
    "MIGRATION_RETENTION_DAYS": "retention_days",
    "MIGRATION_SWEEP_INTERVAL_HOURS": "sweep_interval_hours",
    "MIGRATION_DATABASE_URL": "database_url",
    "MIGRATION_MAIL_ROOT": "mail_root",
    "MIGRATION_DNS_TTL": "default_dns_ttl",
    "MIGRATION_KEEP_WORKSPACE": "keep_workspace",
    "MIGRATION_WEBHOOK_URL": "notification_webhook",
}


class MigrationSettings(BaseModel):
    """Service-wide settings for the migration pipeline."""
    temp_directory: str = Field(default_factory=lambda: str(Path("/tmp") / "migrations"))
    upload_directory: str = Field(default_factory=lambda: str(Path("/tmp") / "uploads"))
    max_backup_size: int = 2 * 1024 * 1024 * 1024
    retry_attempts: int = Field(3, ge=1)
    retry_delay: float = Field(1.0, ge=0)
    download_timeout: int = 3600
    chunk_size: int = Field(1024 * 1024, gt=0)
    max_concurrent_migrations: int = Field(3, ge=1)
    file_copy_workers: int = Field(4, ge=1)
    retention_days: int = Field(7, ge=0)
    sweep_interval_hours: float = Field(24, gt=0)
    database_url: str = "sqlite:///migrations.db"
    mail_root: str = "/var/mail/vhosts"
    default_dns_ttl: int = 3600
    keep_workspace: bool = False
    notification_webhook: Optional[str] = None

    model_config = ConfigDict(validate_assignment=True)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "MigrationSettings":
        """Build settings from MIGRATION_* environment variables."""
        environ = os.environ if environ is None else environ
        values = {
            field_name: environ[var]
            for var, field_name in ENV_VARIABLES.items()
            if environ.get(var) not in (None, "")
        }
        return cls(**values)

    @classmethod
    def from_file(cls, path: str) -> "MigrationSettings":
        """Load settings from a YAML or JSON file."""
        from hosting_migrator.utils.helpers import load_config_file

        data = load_config_file(path)
        if "migration" in data and isinstance(data["migration"], dict):
            data = data["migration"]
        return cls(**data)

    def workspace_for(self, migration_id: str) -> Path:
        return Path(self.temp_directory) / migration_id
