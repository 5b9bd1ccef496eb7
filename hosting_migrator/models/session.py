"""
Session models for the Hosting Migrator.

This module defines Pydantic models for migrations, their steps and
items, and the read-side views returned to status pollers.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hosting_migrator.models.config import MigrationType, PanelType


class MigrationStatus(str, Enum):
    """Migration status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    MigrationStatus.COMPLETED,
    MigrationStatus.FAILED,
    MigrationStatus.CANCELLED,
})

# Forward-only lifecycle: pending -> running -> terminal
ALLOWED_TRANSITIONS = {
    MigrationStatus.PENDING: frozenset({MigrationStatus.RUNNING, MigrationStatus.CANCELLED}),
    MigrationStatus.RUNNING: TERMINAL_STATUSES,
    MigrationStatus.COMPLETED: frozenset(),
    MigrationStatus.FAILED: frozenset(),
    MigrationStatus.CANCELLED: frozenset(),
}


class StepStatus(str, Enum):
    """Migration step status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class StepType(str, Enum):
    """Pipeline stages."""
    DOWNLOAD = "download"
    EXTRACT = "extract"
    PARSE = "parse"
    FILES = "files"
    DATABASES = "databases"
    EMAILS = "emails"
    DNS = "dns"
    FINALIZE = "finalize"
    CLEANUP = "cleanup"


class ItemStatus(str, Enum):
    """Migration item status."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ItemType(str, Enum):
    """Units of work tracked per item."""
    FILE = "file"
    DATABASE = "database"
    EMAIL = "email"
    DNS_ZONE = "dns_zone"


class MigrationCounters(BaseModel):
    """Aggregate counters kept on a migration."""
    bytes_transferred: int = 0
    files_migrated: int = 0
    databases_migrated: int = 0
    emails_migrated: int = 0
    domains_migrated: int = 0
    errors_count: int = 0
    warnings_count: int = 0


class Migration(BaseModel):
    """One import job for a single hosting account."""
    migration_id: str
    user_id: str
    source_panel: PanelType
    migration_type: MigrationType
    status: MigrationStatus = MigrationStatus.PENDING
    progress: int = 0
    total_steps: int = 0
    current_step: Optional[str] = None
    created_at: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None  # seconds
    counters: MigrationCounters = Field(default_factory=MigrationCounters)
    backup_file_path: Optional[str] = None
    backup_file_size: Optional[int] = None
    source_details: Dict[str, Any] = Field(default_factory=dict)
    migration_config: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def progress_percentage(self) -> float:
        if self.total_steps <= 0:
            return 0.0
        return (self.progress / self.total_steps) * 100


class MigrationStep(BaseModel):
    """One stage of the pipeline for a given migration."""
    migration_id: str
    step_number: int
    step_name: str
    step_type: StepType
    status: StepStatus = StepStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None  # seconds
    data_processed_mb: float = 0.0
    items_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    warning_count: int = 0
    error_message: Optional[str] = None
    log: str = ""

    model_config = ConfigDict(from_attributes=True)

    def append_log(self, line: str) -> None:
        self.log = f"{self.log}{line}\n"


class MigrationItem(BaseModel):
    """One unit of work inside a step."""
    migration_id: str
    step_number: int
    item_type: ItemType
    source_path: str
    destination_path: Optional[str] = None
    item_name: Optional[str] = None
    size_bytes: int = 0
    status: ItemStatus = ItemStatus.PENDING
    error_message: Optional[str] = None
    checksum_source: Optional[str] = None
    checksum_destination: Optional[str] = None
    processed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MigrationStatusReport(BaseModel):
    """Snapshot returned to status pollers."""
    migration: Migration
    steps: List[MigrationStep] = Field(default_factory=list)
    item_summary: Dict[str, Dict[str, int]] = Field(default_factory=dict)


class MigrationPage(BaseModel):
    """One page of a user's migrations, newest first."""
    migrations: List[Migration] = Field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0
