"""
Read side of the status store.

StatusStore answers progress polls from callers outside the pipeline.
It only reads committed snapshots through the repository, so a poll
never waits on a running migration.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hosting_migrator.models.session import (
    MigrationPage,
    MigrationStatus,
    MigrationStatusReport,
    StepStatus,
)
from hosting_migrator.store.repository import MigrationRepository
from hosting_migrator.utils.helpers import format_bytes, format_duration

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    MigrationStatus.PENDING: "yellow",
    MigrationStatus.RUNNING: "blue",
    MigrationStatus.COMPLETED: "green",
    MigrationStatus.FAILED: "red",
    MigrationStatus.CANCELLED: "magenta",
}

STEP_ICONS = {
    StepStatus.PENDING: "⏳",
    StepStatus.RUNNING: "🔄",
    StepStatus.COMPLETED: "✅",
    StepStatus.FAILED: "❌",
    StepStatus.SKIPPED: "⏭️",
    StepStatus.CANCELLED: "🚫",
}


class StatusStore:
    """Query interface over persisted migration state."""

    def __init__(self, repository: MigrationRepository, console: Optional[Console] = None):
        self.repository = repository
        self.console = console or Console()

    def get_status(self, migration_id: str) -> MigrationStatusReport:
        """Return the migration, its steps and an item summary by type and status."""
        migration = self.repository.get_migration(migration_id)
        return MigrationStatusReport(
            migration=migration,
            steps=self.repository.get_steps(migration_id),
            item_summary=self.repository.item_summary(migration_id),
        )

    def list_migrations(self, user_id: str, limit: int = 50, offset: int = 0) -> MigrationPage:
        """Return a page of a user's migrations, newest first."""
        limit = max(1, min(limit, 500))
        offset = max(0, offset)
        migrations, total = self.repository.list_migrations(user_id, limit=limit, offset=offset)
        return MigrationPage(migrations=migrations, total=total, limit=limit, offset=offset)

    def render_status(self, migration_id: str) -> MigrationStatusReport:
        """Display a migration's status using Rich formatting."""
        report = self.get_status(migration_id)
        migration = report.migration
        counters = migration.counters
        color = STATUS_COLORS.get(migration.status, "white")

        status_panel = Panel.fit(
            f"Status: [{color}]{migration.status.value.upper()}[/{color}]\n"
            f"Panel: {migration.source_panel.value}  Type: {migration.migration_type.value}\n"
            f"Progress: {migration.progress}/{migration.total_steps} "
            f"({migration.progress_percentage:.1f}%)\n"
            f"Current Step: {migration.current_step or 'None'}\n"
            f"Transferred: {format_bytes(counters.bytes_transferred)}  "
            f"Files: {counters.files_migrated}  Databases: {counters.databases_migrated}  "
            f"Emails: {counters.emails_migrated}  Domains: {counters.domains_migrated}\n"
            f"Errors: {counters.errors_count}  Warnings: {counters.warnings_count}\n"
            f"Duration: {format_duration(migration.duration or 0)}",
            title=f"Migration {migration.migration_id}",
            border_style=color
        )
        self.console.print(status_panel)

        table = Table(title="Migration Steps")
        table.add_column("#", style="cyan", justify="right")
        table.add_column("Step", style="cyan")
        table.add_column("Status", style="white")
        table.add_column("Items", style="white", justify="right")
        table.add_column("Errors", style="white", justify="right")
        table.add_column("Duration", style="white")

        for step in report.steps:
            icon = STEP_ICONS.get(step.status, "❓")
            table.add_row(
                str(step.step_number),
                step.step_name,
                f"{icon} {step.status.value}",
                str(step.items_processed),
                str(step.error_count),
                format_duration(step.duration or 0)
            )

        self.console.print(table)
        return report
