"""
Migration orchestrator for hosting account imports.

This module provides the MigrationOrchestrator class that accepts
migration requests, runs each migration's steps in order as a background
task, persists progress through the repository and decides when a
failure ends the whole migration.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import ValidationError
from rich.console import Console

from hosting_migrator.core.cancellation import CancellationToken
from hosting_migrator.core.exceptions import (
    ConfigurationError, MigrationCancelledError, MigrationError,
    MigrationNotFoundError, ServiceUnavailableError
)
from hosting_migrator.migrators import (
    DatabaseMigrator, DnsMigrator, EmailMigrator, FileMigrator,
    ItemMigrator, MigrationContext, StepOutcome
)
from hosting_migrator.models.config import MappingRules, MigrationRequest, MigrationSettings, MigrationType, PanelType
from hosting_migrator.models.manifest import AccountManifest
from hosting_migrator.models.session import (
    Migration, MigrationPage, MigrationStatus, MigrationStatusReport,
    MigrationStep, StepStatus, StepType
)
from hosting_migrator.orchestrator.plans import STEP_DEFINITIONS, StepDefinition, has_plan, skip_reason
from hosting_migrator.orchestrator.retention import remove_workspace
from hosting_migrator.platforms.base import PanelParser
from hosting_migrator.platforms.factory import PanelParserFactory
from hosting_migrator.services.base import DatabaseService, DnsService, EmailService, Notifier
from hosting_migrator.services.notifications import CompositeNotifier, LoggingNotifier, WebhookNotifier
from hosting_migrator.store.repository import MigrationRepository
from hosting_migrator.store.status import StatusStore
from hosting_migrator.transfer.acquirer import ArchiveAcquirer
from hosting_migrator.transfer.base import AcquiredBackup
from hosting_migrator.transfer.extractor import ArchiveExtractor
from hosting_migrator.utils.helpers import generate_migration_id, sanitize_dict, utcnow
from hosting_migrator.utils.logging import MigrationLogger

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = ".migration.json"
MIB = 1024 * 1024


@dataclass
class MigrationRun:
    """In-memory state of one running migration."""
    migration_id: str
    user_id: str
    request: MigrationRequest
    parser: PanelParser
    workspace: Path
    token: CancellationToken
    logger: MigrationLogger
    backup: Optional[AcquiredBackup] = None
    source_root: Optional[Path] = None
    manifest: Optional[AccountManifest] = None
    mappings: MappingRules = field(default_factory=MappingRules)
    account_root: Optional[Path] = None
    account_user: Optional[str] = None


class MigrationOrchestrator:
    """
    Coordinates hosting account migrations.

    ``start_migration`` persists a pending migration and returns its id
    at once; the steps then run in a background task. At most
    ``max_concurrent_migrations`` migrations run at the same time, the
    rest wait as pending.
    """

    def __init__(
        self,
        settings: Optional[MigrationSettings] = None,
        repository: Optional[MigrationRepository] = None,
        database_service: Optional[DatabaseService] = None,
        email_service: Optional[EmailService] = None,
        dns_service: Optional[DnsService] = None,
        notifier: Optional[Notifier] = None,
        console: Optional[Console] = None
    ):
        """
        Initialize the migration orchestrator.

        Args:
            settings: Service settings (defaults to MigrationSettings())
            repository: Migration repository (defaults to one on settings.database_url)
            database_service: Destination database service
            email_service: Destination mail service
            dns_service: Destination DNS service
            notifier: Outcome notifier (defaults to logging, plus a webhook if configured)
            console: Rich console used to render status
        """
        self.settings = settings or MigrationSettings()
        self.repository = repository or MigrationRepository(self.settings.database_url)
        self.database_service = database_service
        self.email_service = email_service
        self.dns_service = dns_service
        self.notifier = notifier or self._default_notifier()
        self.status_store = StatusStore(self.repository, console=console)

        self.acquirer = ArchiveAcquirer(self.settings)
        self.extractor = ArchiveExtractor()

        self._semaphore = asyncio.Semaphore(self.settings.max_concurrent_migrations)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._closed = False

        self._handlers: Dict[StepType, Callable[[MigrationRun, MigrationStep], Awaitable[StepOutcome]]] = {
            StepType.DOWNLOAD: self._acquire_step,
            StepType.EXTRACT: self._extract_step,
            StepType.PARSE: self._parse_step,
            StepType.FILES: self._files_step,
            StepType.DATABASES: self._databases_step,
            StepType.EMAILS: self._emails_step,
            StepType.DNS: self._dns_step,
            StepType.FINALIZE: self._finalize_step,
            StepType.CLEANUP: self._cleanup_step,
        }

    def _default_notifier(self) -> Notifier:
        if self.settings.notification_webhook:
            return CompositeNotifier(LoggingNotifier(), WebhookNotifier(self.settings.notification_webhook))
        return LoggingNotifier()

    # Public API

    async def start_migration(
        self,
        user_id: str,
        config: Union[MigrationRequest, Dict[str, Any]]
    ) -> str:
        """
        Validate a migration request, persist it as pending and schedule it.

        Returns:
            The new migration id

        Raises:
            ConfigurationError: If the request is invalid; no migration is created
        """
        if self._closed:
            raise ConfigurationError("Orchestrator is shut down")
        if not user_id:
            raise ConfigurationError("user_id is required")

        request = self._validate_request(config)
        parser = PanelParserFactory.for_request(request, self.settings)

        migration_id = generate_migration_id()
        migration = Migration(
            migration_id=migration_id,
            user_id=user_id,
            source_panel=request.source_panel,
            migration_type=request.migration_type,
            total_steps=len(STEP_DEFINITIONS),
            created_at=utcnow(),
            source_details=sanitize_dict(request.source_details),
            migration_config=sanitize_dict(request.model_dump(mode="json")),
        )
        self.repository.create_migration(migration, request.mappings)

        token = CancellationToken()
        run = MigrationRun(
            migration_id=migration_id,
            user_id=user_id,
            request=request,
            parser=parser,
            workspace=self.settings.workspace_for(migration_id),
            token=token,
            logger=MigrationLogger(migration_id, user_id),
            mappings=MappingRules(request.mappings),
        )
        self._tokens[migration_id] = token
        task = asyncio.create_task(self._run(run), name=f"migration-{migration_id}")
        self._tasks[migration_id] = task
        task.add_done_callback(lambda _: self._forget(migration_id))

        logger.info(f"Accepted migration {migration_id} ({request.source_panel.value}, {request.migration_type.value})")
        return migration_id

    def _validate_request(self, config: Union[MigrationRequest, Dict[str, Any]]) -> MigrationRequest:
        try:
            request = config if isinstance(config, MigrationRequest) else MigrationRequest.model_validate(config)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid migration request: {e.error_count()} validation error(s)",
                details={"errors": e.errors(include_url=False, include_context=False)}
            ) from e

        if not has_plan(request.migration_type):
            raise ConfigurationError(f"No step plan for migration type: {request.migration_type.value}")
        return request

    def _forget(self, migration_id: str) -> None:
        self._tasks.pop(migration_id, None)
        self._tokens.pop(migration_id, None)

    async def cancel_migration(self, migration_id: str, reason: str = "Cancelled by user") -> bool:
        """
        Request cancellation of a migration.

        A pending migration is cancelled immediately; a running one stops
        at the next step or item boundary.

        Returns:
            False if the migration had already finished
        """
        migration = self.repository.get_migration(migration_id)
        if migration.status.is_terminal:
            return False

        token = self._tokens.get(migration_id)
        if token:
            token.cancel(reason)
        if migration.status == MigrationStatus.PENDING:
            self.repository.set_status(migration_id, MigrationStatus.CANCELLED, reason)

        logger.info(f"Cancellation requested for migration {migration_id}: {reason}")
        return True

    async def wait_for(self, migration_id: str, timeout: Optional[float] = None) -> Migration:
        """Wait until a migration's background task finishes and return its final record."""
        task = self._tasks.get(migration_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        return self.repository.get_migration(migration_id)

    async def shutdown(self, cancel: bool = True) -> None:
        """Stop accepting migrations and wait for the running ones."""
        self._closed = True
        if cancel:
            for token in list(self._tokens.values()):
                token.cancel("Orchestrator shutting down")
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_status(self, migration_id: str) -> MigrationStatusReport:
        return self.status_store.get_status(migration_id)

    def list_migrations(self, user_id: str, limit: int = 50, offset: int = 0) -> MigrationPage:
        return self.status_store.list_migrations(user_id, limit=limit, offset=offset)

    def render_status(self, migration_id: str) -> MigrationStatusReport:
        return self.status_store.render_status(migration_id)

    @property
    def active_migrations(self) -> int:
        return len(self._tasks)

    # Execution

    async def _run(self, run: MigrationRun) -> None:
        try:
            async with self._semaphore:
                await self._execute(run)
        except Exception as e:
            logger.exception(f"Migration {run.migration_id} aborted: {e}")
            try:
                self._finish(run, MigrationStatus.FAILED, str(e))
            except MigrationError as store_error:
                logger.error(f"Cannot record failure of migration {run.migration_id}: {store_error}")
                return
            await self._notify(run, MigrationStatus.FAILED, {"error": str(e)})

    def _finish(self, run: MigrationRun, status: MigrationStatus, error: Optional[str] = None) -> Migration:
        current = self.repository.get_migration(run.migration_id)
        if current.status.is_terminal:
            return current
        return self.repository.set_status(run.migration_id, status, error)

    async def _execute(self, run: MigrationRun) -> None:
        if run.token.cancelled:
            self._finish(run, MigrationStatus.CANCELLED, run.token.reason)
            await self._notify(run, MigrationStatus.CANCELLED, {"reason": run.token.reason})
            return

        self.repository.set_status(run.migration_id, MigrationStatus.RUNNING)
        run.logger.info(f"Migration started ({run.request.source_panel.value}, {run.request.migration_type.value})")

        for number, definition in enumerate(STEP_DEFINITIONS, start=1):
            try:
                run.token.raise_if_cancelled()
                await self._run_step(run, number, definition)
            except MigrationCancelledError as e:
                run.logger.warning(f"Migration cancelled: {e.message}")
                self._finish(run, MigrationStatus.CANCELLED, e.message)
                await self._notify(run, MigrationStatus.CANCELLED, {"reason": e.message})
                return
            except Exception as e:
                error = getattr(e, "message", None) or str(e) or e.__class__.__name__
                self._finish(run, MigrationStatus.FAILED, f"{definition.name} failed: {error}")
                await self._notify(run, MigrationStatus.FAILED, {
                    "step": definition.step_type.value,
                    "error": error,
                })
                return

        migration = self._finish(run, MigrationStatus.COMPLETED)
        run.logger.info(f"Migration completed in {migration.duration or 0:.2f}s")
        await self._notify(run, MigrationStatus.COMPLETED, migration.counters.model_dump())

    async def _run_step(self, run: MigrationRun, number: int, definition: StepDefinition) -> None:
        reason = skip_reason(definition, run.request)
        if reason:
            step = self.repository.create_step(
                run.migration_id, definition.name, definition.step_type, status=StepStatus.SKIPPED
            )
            step.end_time = utcnow()
            step.append_log(reason)
            self.repository.save_step(step)
            self.repository.set_progress(run.migration_id, number, definition.name)
            run.logger.step_skipped(definition.name, reason)
            return

        step = self.repository.create_step(run.migration_id, definition.name, definition.step_type)
        self.repository.set_progress(run.migration_id, number - 1, definition.name)
        run.logger.step_start(definition.name, step.step_number)

        try:
            outcome = await self._handlers[definition.step_type](run, step)
        except MigrationCancelledError as e:
            self._close_step(step, StepStatus.CANCELLED, e.message)
            raise
        except Exception as e:
            error = getattr(e, "message", None) or str(e) or e.__class__.__name__
            self._close_step(step, StepStatus.FAILED, error)
            run.logger.step_failed(definition.name, error, getattr(e, "code", None))
            raise

        if outcome.skipped:
            step.append_log(outcome.reason or "Nothing to do")
            self._close_step(step, StepStatus.SKIPPED)
            run.logger.step_skipped(definition.name, outcome.reason or "Nothing to do")
        else:
            self._close_step(step, StepStatus.COMPLETED)
            run.logger.step_complete(definition.name, step.duration or 0.0, step.items_processed, step.error_count)
        self.repository.set_progress(run.migration_id, number, definition.name)

    def _close_step(self, step: MigrationStep, status: StepStatus, error: Optional[str] = None) -> None:
        step.status = status
        step.end_time = utcnow()
        if step.start_time:
            step.duration = (step.end_time - step.start_time).total_seconds()
        if error:
            step.error_message = error
            step.append_log(f"ERROR {error}")
        self.repository.save_step(step)

    async def _notify(self, run: MigrationRun, status: MigrationStatus, details: Optional[Dict[str, Any]] = None) -> None:
        try:
            result = await self.notifier.notify_migration_outcome(run.migration_id, status.value, details)
        except Exception as e:
            logger.warning(f"Notifier raised for migration {run.migration_id}: {e}")
            return
        if not result.success:
            logger.warning(f"Notification for migration {run.migration_id} failed: {result.error}")

    # Step handlers

    async def _acquire_step(self, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        allow_directory = (
            run.request.migration_type == MigrationType.MANUAL
            or run.request.source_panel == PanelType.MANUAL
        )
        backup = await self.acquirer.acquire(
            run.request.backup_source,
            run.workspace / "downloads",
            allow_directory=allow_directory,
        )
        run.backup = backup
        self.repository.update_migration(
            run.migration_id,
            backup_file_path=str(backup.path),
            backup_file_size=backup.size,
        )
        step.data_processed_mb = backup.size / MIB
        step.append_log(f"Acquired {backup.path} ({backup.size} bytes) via {backup.source_kind}")
        return StepOutcome(processed=1, succeeded=1)

    async def _extract_step(self, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        if run.backup.is_directory:
            run.source_root = Path(run.backup.path)
            return StepOutcome(skipped=True, reason="Backup is already a directory")

        result = await self.extractor.extract(run.backup.path, run.workspace / "extract")
        run.source_root = result.destination
        step.data_processed_mb = result.total_size / MIB
        step.append_log(
            f"Extracted {result.files_count} files ({result.total_size} bytes) "
            f"from {result.archive_format.value} archive"
        )
        return StepOutcome()

    async def _parse_step(self, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        manifest = await run.parser.parse(run.source_root, run.request.domain)
        run.manifest = manifest
        run.account_root = Path(run.request.destination_path) / run.mappings.map_domain(manifest.domain)
        if manifest.username:
            run.account_user = run.mappings.map_username(manifest.username)

        self.repository.merge_metadata(run.migration_id, {
            "manifest": sanitize_dict(manifest.model_dump(mode="json")),
            "workspace": str(run.workspace),
            "account_root": str(run.account_root),
        })
        summary = manifest.summary()
        step.append_log(
            f"Parsed {run.parser.panel_type} account {manifest.domain}: "
            f"{summary['databases']} databases, {summary['email_accounts']} mailboxes, "
            f"{summary['dns_zones']} DNS zones"
        )
        return StepOutcome()

    def _context(self, run: MigrationRun, step: MigrationStep) -> MigrationContext:
        return MigrationContext(
            migration_id=run.migration_id,
            step=step,
            manifest=run.manifest,
            mappings=run.mappings,
            account_root=run.account_root,
            token=run.token,
            logger=run.logger,
            account_user=run.account_user,
        )

    async def _run_migrator(self, migrator: ItemMigrator, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        return await migrator.run(self._context(run, step))

    @staticmethod
    def _require(service: Any, name: str) -> Any:
        if service is None:
            raise ServiceUnavailableError(f"No {name} service configured")
        return service

    async def _files_step(self, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        return await self._run_migrator(FileMigrator(self.repository, self.settings), run, step)

    async def _databases_step(self, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        if not run.manifest.databases:
            return StepOutcome(skipped=True, reason="No databases in backup")
        service = self._require(self.database_service, "database")
        return await self._run_migrator(DatabaseMigrator(self.repository, self.settings, service), run, step)

    async def _emails_step(self, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        if not run.manifest.email_accounts:
            return StepOutcome(skipped=True, reason="No email accounts in backup")
        service = self._require(self.email_service, "email")
        return await self._run_migrator(EmailMigrator(self.repository, self.settings, service), run, step)

    async def _dns_step(self, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        if not run.manifest.dns_zones:
            return StepOutcome(skipped=True, reason="No DNS zones in backup")
        service = self._require(self.dns_service, "DNS")
        return await self._run_migrator(DnsMigrator(self.repository, self.settings, service), run, step)

    def _write_summary(self, account_root: Path, summary: Dict[str, Any]) -> Path:
        account_root.mkdir(parents=True, exist_ok=True)
        path = account_root / SUMMARY_FILENAME
        with open(path, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2, default=str)
        return path

    async def _finalize_step(self, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        steps = self.repository.get_steps(run.migration_id)
        migration = self.repository.get_migration(run.migration_id)
        counters = migration.counters
        summary = {
            "migration_id": run.migration_id,
            "domain": run.manifest.domain,
            "source_panel": run.request.source_panel.value,
            "migration_type": run.request.migration_type.value,
            "account": run.manifest.summary(),
            "counters": counters.model_dump(),
            "items": self.repository.item_summary(run.migration_id),
            "steps": {s.step_type.value: s.status.value for s in steps},
            "finished_at": utcnow().isoformat(),
        }
        self.repository.merge_metadata(run.migration_id, {"summary": summary})

        loop = asyncio.get_running_loop()
        path = await loop.run_in_executor(None, self._write_summary, run.account_root, summary)
        step.append_log(f"Wrote {path} ({counters.errors_count} errors, {counters.warnings_count} warnings)")
        return StepOutcome()

    async def _cleanup_step(self, run: MigrationRun, step: MigrationStep) -> StepOutcome:
        if self.settings.keep_workspace:
            return StepOutcome(skipped=True, reason=f"Workspace kept at {run.workspace}")

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, remove_workspace, run.workspace)
        if not result.success:
            raise MigrationError(result.error, code="CLEANUP_FAILED")
        step.append_log(f"Removed workspace {run.workspace}")
        return StepOutcome()
