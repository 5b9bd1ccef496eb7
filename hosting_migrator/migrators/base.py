"""
Base class for item migrators.

An item migrator processes one collection of the account manifest
(files, databases, mailboxes or DNS zones). Every item is attempted
independently: a failure is recorded on that item's MigrationItem and
processing moves on. Only infrastructure errors and cancellation stop
the step.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Generic, List, Optional, TypeVar
import asyncio
import functools
import logging

from hosting_migrator.core.cancellation import CancellationToken
from hosting_migrator.core.exceptions import InfrastructureError, MigrationCancelledError
from hosting_migrator.models.config import MappingRules, MigrationSettings
from hosting_migrator.models.manifest import AccountManifest
from hosting_migrator.models.session import ItemStatus, ItemType, MigrationItem, MigrationStep
from hosting_migrator.store.repository import MigrationRepository
from hosting_migrator.utils.helpers import utcnow
from hosting_migrator.utils.logging import LogCategory, MigrationLogger

T = TypeVar("T")

# persist step counters every this many items so pollers see progress
STEP_SAVE_INTERVAL = 50


@dataclass
class MigrationContext:
    """Everything a step needs to know about the migration it runs in."""
    migration_id: str
    step: MigrationStep
    manifest: AccountManifest
    mappings: MappingRules
    account_root: Path
    token: CancellationToken
    logger: MigrationLogger
    account_user: Optional[str] = None


@dataclass
class ItemOutcome:
    """What migrating one item produced."""
    destination: Optional[str] = None
    size_bytes: int = 0
    checksum_source: Optional[str] = None
    checksum_destination: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class StepOutcome:
    """Summary returned by an item migrator to the orchestrator."""
    skipped: bool = False
    reason: Optional[str] = None
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


class ItemMigrator(ABC, Generic[T]):
    """
    Base class for all item migrators.

    Subclasses name the items to process in ``collect`` and migrate a
    single one in ``migrate_item``; ``run`` owns failure isolation,
    item records and counters.
    """

    item_type: ItemType
    counter_field: str
    category: LogCategory = LogCategory.MIGRATION
    nothing_to_do: str = "No items found"

    def __init__(self, repository: MigrationRepository, settings: MigrationSettings):
        self.repository = repository
        self.settings = settings
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")
        self._counter_lock = asyncio.Lock()

    @abstractmethod
    def collect(self, context: MigrationContext) -> List[T]:
        """Return the items this migrator should process."""
        pass

    @abstractmethod
    def describe(self, item: T) -> str:
        """Source identifier recorded on the item."""
        pass

    def item_name(self, item: T) -> Optional[str]:
        return None

    def item_size(self, item: T) -> int:
        return 0

    @abstractmethod
    async def migrate_item(self, item: T, context: MigrationContext) -> ItemOutcome:
        """
        Migrate one item.

        Raises:
            InfrastructureError: The destination service is unusable; stops the step
            Exception: Anything else fails only this item
        """
        pass

    async def prepare(self, context: MigrationContext) -> List[T]:
        return self.collect(context)

    async def run(self, context: MigrationContext) -> StepOutcome:
        items = await self.prepare(context)
        if not items:
            return StepOutcome(skipped=True, reason=self.nothing_to_do)

        context.step.append_log(f"Processing {len(items)} {self.item_type.value} items")
        for item in items:
            context.token.raise_if_cancelled()
            await self.process(item, context)

        return self.outcome(context)

    def outcome(self, context: MigrationContext) -> StepOutcome:
        step = context.step
        return StepOutcome(
            processed=step.items_processed,
            succeeded=step.success_count,
            failed=step.error_count,
        )

    async def _store(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking repository call off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    async def process(self, item: T, context: MigrationContext) -> None:
        """Migrate one item, record it, and update the counters."""
        source = self.describe(item)
        record = MigrationItem(
            migration_id=context.migration_id,
            step_number=context.step.step_number,
            item_type=self.item_type,
            source_path=source,
            item_name=self.item_name(item),
            size_bytes=self.item_size(item),
        )

        try:
            outcome = await self.migrate_item(item, context)
        except (InfrastructureError, MigrationCancelledError):
            raise
        except Exception as e:
            record.status = ItemStatus.FAILED
            record.error_message = str(e) or e.__class__.__name__
            record.processed_at = utcnow()
            await self._store(self.repository.record_item, record)
            await self._count(context, failed=True)
            context.logger.item_failed(context.step.step_name, source, record.error_message, self.category)
            context.step.append_log(f"FAILED {source}: {record.error_message}")
            return

        record.status = ItemStatus.COMPLETED
        record.destination_path = outcome.destination
        record.size_bytes = outcome.size_bytes or record.size_bytes
        record.checksum_source = outcome.checksum_source
        record.checksum_destination = outcome.checksum_destination
        record.processed_at = utcnow()
        await self._store(self.repository.record_item, record)
        await self._count(context, size=record.size_bytes, warnings=outcome.warnings)
        for warning in outcome.warnings:
            context.step.append_log(f"WARNING {source}: {warning}")

    def counter_deltas(self, size: int) -> dict:
        return {self.counter_field: 1}

    async def add_warnings(self, context: MigrationContext, messages: List[str]) -> None:
        """Record warnings that belong to the step rather than to one item."""
        if not messages:
            return
        async with self._counter_lock:
            for message in messages:
                context.step.append_log(f"WARNING {message}")
            context.step.warning_count += len(messages)
            await self._store(self.repository.increment_counters, context.migration_id, warnings_count=len(messages))

    async def _count(self, context: MigrationContext, failed: bool = False, size: int = 0, warnings: Any = ()) -> None:
        step = context.step
        async with self._counter_lock:
            step.items_processed += 1
            if failed:
                step.error_count += 1
                deltas = {"errors_count": 1}
            else:
                step.success_count += 1
                deltas = self.counter_deltas(size)
            deltas["warnings_count"] = len(warnings)
            step.warning_count += len(warnings)
            step.data_processed_mb += size / (1024 * 1024)
            await self._store(self.repository.increment_counters, context.migration_id, **deltas)
            if step.items_processed % STEP_SAVE_INTERVAL == 0:
                await self._store(self.repository.save_step, step)
