"""
Migration repository.

This module provides the MigrationRepository, the single write path for
migration, step, item and mapping records. Every call runs in its own
short session and commits before returning, so concurrent readers only
ever observe committed snapshots.
"""

import logging
import threading
from contextlib import AbstractContextManager, contextmanager, nullcontext
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from hosting_migrator.core.exceptions import (
    InvalidStatusTransitionError,
    MigrationNotFoundError,
    StoreError,
)
from hosting_migrator.models.config import MappingRule, MappingType
from hosting_migrator.models.session import (
    ALLOWED_TRANSITIONS,
    ItemStatus,
    Migration,
    MigrationCounters,
    MigrationItem,
    MigrationStatus,
    MigrationStep,
    StepStatus,
    StepType,
)
from hosting_migrator.store.schema import (
    MigrationItemRecord,
    MigrationMappingRecord,
    MigrationRecord,
    MigrationStepRecord,
    create_store_engine,
)
from hosting_migrator.utils.helpers import utcnow

logger = logging.getLogger(__name__)

COUNTER_FIELDS = tuple(MigrationCounters.model_fields)

UPDATABLE_FIELDS = frozenset({
    "total_steps",
    "backup_file_path",
    "backup_file_size",
    "error_message",
})


def _to_migration(record: MigrationRecord) -> Migration:
    return Migration(
        migration_id=record.migration_id,
        user_id=record.user_id,
        source_panel=record.source_panel,
        migration_type=record.migration_type,
        status=record.status,
        progress=record.progress,
        total_steps=record.total_steps,
        current_step=record.current_step,
        created_at=record.created_at,
        start_time=record.start_time,
        end_time=record.end_time,
        duration=record.duration,
        counters=MigrationCounters(
            **{name: getattr(record, name) for name in COUNTER_FIELDS}
        ),
        backup_file_path=record.backup_file_path,
        backup_file_size=record.backup_file_size,
        source_details=record.source_details or {},
        migration_config=record.migration_config or {},
        metadata=record.metadata_json or {},
        error_message=record.error_message,
    )


def _to_step(record: MigrationStepRecord) -> MigrationStep:
    return MigrationStep.model_validate(record)


class MigrationRepository:
    """
    Persists migration state through SQLAlchemy.

    The repository is injected into the orchestrator and each item
    migrator; nothing else writes migration state. Calls are blocking;
    item migrators run them in the default executor.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            if database_url is None:
                raise StoreError("Either database_url or engine must be provided")
            try:
                engine = create_store_engine(database_url)
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to initialize status store: {e}") from e
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        # a StaticPool shares one connection, so its sessions must not overlap
        self._lock: AbstractContextManager = (
            threading.RLock() if isinstance(engine.pool, StaticPool) else nullcontext()
        )

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Status store operation '{operation}' failed: {e}")
                raise StoreError(f"Failed to {operation}: {e}") from e
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    @staticmethod
    def _load(session: Session, migration_id: str) -> MigrationRecord:
        record = session.scalar(
            select(MigrationRecord).where(MigrationRecord.migration_id == migration_id)
        )
        if record is None:
            raise MigrationNotFoundError(
                f"Migration not found: {migration_id}",
                details={"migration_id": migration_id}
            )
        return record

    def dispose(self) -> None:
        self.engine.dispose()

    # Migrations

    def create_migration(
        self,
        migration: Migration,
        mappings: Optional[List[MappingRule]] = None
    ) -> Migration:
        """Insert a new migration and its mapping rules in one transaction."""
        now = utcnow()
        with self._session("create migration") as session:
            record = MigrationRecord(
                migration_id=migration.migration_id,
                user_id=migration.user_id,
                source_panel=migration.source_panel.value,
                migration_type=migration.migration_type.value,
                status=migration.status.value,
                progress=migration.progress,
                total_steps=migration.total_steps,
                source_details=migration.source_details,
                migration_config=migration.migration_config,
                metadata_json=migration.metadata,
                created_at=migration.created_at,
                updated_at=now,
                **migration.counters.model_dump(),
            )
            session.add(record)
            for rule in mappings or []:
                session.add(MigrationMappingRecord(
                    migration_id=migration.migration_id,
                    mapping_type=rule.mapping_type.value,
                    source_value=rule.source_value,
                    destination_value=rule.destination_value,
                    created_at=now,
                ))
            session.flush()
            created = _to_migration(record)

        logger.info(f"Created migration {migration.migration_id} for user {migration.user_id}")
        return created

    def get_migration(self, migration_id: str) -> Migration:
        with self._session("load migration") as session:
            return _to_migration(self._load(session, migration_id))

    def set_status(
        self,
        migration_id: str,
        status: MigrationStatus,
        error_message: Optional[str] = None
    ) -> Migration:
        """
        Move a migration forward through its lifecycle.

        Entering ``running`` stamps the start time; entering a terminal
        status stamps the end time and duration. Setting the current
        status again is a no-op; any backward move raises
        InvalidStatusTransitionError.
        """
        with self._session("update migration status") as session:
            record = self._load(session, migration_id)
            current = MigrationStatus(record.status)

            if current == status:
                return _to_migration(record)

            if status not in ALLOWED_TRANSITIONS[current]:
                raise InvalidStatusTransitionError(
                    f"Cannot move migration {migration_id} from {current.value} to {status.value}",
                    details={"from": current.value, "to": status.value}
                )

            now = utcnow()
            record.status = status.value
            record.updated_at = now
            if status == MigrationStatus.RUNNING:
                record.start_time = now
            elif status.is_terminal:
                record.end_time = now
                started = record.start_time or record.created_at
                record.duration = (now - started).total_seconds()
                record.current_step = None
            if error_message is not None:
                record.error_message = error_message

            return _to_migration(record)

    def set_progress(self, migration_id: str, progress: int, current_step: Optional[str] = None) -> None:
        """Record the current step; progress never decreases."""
        with self._session("update migration progress") as session:
            record = self._load(session, migration_id)
            record.progress = max(record.progress, progress)
            record.current_step = current_step
            record.updated_at = utcnow()

    def update_migration(self, migration_id: str, **fields: Any) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise StoreError(f"Fields cannot be updated directly: {sorted(unknown)}")
        with self._session("update migration") as session:
            record = self._load(session, migration_id)
            for name, value in fields.items():
                setattr(record, name, value)
            record.updated_at = utcnow()

    def increment_counters(self, migration_id: str, **deltas: int) -> None:
        """Atomically add to the aggregate counters of a migration."""
        unknown = set(deltas) - set(COUNTER_FIELDS)
        if unknown:
            raise StoreError(f"Unknown migration counters: {sorted(unknown)}")
        values = {
            name: getattr(MigrationRecord, name) + delta
            for name, delta in deltas.items()
            if delta
        }
        if not values:
            return
        values["updated_at"] = utcnow()

        with self._session("increment migration counters") as session:
            result = session.execute(
                update(MigrationRecord)
                .where(MigrationRecord.migration_id == migration_id)
                .values(**values)
            )
            if result.rowcount == 0:
                raise MigrationNotFoundError(f"Migration not found: {migration_id}")

    def merge_metadata(self, migration_id: str, data: Dict[str, Any]) -> None:
        with self._session("update migration metadata") as session:
            record = self._load(session, migration_id)
            merged = dict(record.metadata_json or {})
            merged.update(data)
            record.metadata_json = merged
            record.updated_at = utcnow()

    def get_mappings(self, migration_id: str) -> List[MappingRule]:
        with self._session("load migration mappings") as session:
            rows = session.scalars(
                select(MigrationMappingRecord)
                .where(MigrationMappingRecord.migration_id == migration_id)
                .order_by(MigrationMappingRecord.id)
            ).all()
            return [
                MappingRule(
                    mapping_type=MappingType(row.mapping_type),
                    source_value=row.source_value,
                    destination_value=row.destination_value,
                )
                for row in rows
            ]

    def list_migrations(self, user_id: str, limit: int = 50, offset: int = 0) -> Tuple[List[Migration], int]:
        with self._session("list migrations") as session:
            total = session.scalar(
                select(func.count()).select_from(MigrationRecord)
                .where(MigrationRecord.user_id == user_id)
            ) or 0
            rows = session.scalars(
                select(MigrationRecord)
                .where(MigrationRecord.user_id == user_id)
                .order_by(MigrationRecord.created_at.desc(), MigrationRecord.id.desc())
                .limit(limit)
                .offset(offset)
            ).all()
            return [_to_migration(row) for row in rows], total

    # Steps

    def create_step(
        self,
        migration_id: str,
        step_name: str,
        step_type: StepType,
        status: StepStatus = StepStatus.RUNNING
    ) -> MigrationStep:
        """Create the next step of a migration with a contiguous step number."""
        with self._session("create migration step") as session:
            self._load(session, migration_id)
            last_number = session.scalar(
                select(func.max(MigrationStepRecord.step_number))
                .where(MigrationStepRecord.migration_id == migration_id)
            ) or 0
            now = utcnow()
            record = MigrationStepRecord(
                migration_id=migration_id,
                step_number=last_number + 1,
                step_name=step_name,
                step_type=step_type.value,
                status=status.value,
                start_time=now if status == StepStatus.RUNNING else None,
                log="",
            )
            session.add(record)
            session.flush()
            return _to_step(record)

    def save_step(self, step: MigrationStep) -> None:
        """Persist the mutable fields of a step."""
        with self._session("save migration step") as session:
            record = session.scalar(
                select(MigrationStepRecord).where(
                    MigrationStepRecord.migration_id == step.migration_id,
                    MigrationStepRecord.step_number == step.step_number,
                )
            )
            if record is None:
                raise StoreError(
                    f"Step {step.step_number} of migration {step.migration_id} does not exist"
                )
            record.status = step.status.value
            record.start_time = step.start_time
            record.end_time = step.end_time
            record.duration = step.duration
            record.data_processed_mb = step.data_processed_mb
            record.items_processed = step.items_processed
            record.success_count = step.success_count
            record.error_count = step.error_count
            record.warning_count = step.warning_count
            record.error_message = step.error_message
            record.log = step.log

    def get_steps(self, migration_id: str) -> List[MigrationStep]:
        with self._session("load migration steps") as session:
            rows = session.scalars(
                select(MigrationStepRecord)
                .where(MigrationStepRecord.migration_id == migration_id)
                .order_by(MigrationStepRecord.step_number)
            ).all()
            return [_to_step(row) for row in rows]

    # Items

    def record_item(self, item: MigrationItem) -> None:
        """Insert a finalized item record."""
        with self._session("record migration item") as session:
            session.add(MigrationItemRecord(
                migration_id=item.migration_id,
                step_number=item.step_number,
                item_type=item.item_type.value,
                source_path=item.source_path,
                destination_path=item.destination_path,
                item_name=item.item_name,
                size_bytes=item.size_bytes,
                status=item.status.value,
                error_message=item.error_message,
                checksum_source=item.checksum_source,
                checksum_destination=item.checksum_destination,
                processed_at=item.processed_at or utcnow(),
            ))

    def get_items(
        self,
        migration_id: str,
        step_number: Optional[int] = None,
        status: Optional[ItemStatus] = None
    ) -> List[MigrationItem]:
        query = select(MigrationItemRecord).where(MigrationItemRecord.migration_id == migration_id)
        if step_number is not None:
            query = query.where(MigrationItemRecord.step_number == step_number)
        if status is not None:
            query = query.where(MigrationItemRecord.status == status.value)
        with self._session("load migration items") as session:
            rows = session.scalars(query.order_by(MigrationItemRecord.id)).all()
            return [MigrationItem.model_validate(row) for row in rows]

    def item_summary(self, migration_id: str) -> Dict[str, Dict[str, int]]:
        """Item counts grouped by item type and status."""
        with self._session("summarize migration items") as session:
            rows = session.execute(
                select(
                    MigrationItemRecord.item_type,
                    MigrationItemRecord.status,
                    func.count(),
                )
                .where(MigrationItemRecord.migration_id == migration_id)
                .group_by(MigrationItemRecord.item_type, MigrationItemRecord.status)
            ).all()

        summary: Dict[str, Dict[str, int]] = {}
        for item_type, status, count in rows:
            summary.setdefault(item_type, {})[status] = count
        return summary
