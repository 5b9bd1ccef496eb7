"""
SQLAlchemy schema for migration state.

Four related tables keyed by the migration id: migrations, their steps,
the items processed inside each step, and the mapping rules attached
to a migration.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class MigrationRecord(Base):
    """One import job."""

    __tablename__ = "migrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    migration_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_panel: Mapped[str] = mapped_column(String(20), nullable=False)
    migration_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_steps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_step: Mapped[Optional[str]] = mapped_column(String(100))

    source_details: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    migration_config: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime)
    duration: Mapped[Optional[float]] = mapped_column(Float)

    bytes_transferred: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    files_migrated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    databases_migrated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emails_migrated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    domains_migrated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warnings_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    backup_file_path: Mapped[Optional[str]] = mapped_column(String(500))
    backup_file_size: Mapped[Optional[int]] = mapped_column(BigInteger)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    metadata_json: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_migrations_user_status", "user_id", "status"),
        Index("idx_migrations_created", "created_at"),
    )


class MigrationStepRecord(Base):
    """One stage of a migration."""

    __tablename__ = "migration_steps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    migration_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("migrations.migration_id", ondelete="CASCADE"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(100), nullable=False)
    step_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime)
    duration: Mapped[Optional[float]] = mapped_column(Float)

    data_processed_mb: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    items_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warning_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    log: Mapped[str] = mapped_column(Text, nullable=False, default="")
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("migration_id", "step_number", name="uq_migration_step_number"),
        Index("idx_steps_migration_step", "migration_id", "step_number"),
    )


class MigrationItemRecord(Base):
    """One unit of work inside a step."""

    __tablename__ = "migration_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    migration_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("migrations.migration_id", ondelete="CASCADE"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    destination_path: Mapped[Optional[str]] = mapped_column(String(1000))
    item_name: Mapped[Optional[str]] = mapped_column(String(255))
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    checksum_source: Mapped[Optional[str]] = mapped_column(String(128))
    checksum_destination: Mapped[Optional[str]] = mapped_column(String(128))
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_items_migration_type", "migration_id", "item_type"),
        Index("idx_items_migration_step", "migration_id", "step_number"),
    )


class MigrationMappingRecord(Base):
    """A source-to-destination renaming rule attached to a migration."""

    __tablename__ = "migration_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    migration_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("migrations.migration_id", ondelete="CASCADE"), nullable=False
    )
    mapping_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_value: Mapped[str] = mapped_column(String(500), nullable=False)
    destination_value: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_mappings_migration_type", "migration_id", "mapping_type"),
    )


def create_store_engine(database_url: str) -> Engine:
    """Create an engine and make sure the schema exists."""
    if database_url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
    else:
        engine = create_engine(database_url, pool_pre_ping=True)

    Base.metadata.create_all(engine)
    return engine
