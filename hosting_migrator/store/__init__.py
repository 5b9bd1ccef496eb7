"""
Persistence for migration state.
"""

from hosting_migrator.store.repository import MigrationRepository
from hosting_migrator.store.schema import Base, create_store_engine
from hosting_migrator.store.status import StatusStore

__all__ = [
    "Base",
    "create_store_engine",
    "MigrationRepository",
    "StatusStore",
]
