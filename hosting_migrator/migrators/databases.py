"""
Database migrator.
"""

from typing import List, Optional

from hosting_migrator.migrators.base import ItemMigrator, ItemOutcome, MigrationContext
from hosting_migrator.models.manifest import DatabaseInfo
from hosting_migrator.models.session import ItemType
from hosting_migrator.services.base import DatabaseService
from hosting_migrator.utils.logging import LogCategory


class DatabaseMigrator(ItemMigrator[DatabaseInfo]):
    """
    Creates each database, restores its dump and recreates its users.

    A failed restore fails only that database; an unreachable database
    server stops the step.
    """

    item_type = ItemType.DATABASE
    counter_field = "databases_migrated"
    category = LogCategory.DATABASE
    nothing_to_do = "No databases in backup"

    def __init__(self, repository, settings, service: DatabaseService):
        super().__init__(repository, settings)
        self.service = service

    def collect(self, context: MigrationContext) -> List[DatabaseInfo]:
        return list(context.manifest.databases)

    def describe(self, item: DatabaseInfo) -> str:
        return item.dump_file or item.name

    def item_name(self, item: DatabaseInfo) -> Optional[str]:
        return item.name

    def item_size(self, item: DatabaseInfo) -> int:
        return item.size_bytes

    async def migrate_item(self, item: DatabaseInfo, context: MigrationContext) -> ItemOutcome:
        name = context.mappings.map_database(item.name)
        outcome = ItemOutcome(destination=name, size_bytes=item.size_bytes)

        await self.service.create_database(name)
        if item.dump_file:
            await self.service.restore_dump(name, item.dump_file)
        else:
            outcome.warnings.append(f"No dump file for database {item.name}; created empty")

        for user in item.users:
            await self.service.create_user(
                context.mappings.map_database_user(user.username),
                user.password,
                user.privileges,
                [name],
                password_hash=user.password_hash,
                host=user.host,
            )

        context.logger.info(f"Migrated database {item.name} -> {name}", category=self.category)
        return outcome
