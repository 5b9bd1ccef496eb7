"""
Email migrator.
"""

import asyncio
import os
import shutil
from pathlib import Path
from typing import List, Optional

from hosting_migrator.core.exceptions import ItemMigrationError
from hosting_migrator.migrators.base import ItemMigrator, ItemOutcome, MigrationContext
from hosting_migrator.models.manifest import EmailAccount, is_safe_name
from hosting_migrator.models.session import ItemType
from hosting_migrator.services.base import EmailService
from hosting_migrator.utils.helpers import directory_size
from hosting_migrator.utils.logging import LogCategory


class EmailMigrator(ItemMigrator[EmailAccount]):
    """Creates mailboxes and copies their stored mail."""

    item_type = ItemType.EMAIL
    counter_field = "emails_migrated"
    category = LogCategory.EMAIL
    nothing_to_do = "No email accounts in backup"

    def __init__(self, repository, settings, service: EmailService):
        super().__init__(repository, settings)
        self.service = service

    def collect(self, context: MigrationContext) -> List[EmailAccount]:
        return list(context.manifest.email_accounts)

    def describe(self, item: EmailAccount) -> str:
        return item.address

    def item_name(self, item: EmailAccount) -> Optional[str]:
        return item.address

    def mailbox_destination(self, address: str) -> Path:
        """Return ``<mail_root>/<domain>/<local part>``, refusing paths that leave the mail root."""
        local, _, domain = address.partition("@")
        mail_root = Path(self.settings.mail_root)
        destination = mail_root / domain / local
        if not (is_safe_name(local) and is_safe_name(domain)) or \
                not destination.resolve().is_relative_to(mail_root.resolve()):
            raise ItemMigrationError(f"Mailbox path for {address} leaves the mail root")
        return destination

    @staticmethod
    def _skip_links(directory: str, names: List[str]) -> List[str]:
        return [name for name in names if os.path.islink(os.path.join(directory, name))]

    @classmethod
    def _copy_mailbox(cls, source: Path, destination: Path) -> int:
        shutil.copytree(source, destination, ignore=cls._skip_links, dirs_exist_ok=True)
        return directory_size(destination)

    async def migrate_item(self, item: EmailAccount, context: MigrationContext) -> ItemOutcome:
        if "@" not in item.address:
            raise ItemMigrationError(f"Invalid email address: {item.address}")

        address = context.mappings.map_email(item.address)
        destination = self.mailbox_destination(address)
        await self.service.create_mailbox(
            address,
            item.password,
            item.quota_mb,
            password_hash=item.password_hash,
        )

        outcome = ItemOutcome(destination=address)
        if item.mailbox_path:
            source = Path(item.mailbox_path)
            if source.is_dir():
                loop = asyncio.get_running_loop()
                outcome.size_bytes = await loop.run_in_executor(None, self._copy_mailbox, source, destination)
                outcome.destination = str(destination)
            else:
                outcome.warnings.append(f"Mailbox data missing: {source}")

        return outcome

    def counter_deltas(self, size: int) -> dict:
        return {"emails_migrated": 1, "bytes_transferred": size}
