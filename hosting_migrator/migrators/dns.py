"""
DNS migrator.
"""

from typing import List, Optional

from hosting_migrator.migrators.base import ItemMigrator, ItemOutcome, MigrationContext
from hosting_migrator.models.manifest import DnsRecord, DnsZone
from hosting_migrator.models.session import ItemType
from hosting_migrator.services.base import DnsService
from hosting_migrator.utils.logging import LogCategory

# record values that name a host inside the zone
HOSTNAME_VALUE_TYPES = ("CNAME", "MX", "NS")


class DnsMigrator(ItemMigrator[DnsZone]):
    """Recreates each DNS zone with its records under the mapped domain."""

    item_type = ItemType.DNS_ZONE
    counter_field = "domains_migrated"
    category = LogCategory.DNS
    nothing_to_do = "No DNS zones in backup"

    def __init__(self, repository, settings, service: DnsService):
        super().__init__(repository, settings)
        self.service = service

    def collect(self, context: MigrationContext) -> List[DnsZone]:
        return list(context.manifest.dns_zones)

    def describe(self, item: DnsZone) -> str:
        return item.domain

    def item_name(self, item: DnsZone) -> Optional[str]:
        return item.domain

    def map_records(self, zone: DnsZone, context: MigrationContext) -> List[DnsRecord]:
        records = []
        for record in zone.records:
            value = record.value
            if record.type.upper() in HOSTNAME_VALUE_TYPES:
                value = context.mappings.map_record_name(value, zone.domain)
            records.append(record.model_copy(update={
                "name": context.mappings.map_record_name(record.name, zone.domain),
                "value": value,
            }))
        return records

    async def migrate_item(self, item: DnsZone, context: MigrationContext) -> ItemOutcome:
        domain = context.mappings.map_domain(item.domain)
        records = self.map_records(item, context)
        await self.service.create_zone(domain, records, item.ttl or self.settings.default_dns_ttl)

        outcome = ItemOutcome(destination=domain)
        if not records:
            outcome.warnings.append(f"Zone {item.domain} has no records")
        return outcome
