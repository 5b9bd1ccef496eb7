"""
Parser for manual uploads.

A manual backup is a plain site tree: a web root, optional SQL dumps and
an optional ``account.yaml``/``account.json`` descriptor naming the
domain, database users and mailboxes.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from hosting_migrator.core.exceptions import ParseError
from hosting_migrator.models.manifest import (
    AccountManifest,
    DatabaseInfo,
    DatabaseUser,
    EmailAccount,
    FileRoots,
)
from hosting_migrator.platforms.base import PanelParser
from hosting_migrator.utils.helpers import directory_size, load_config_file

WEB_ROOT_NAMES = ("public_html", "htdocs", "httpdocs", "www")
DUMP_DIRECTORIES = ("databases", "mysql")
DESCRIPTOR_NAMES = ("account.yaml", "account.yml", "account.json")


class ManualParser(PanelParser):
    """Parser for generic site trees uploaded without a control panel."""

    @property
    def panel_type(self) -> str:
        return "manual"

    @staticmethod
    def _site_root(root: Path) -> Path:
        # archives of a single folder extract to that folder
        entries = [p for p in root.iterdir() if not p.name.startswith(".")]
        if len(entries) == 1 and entries[0].is_dir() and entries[0].name not in WEB_ROOT_NAMES:
            return entries[0]
        return root

    @staticmethod
    def _read_descriptor(site_root: Path) -> Dict[str, Any]:
        for name in DESCRIPTOR_NAMES:
            path = site_root / name
            if path.is_file():
                data = load_config_file(path)
                if not isinstance(data, dict):
                    raise ParseError(f"{name} must contain a mapping")
                return data
        return {}

    def parse_layout(self, root: Path, domain_hint: Optional[str] = None) -> AccountManifest:
        site_root = self._site_root(root)
        descriptor = self._read_descriptor(site_root)

        domain = str(descriptor.get("domain") or domain_hint or "").strip().lower()
        if not domain:
            raise ParseError(
                "Manual backup does not name a domain; add account.yaml or pass a domain"
            )

        web_root = next(
            (site_root / name for name in WEB_ROOT_NAMES if (site_root / name).is_dir()),
            site_root,
        )
        excluded: List[str] = []
        if web_root == site_root:
            excluded = [
                name for name in DUMP_DIRECTORIES + DESCRIPTOR_NAMES
                if (site_root / name).exists()
            ]

        return AccountManifest(
            domain=domain,
            username=descriptor.get("username"),
            contact_email=descriptor.get("contact_email"),
            disk_usage_bytes=directory_size(site_root),
            addon_domains=list(descriptor.get("addon_domains") or []),
            subdomains=list(descriptor.get("subdomains") or []),
            parked_domains=list(descriptor.get("parked_domains") or []),
            databases=self._read_databases(site_root, descriptor),
            email_accounts=self._read_email_accounts(site_root, descriptor),
            file_roots=FileRoots(web_root=str(web_root), excluded=excluded),
        )

    def _read_databases(self, site_root: Path, descriptor: Dict[str, Any]) -> List[DatabaseInfo]:
        databases: Dict[str, DatabaseInfo] = {}
        for directory in DUMP_DIRECTORIES:
            dump_dir = site_root / directory
            if not dump_dir.is_dir():
                continue
            for dump in sorted(dump_dir.glob("*.sql")):
                databases.setdefault(dump.stem, DatabaseInfo(
                    name=dump.stem,
                    dump_file=str(dump),
                    size_bytes=dump.stat().st_size,
                ))

        for entry in descriptor.get("databases") or []:
            if isinstance(entry, str):
                entry = {"name": entry}
            name = entry["name"]
            info = databases.setdefault(name, DatabaseInfo(name=name))
            dump_file = entry.get("dump_file")
            if dump_file:
                dump_path = self.confine(site_root / dump_file, site_root, f"Dump file for {name}")
                info.dump_file = str(dump_path)
                info.size_bytes = dump_path.stat().st_size if dump_path.is_file() else 0
            info.users = [DatabaseUser(**user) for user in entry.get("users") or []]

        return list(databases.values())

    def _read_email_accounts(self, site_root: Path, descriptor: Dict[str, Any]) -> List[EmailAccount]:
        accounts = []
        for entry in descriptor.get("email_accounts") or []:
            entry = dict(entry)
            mailbox_path = entry.get("mailbox_path")
            if mailbox_path:
                entry["mailbox_path"] = str(self.confine(
                    site_root / mailbox_path, site_root, f"Mailbox for {entry.get('address')}"
                ))
            accounts.append(EmailAccount(**entry))
        return accounts
