"""
Control panel backup parsers.

This module provides the reference parser for cPanel/WHM account
backups (``pkgacct`` archives) and placeholders for DirectAdmin and
Plesk, whose backup layouts are not supported yet.
"""

import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from hosting_migrator.core.exceptions import ParseError
from hosting_migrator.models.manifest import (
    AccountManifest,
    DatabaseInfo,
    DatabaseUser,
    DnsZone,
    EmailAccount,
    FileRoots,
)
from hosting_migrator.platforms.base import PanelParser, UnsupportedPanelParser
from hosting_migrator.platforms.zonefile import parse_zone_file
from hosting_migrator.utils.helpers import directory_size

GRANT_PATTERN = re.compile(
    r"GRANT\s+(?P<privileges>.+?)\s+ON\s+(?P<target>\S+)\s+TO\s+"
    r"'(?P<user>[^']+)'@'(?P<host>[^']+)'"
    r"(?:\s+IDENTIFIED\s+BY\s+PASSWORD\s+'(?P<hash>[^']*)')?",
    re.IGNORECASE,
)

AUXILIARY_DIRECTORIES = ("logs", "tmp", "mail")


def read_key_value_file(path: Path) -> Dict[str, str]:
    """Read a cPanel ``KEY=value`` file such as ``cp/<user>``."""
    values: Dict[str, str] = {}
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values


def unescape_mysql_identifier(name: str) -> str:
    return name.strip("`").replace("\\_", "_").replace("\\%", "%")


def parse_grants(text: str) -> Dict[str, Dict[str, object]]:
    """
    Parse the GRANT statements of a cPanel ``mysql.sql`` file.

    Returns a mapping of database user to its password hash, host and
    per-database privileges.
    """
    users: Dict[str, Dict[str, object]] = {}
    for statement in text.split(";"):
        match = GRANT_PATTERN.search(statement)
        if not match:
            continue

        username = match.group("user")
        entry = users.setdefault(username, {"hash": None, "host": match.group("host"), "databases": {}})
        if match.group("hash"):
            entry["hash"] = match.group("hash")

        target = match.group("target")
        database = unescape_mysql_identifier(target.split(".", 1)[0])
        if database == "*":
            continue

        privileges = match.group("privileges").strip().upper()
        if privileges in ("ALL", "ALL PRIVILEGES"):
            entry["databases"][database] = ["ALL"]
        else:
            entry["databases"][database] = [p.strip() for p in privileges.split(",") if p.strip()]
    return users


class CPanelParser(PanelParser):
    """
    Parser for cPanel/WHM full account backups.

    Understands the layout produced by ``pkgacct``: ``cp/<user>``,
    ``userdata/main``, ``mysql/``, ``mysql.sql``, ``dnszones/`` and the
    account's ``homedir/``.
    """

    LAYOUT_MARKERS = ["cp", "homedir", "userdata", "mysql.sql"]

    @property
    def panel_type(self) -> str:
        return "cpanel"

    def parse_layout(self, root: Path, domain_hint: Optional[str] = None) -> AccountManifest:
        backup_root = self.unwrap(root, self.LAYOUT_MARKERS)
        if backup_root is None:
            raise ParseError(
                "Unrecognized cPanel backup layout: no cp/, homedir/ or userdata/ directory found",
                details={"root": str(root)}
            )

        account = self._read_account_file(backup_root)
        userdata = self._read_userdata(backup_root)
        username = account.get("USER") or self._username_from_wrapper(backup_root)

        domain = (userdata.get("main_domain") or account.get("DNS") or domain_hint or "").strip().lower()
        if not domain:
            raise ParseError("cPanel backup does not name a main domain")

        addon_domains = sorted(userdata.get("addon_domains") or {})
        if not addon_domains:
            addon_domains = sorted(
                value.lower() for key, value in account.items()
                if re.fullmatch(r"DNS\d+", key) and value
            )
        homedir = backup_root / "homedir"

        manifest = AccountManifest(
            domain=domain,
            username=username,
            contact_email=account.get("CONTACTEMAIL") or None,
            disk_usage_bytes=directory_size(homedir) if homedir.is_dir() else 0,
            addon_domains=addon_domains,
            subdomains=list(userdata.get("sub_domains") or []),
            parked_domains=list(userdata.get("parked_domains") or []),
            databases=self._read_databases(backup_root),
            email_accounts=self._read_email_accounts(homedir),
            dns_zones=self._read_dns_zones(backup_root),
            file_roots=self._read_file_roots(backup_root, homedir),
        )
        return manifest

    def _read_account_file(self, backup_root: Path) -> Dict[str, str]:
        cp_dir = backup_root / "cp"
        if not cp_dir.is_dir():
            return {}
        files = sorted(p for p in cp_dir.iterdir() if p.is_file())
        if not files:
            return {}
        return read_key_value_file(files[0])

    @staticmethod
    def _username_from_wrapper(backup_root: Path) -> Optional[str]:
        # cpmove-<user> or backup-<date>_<time>_<user>
        match = re.match(r"^(?:cpmove-(?P<a>.+)|backup-[\d.]+_[\d-]+_(?P<b>.+))$", backup_root.name)
        if match:
            return match.group("a") or match.group("b")
        return None

    def _read_userdata(self, backup_root: Path) -> Dict[str, object]:
        main = backup_root / "userdata" / "main"
        if not main.is_file():
            return {}
        with open(main, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ParseError("userdata/main is not a mapping")
        return data

    def _read_databases(self, backup_root: Path) -> List[DatabaseInfo]:
        mysql_dir = backup_root / "mysql"
        databases: Dict[str, DatabaseInfo] = {}
        if mysql_dir.is_dir():
            for dump in sorted(mysql_dir.glob("*.sql")):
                databases[dump.stem] = DatabaseInfo(
                    name=dump.stem,
                    dump_file=str(dump),
                    size_bytes=dump.stat().st_size,
                )

        grants_file = backup_root / "mysql.sql"
        if grants_file.is_file():
            grants = parse_grants(grants_file.read_text(encoding="utf-8", errors="replace"))
            for username, entry in grants.items():
                for database, privileges in entry["databases"].items():
                    if database not in databases:
                        self.logger.debug(f"Grant for {username} on unknown database {database} ignored")
                        continue
                    databases[database].users.append(DatabaseUser(
                        username=username,
                        password_hash=entry["hash"],
                        privileges=privileges,
                        host=entry["host"],
                    ))

        return list(databases.values())

    def _read_email_accounts(self, homedir: Path) -> List[EmailAccount]:
        etc_dir = homedir / "etc"
        accounts: List[EmailAccount] = []
        if not etc_dir.is_dir():
            return accounts

        for domain_dir in sorted(p for p in etc_dir.iterdir() if p.is_dir()):
            shadow = domain_dir / "shadow"
            if not shadow.is_file():
                continue
            domain = domain_dir.name.lower()
            quotas = self._read_quotas(domain_dir / "quota")

            for line in shadow.read_text(encoding="utf-8", errors="replace").splitlines():
                if not line.strip() or ":" not in line:
                    continue
                fields = line.split(":")
                local_part = fields[0].strip()
                account = EmailAccount(
                    address=f"{local_part}@{domain}",
                    password_hash=fields[1] or None,
                    quota_mb=quotas.get(local_part, 0) // (1024 * 1024),
                )
                mailbox = homedir / "mail" / domain / local_part
                if mailbox.is_dir():
                    account.mailbox_path = str(self.confine(mailbox, homedir, f"Mailbox for {account.address}"))
                accounts.append(account)
        return accounts

    @staticmethod
    def _read_quotas(path: Path) -> Dict[str, int]:
        quotas: Dict[str, int] = {}
        if not path.is_file():
            return quotas
        for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
            if ":" not in line:
                continue
            user, value = line.split(":", 1)
            value = value.strip()
            if value.isdigit():
                quotas[user.strip()] = int(value)
        return quotas

    def _read_dns_zones(self, backup_root: Path) -> List[DnsZone]:
        zones_dir = backup_root / "dnszones"
        zones: List[DnsZone] = []
        if not zones_dir.is_dir():
            return zones
        for zone_file in sorted(zones_dir.glob("*.db")):
            zones.append(parse_zone_file(
                zone_file.read_text(encoding="utf-8", errors="replace"),
                origin=zone_file.stem,
                default_ttl=self.settings.default_dns_ttl,
            ))
        return zones

    @staticmethod
    def _read_file_roots(backup_root: Path, homedir: Path) -> FileRoots:
        web_root = homedir / "public_html"
        auxiliary: Dict[str, str] = {}
        for name in AUXILIARY_DIRECTORIES:
            for base in (homedir, backup_root):
                candidate = base / name
                if candidate.is_dir():
                    auxiliary[name] = str(candidate)
                    break
        return FileRoots(
            web_root=str(web_root) if web_root.is_dir() else None,
            auxiliary=auxiliary,
        )


class DirectAdminParser(UnsupportedPanelParser):
    """DirectAdmin backups are not supported yet."""

    @property
    def panel_type(self) -> str:
        return "directadmin"


class PleskParser(UnsupportedPanelParser):
    """Plesk backups are not supported yet."""

    @property
    def panel_type(self) -> str:
        return "plesk"
