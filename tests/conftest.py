"""
Pytest configuration and fixtures for the Hosting Migrator tests.

This module provides in-process fake destination services, settings
rooted in a temporary directory, an in-memory status store and
builders for cPanel and manual backups.
"""

import io
import tarfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest
from rich.console import Console

from hosting_migrator.core.exceptions import ItemMigrationError, OperationResult, ServiceUnavailableError
from hosting_migrator.models.config import MigrationSettings
from hosting_migrator.models.manifest import DnsRecord
from hosting_migrator.orchestrator import MigrationOrchestrator
from hosting_migrator.services.base import DatabaseService, DnsService, EmailService, Notifier
from hosting_migrator.store.repository import MigrationRepository


class FakeDatabaseService(DatabaseService):
    """Records databases and users in memory."""

    def __init__(self, failing_restores: Sequence[str] = (), unavailable: bool = False):
        self.databases: Dict[str, Optional[str]] = {}
        self.users: List[Dict[str, Any]] = []
        self.failing_restores = set(failing_restores)
        self.unavailable = unavailable
        self.on_restore: Optional[Callable] = None

    async def create_database(self, name: str) -> None:
        if self.unavailable:
            raise ServiceUnavailableError("MySQL server unavailable: ERROR 2002")
        self.databases[name] = None

    async def restore_dump(self, name: str, dump_file: str) -> None:
        if self.on_restore is not None:
            await self.on_restore(name)
        if name in self.failing_restores:
            raise ItemMigrationError(f"mysql failed: ERROR 1064 in dump of {name}")
        self.databases[name] = dump_file

    async def create_user(self, username, password, privileges, databases, password_hash=None, host="localhost"):
        self.users.append({
            "username": username,
            "password": password,
            "password_hash": password_hash,
            "privileges": list(privileges),
            "databases": list(databases),
            "host": host,
        })


class FakeEmailService(EmailService):
    """Records mailboxes in memory."""

    def __init__(self, failing: Sequence[str] = ()):
        self.mailboxes: Dict[str, Dict[str, Any]] = {}
        self.failing = set(failing)

    async def create_mailbox(self, address, password, quota_mb, password_hash=None):
        if address in self.failing:
            raise ItemMigrationError(f"Mailbox {address} rejected")
        self.mailboxes[address] = {
            "password": password,
            "password_hash": password_hash,
            "quota_mb": quota_mb,
        }


class FakeDnsService(DnsService):
    """Records zones in memory."""

    def __init__(self):
        self.zones: Dict[str, Dict[str, Any]] = {}

    async def create_zone(self, domain: str, records: List[DnsRecord], default_ttl: int) -> None:
        self.zones[domain] = {"records": list(records), "default_ttl": default_ttl}


class RecordingNotifier(Notifier):
    """Keeps every notification it receives."""

    def __init__(self, fail: bool = False):
        self.notifications: List[Dict[str, Any]] = []
        self.fail = fail

    async def notify_migration_outcome(self, migration_id, status, details=None) -> OperationResult:
        self.notifications.append({"migration_id": migration_id, "status": status, "details": details or {}})
        if self.fail:
            return OperationResult.failed("channel down")
        return OperationResult.ok()


ZONE_FILE = """\
$TTL 14400
@   86400   IN  SOA ns1.example.com. admin.example.com. (
                2024010101 ; serial
                3600 1800 1209600 86400 )
example.com.    86400   IN  NS  ns1.example.com.
example.com.        IN  A   192.0.2.10
www             IN  CNAME   example.com.
mail            IN  A   192.0.2.20
example.com.        IN  MX  0 mail.example.com.
example.com.        IN  TXT "v=spf1 +a +mx ~all"
"""


@pytest.fixture
def settings(tmp_path: Path) -> MigrationSettings:
    """Settings rooted in the test's temporary directory."""
    (tmp_path / "uploads").mkdir()
    return MigrationSettings(
        temp_directory=str(tmp_path / "work"),
        upload_directory=str(tmp_path / "uploads"),
        database_url="sqlite://",
        mail_root=str(tmp_path / "vmail"),
        retry_delay=0.0,
        file_copy_workers=2,
    )


@pytest.fixture
def destination(tmp_path: Path) -> Path:
    path = tmp_path / "accounts"
    path.mkdir()
    return path


@pytest.fixture
def repository(settings: MigrationSettings):
    repo = MigrationRepository(settings.database_url)
    yield repo
    repo.dispose()


@pytest.fixture
def database_service() -> FakeDatabaseService:
    return FakeDatabaseService()


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def dns_service() -> FakeDnsService:
    return FakeDnsService()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def orchestrator(settings, repository, database_service, email_service, dns_service, notifier, console):
    return MigrationOrchestrator(
        settings=settings,
        repository=repository,
        database_service=database_service,
        email_service=email_service,
        dns_service=dns_service,
        notifier=notifier,
        console=console,
    )


def write_files(root: Path, files: Dict[str, str]) -> None:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def cpanel_layout(
    user: str = "olduser",
    domain: str = "example.com",
    databases: Sequence[str] = ("olduser_wp",),
    with_mail: bool = True,
    with_dns: bool = True,
) -> Dict[str, str]:
    """Relative path -> content of a small cPanel account backup."""
    files = {
        f"cp/{user}": f"USER={user}\nDNS={domain}\nCONTACTEMAIL=owner@{domain}\n",
        "userdata/main": (
            f"main_domain: {domain}\n"
            "addon_domains: {}\n"
            f"sub_domains:\n  - blog.{domain}\n"
            "parked_domains: []\n"
        ),
        "homedir/public_html/index.html": "<h1>Hello</h1>\n",
        "homedir/public_html/css/site.css": "body { margin: 0; }\n",
        "homedir/logs/access.log": "GET / 200\n",
    }

    grants = []
    for database in databases:
        files[f"mysql/{database}.sql"] = f"CREATE TABLE posts (id INT);\n-- {database}\n"
        escaped = database.replace("_", "\\_")
        grants.append(
            f"GRANT USAGE ON *.* TO '{database}'@'localhost' IDENTIFIED BY PASSWORD '*2470C0C06DEE42FD1618BB99005ADCA2EC9D1E19';\n"
            f"GRANT ALL PRIVILEGES ON `{escaped}`.* TO '{database}'@'localhost';\n"
        )
    if grants:
        files["mysql.sql"] = "".join(grants)

    if with_mail:
        files[f"homedir/etc/{domain}/shadow"] = "info:$6$rounds$abcdefhash:19000::::::\n"
        files[f"homedir/etc/{domain}/quota"] = "info:104857600\n"
        files[f"homedir/mail/{domain}/info/cur/1700000000.M1.host"] = "Subject: hi\n\nhello\n"

    if with_dns:
        files[f"dnszones/{domain}.db"] = ZONE_FILE.replace("example.com", domain)

    return files


@pytest.fixture
def cpanel_archive(tmp_path: Path, settings: MigrationSettings) -> Callable[..., Path]:
    """Factory writing a cpmove tar.gz into the upload directory."""

    def build(name: str = "cpmove-olduser", **layout) -> Path:
        source = tmp_path / "sources" / name
        write_files(source, cpanel_layout(**layout))
        archive = Path(settings.upload_directory) / f"{name}.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(source, arcname=name)
        return archive

    return build


@pytest.fixture
def manual_site(settings: MigrationSettings) -> Callable[..., Path]:
    """Factory writing a manual site tree into the upload directory."""

    def build(name: str = "site", descriptor: Optional[str] = "domain: example.net\n", files: Optional[Dict[str, str]] = None) -> Path:
        root = Path(settings.upload_directory) / name
        layout = {
            "public_html/index.php": "<?php echo 'hi';\n",
            "databases/shop.sql": "CREATE TABLE orders (id INT);\n",
        }
        if descriptor is not None:
            layout["account.yaml"] = descriptor
        layout.update(files or {})
        write_files(root, layout)
        return root

    return build


def request_for(archive: Path, destination: Path, **overrides) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "source_panel": "cpanel",
        "migration_type": "full",
        "backup_source": {"uploaded_file": archive.name},
        "destination_path": str(destination),
    }
    config.update(overrides)
    return config
