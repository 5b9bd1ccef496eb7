"""
Account manifest models.

The manifest is the panel-agnostic description of a source account. It
is produced once by a panel parser and read by every item migrator.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def is_safe_name(value: str) -> bool:
    """True when ``value`` can be used as a single path component."""
    return bool(value) and value not in (".", "..") and not any(c in value for c in ("/", "\\", "\0"))


class DatabaseUser(BaseModel):
    """A database login and its grants."""
    username: str
    password: Optional[str] = None
    password_hash: Optional[str] = None
    privileges: List[str] = Field(default_factory=lambda: ["ALL"])
    host: str = "localhost"


class DatabaseInfo(BaseModel):
    """A database and the dump it is restored from."""
    name: str
    dump_file: Optional[str] = None
    users: List[DatabaseUser] = Field(default_factory=list)
    size_bytes: int = 0

    @field_validator('name')
    @classmethod
    def name_is_identifier(cls, v):
        if not is_safe_name(v):
            raise ValueError(f'Invalid database name: {v!r}')
        return v


class EmailAccount(BaseModel):
    """A mailbox on one of the account's domains."""
    address: str
    password: Optional[str] = None
    password_hash: Optional[str] = None
    quota_mb: int = 0  # 0 means unlimited
    mailbox_path: Optional[str] = None

    @field_validator('address')
    @classmethod
    def address_parts_are_names(cls, v):
        v = v.strip()
        if '@' in v and not all(is_safe_name(part) for part in v.split('@', 1)):
            raise ValueError(f'Invalid email address: {v!r}')
        return v

    @property
    def local_part(self) -> str:
        return self.address.split('@', 1)[0]

    @property
    def domain(self) -> str:
        return self.address.split('@', 1)[-1]


class DnsRecord(BaseModel):
    """A single resource record."""
    name: str
    type: str
    value: str
    ttl: Optional[int] = None
    priority: Optional[int] = None


class DnsZone(BaseModel):
    """A DNS zone with its records."""
    domain: str
    ttl: Optional[int] = None
    records: List[DnsRecord] = Field(default_factory=list)

    @field_validator('domain')
    @classmethod
    def domain_is_name(cls, v):
        if not is_safe_name(v):
            raise ValueError(f'Invalid zone name: {v!r}')
        return v


class FileRoots(BaseModel):
    """Source directories copied by the file migrator."""
    web_root: Optional[str] = None
    # destination sub-directory name -> absolute source path
    auxiliary: Dict[str, str] = Field(default_factory=dict)
    # names directly below the web root that are not site content
    excluded: List[str] = Field(default_factory=list)


class AccountManifest(BaseModel):
    """Canonical description of a source hosting account."""
    domain: str
    username: Optional[str] = None
    contact_email: Optional[str] = None
    disk_usage_bytes: int = 0
    addon_domains: List[str] = Field(default_factory=list)
    subdomains: List[str] = Field(default_factory=list)
    parked_domains: List[str] = Field(default_factory=list)
    databases: List[DatabaseInfo] = Field(default_factory=list)
    email_accounts: List[EmailAccount] = Field(default_factory=list)
    dns_zones: List[DnsZone] = Field(default_factory=list)
    file_roots: FileRoots = Field(default_factory=FileRoots)

    @field_validator('domain')
    @classmethod
    def domain_is_name(cls, v):
        if not is_safe_name(v):
            raise ValueError(f'Invalid account domain: {v!r}')
        return v

    @property
    def all_domains(self) -> List[str]:
        domains = [self.domain]
        for name in self.addon_domains + self.parked_domains + self.subdomains:
            if name not in domains:
                domains.append(name)
        return domains

    def summary(self) -> Dict[str, int]:
        return {
            "domains": len(self.all_domains),
            "databases": len(self.databases),
            "email_accounts": len(self.email_accounts),
            "dns_zones": len(self.dns_zones),
            "disk_usage_bytes": self.disk_usage_bytes,
        }
