"""
Panel parser interface.

A panel parser reads an extracted backup and produces the canonical
AccountManifest. Each control panel supplies its own implementation.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional
import asyncio
import logging

import yaml
from pydantic import ValidationError

from hosting_migrator.core.exceptions import MigrationError, ParseError, UnsupportedPanelError
from hosting_migrator.models.config import MigrationSettings
from hosting_migrator.models.manifest import AccountManifest


class PanelParser(ABC):
    """
    Base class for all panel parsers.

    Subclasses implement ``parse_layout``, a blocking read of the backup
    layout; ``parse`` runs it in a worker thread and turns unexpected
    failures into ParseError.
    """

    def __init__(self, settings: MigrationSettings):
        self.settings = settings
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def panel_type(self) -> str:
        """Return the panel type identifier."""
        pass

    @abstractmethod
    def parse_layout(self, root: Path, domain_hint: Optional[str] = None) -> AccountManifest:
        """
        Read the extracted backup below ``root``.

        Args:
            root: Directory holding the extracted backup
            domain_hint: Domain supplied with the migration request, if any

        Returns:
            AccountManifest describing the source account
        """
        pass

    async def parse(self, root: Path, domain_hint: Optional[str] = None) -> AccountManifest:
        if not root.is_dir():
            raise ParseError(f"Extracted backup directory not found: {root}")

        loop = asyncio.get_running_loop()
        try:
            manifest = await loop.run_in_executor(None, self.parse_layout, root, domain_hint)
        except MigrationError:
            raise
        except (OSError, KeyError, TypeError, ValueError, ValidationError, yaml.YAMLError) as e:
            raise ParseError(
                f"Malformed {self.panel_type} backup: {e}",
                details={"panel": self.panel_type}
            ) from e

        self.logger.info(
            f"Parsed {self.panel_type} backup for {manifest.domain}: {manifest.summary()}"
        )
        return manifest

    @staticmethod
    def confine(path: Path, root: Path, what: str) -> Path:
        """
        Resolve a path named by the backup and refuse it unless it lies
        inside ``root``.

        Raises:
            ParseError: If the resolved path escapes ``root``
        """
        resolved = path.resolve()
        if not resolved.is_relative_to(root.resolve()):
            raise ParseError(f"{what} lies outside the backup: {path}")
        return resolved

    @staticmethod
    def unwrap(root: Path, markers: List[str]) -> Optional[Path]:
        """
        Find the directory holding the backup layout.

        Backups are often wrapped in a single top-level directory such as
        ``cpmove-<user>``; the first directory, at most one level deep,
        that contains any of ``markers`` is returned.
        """
        candidates = [root] + sorted(p for p in root.iterdir() if p.is_dir())
        for candidate in candidates:
            if any((candidate / marker).exists() for marker in markers):
                return candidate
        return None


class UnsupportedPanelParser(PanelParser):
    """Parser for panels whose backup layout is not supported yet."""

    def parse_layout(self, root: Path, domain_hint: Optional[str] = None) -> AccountManifest:
        raise UnsupportedPanelError(
            f"{self.panel_type} backups are not supported yet",
            details={"panel": self.panel_type}
        )
