"""
Panel parsers turning extracted backups into account manifests.
"""

from hosting_migrator.platforms.base import PanelParser, UnsupportedPanelParser
from hosting_migrator.platforms.control_panel import (
    CPanelParser,
    DirectAdminParser,
    PleskParser,
    parse_grants,
)
from hosting_migrator.platforms.manual import ManualParser
from hosting_migrator.platforms.zonefile import parse_zone_file
from hosting_migrator.platforms.factory import PanelParserFactory

__all__ = [
    "PanelParser",
    "UnsupportedPanelParser",
    "CPanelParser",
    "DirectAdminParser",
    "PleskParser",
    "ManualParser",
    "parse_grants",
    "parse_zone_file",
    "PanelParserFactory",
]
