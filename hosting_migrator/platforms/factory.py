"""
Panel parser factory.
"""

from typing import Dict, List, Type

from hosting_migrator.core.exceptions import ConfigurationError
from hosting_migrator.models.config import MigrationRequest, MigrationSettings, MigrationType
from hosting_migrator.platforms.base import PanelParser
from hosting_migrator.platforms.control_panel import CPanelParser, DirectAdminParser, PleskParser
from hosting_migrator.platforms.manual import ManualParser


class PanelParserFactory:
    """
    Factory class for creating panel parsers.

    Manual migrations always use the manual parser, whatever panel the
    site came from.
    """

    _parsers: Dict[str, Type[PanelParser]] = {
        "cpanel": CPanelParser,
        "directadmin": DirectAdminParser,
        "plesk": PleskParser,
        "manual": ManualParser,
    }

    @classmethod
    def register_parser(cls, panel_type: str, parser_class: Type[PanelParser]) -> None:
        """
        Register a new panel parser.

        Args:
            panel_type: Panel type identifier
            parser_class: Parser class to register
        """
        cls._parsers[panel_type] = parser_class

    @classmethod
    def get_available_panels(cls) -> List[str]:
        return list(cls._parsers.keys())

    @classmethod
    def create_parser(cls, panel_type: str, settings: MigrationSettings) -> PanelParser:
        parser_class = cls._parsers.get(panel_type)
        if parser_class is None:
            raise ConfigurationError(
                f"Unsupported panel type: {panel_type}. "
                f"Available panels: {', '.join(cls.get_available_panels())}"
            )
        return parser_class(settings)

    @classmethod
    def for_request(cls, request: MigrationRequest, settings: MigrationSettings) -> PanelParser:
        if request.migration_type == MigrationType.MANUAL:
            return cls.create_parser("manual", settings)
        return cls.create_parser(request.source_panel.value, settings)
