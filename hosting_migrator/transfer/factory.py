"""
Factory for creating acquisition method instances.

This module provides the AcquisitionMethodFactory class that creates
the acquisition method matching a backup source.
"""

from typing import Dict, List, Type
import logging

from hosting_migrator.core.exceptions import ConfigurationError
from hosting_migrator.models.config import MigrationSettings
from hosting_migrator.transfer.base import AcquisitionMethod

logger = logging.getLogger(__name__)


class AcquisitionMethodFactory:
    """Registry of acquisition methods keyed by backup source kind."""

    _methods: Dict[str, Type[AcquisitionMethod]] = {}

    @classmethod
    def register_method(cls, kind: str, method_class: Type[AcquisitionMethod]) -> None:
        """
        Register an acquisition method class with the factory.

        Args:
            kind: Source kind handled by the method (upload, url, ftp, ftps, sftp)
            method_class: Acquisition method class to register
        """
        cls._methods[kind.lower()] = method_class
        logger.debug(f"Registered acquisition method: {kind}")

    @classmethod
    def get_available_methods(cls) -> List[str]:
        return list(cls._methods.keys())

    @classmethod
    def create_method(cls, kind: str, settings: MigrationSettings) -> AcquisitionMethod:
        """
        Create the acquisition method for a source kind.

        Raises:
            ConfigurationError: If no method is registered for the kind
        """
        method_class = cls._methods.get(kind.lower())
        if method_class is None:
            available = ", ".join(cls.get_available_methods())
            raise ConfigurationError(
                f"Unsupported backup source: {kind}. Available sources: {available}"
            )
        return method_class(settings)


def register_acquisition_method(*kinds: str):
    """
    Decorator to automatically register acquisition methods with the factory.

    Args:
        kinds: Source kinds handled by the decorated class
    """
    def decorator(cls: Type[AcquisitionMethod]) -> Type[AcquisitionMethod]:
        for kind in kinds:
            AcquisitionMethodFactory.register_method(kind, cls)
        return cls
    return decorator
