"""
Backup acquisition and extraction for the Hosting Migrator.
"""

from hosting_migrator.transfer.base import AcquiredBackup, AcquisitionMethod, SizeGuard
from hosting_migrator.transfer.factory import AcquisitionMethodFactory, register_acquisition_method
from hosting_migrator.transfer.acquirer import ArchiveAcquirer
from hosting_migrator.transfer.extractor import (
    ArchiveExtractor,
    ArchiveFormat,
    ExtractionResult,
    detect_format,
)
from hosting_migrator.transfer.integrity import IntegrityVerifier, VerifiedCopy

__all__ = [
    "AcquiredBackup",
    "AcquisitionMethod",
    "SizeGuard",
    "AcquisitionMethodFactory",
    "register_acquisition_method",
    "ArchiveAcquirer",
    "ArchiveExtractor",
    "ArchiveFormat",
    "ExtractionResult",
    "detect_format",
    "IntegrityVerifier",
    "VerifiedCopy",
]
