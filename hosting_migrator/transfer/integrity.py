"""
File integrity verification for migrated files.

This module copies files while hashing them and verifies the written
copy against the source checksum.
"""

import hashlib
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Union
import logging

from hosting_migrator.core.exceptions import ChecksumMismatchError
from hosting_migrator.utils.helpers import calculate_file_checksum

logger = logging.getLogger(__name__)


@dataclass
class VerifiedCopy:
    """Result of a verified file copy."""
    source: str
    destination: str
    size: int
    checksum_source: str
    checksum_destination: str

    @property
    def matches(self) -> bool:
        return self.checksum_source == self.checksum_destination


class IntegrityVerifier:
    """
    Copies files and verifies the copies by checksum.

    Methods are blocking and meant to run in worker threads.
    """

    DEFAULT_CHUNK_SIZE = 65536

    def __init__(self, algorithm: str = "sha256", chunk_size: int = DEFAULT_CHUNK_SIZE):
        if algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported algorithm: {algorithm}")
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def checksum(self, file_path: Union[str, Path]) -> str:
        return calculate_file_checksum(file_path, self.algorithm)

    def copy_verified(self, source: Union[str, Path], destination: Union[str, Path]) -> VerifiedCopy:
        """
        Copy ``source`` to ``destination`` and compare checksums.

        The source hash is computed from the bytes as they are read, the
        destination hash by reading the written file back.

        Raises:
            ChecksumMismatchError: If the written copy differs from the source
        """
        source = Path(source)
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        hash_obj = hashlib.new(self.algorithm)
        size = 0
        with open(source, "rb") as src, open(destination, "wb") as dst:
            for chunk in iter(lambda: src.read(self.chunk_size), b""):
                hash_obj.update(chunk)
                dst.write(chunk)
                size += len(chunk)
            dst.flush()
            os.fsync(dst.fileno())
        shutil.copystat(source, destination)

        result = VerifiedCopy(
            source=str(source),
            destination=str(destination),
            size=size,
            checksum_source=hash_obj.hexdigest(),
            checksum_destination=self.checksum(destination),
        )
        if not result.matches:
            raise ChecksumMismatchError(
                f"Checksum mismatch for {destination}",
                details={
                    "source": result.checksum_source,
                    "destination": result.checksum_destination,
                }
            )
        return result
