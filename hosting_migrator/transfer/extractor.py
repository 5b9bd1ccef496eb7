"""
Archive extractor.

Unpacks a validated backup archive (zip, tar, tar.gz, tar.bz2) into a
fresh scratch directory. Members that would land outside that directory
are rejected before anything is written.
"""

import asyncio
import logging
import os
import tarfile
import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from hosting_migrator.core.exceptions import ExtractionError

logger = logging.getLogger(__name__)


class ArchiveFormat(str, Enum):
    """Archive formats the extractor understands."""
    ZIP = "zip"
    TAR = "tar"
    TAR_GZ = "tar.gz"
    TAR_BZ2 = "tar.bz2"


EXTENSIONS = (
    (".tar.gz", ArchiveFormat.TAR_GZ),
    (".tgz", ArchiveFormat.TAR_GZ),
    (".tar.bz2", ArchiveFormat.TAR_BZ2),
    (".tbz2", ArchiveFormat.TAR_BZ2),
    (".tar", ArchiveFormat.TAR),
    (".zip", ArchiveFormat.ZIP),
)

TAR_MODES = {
    ArchiveFormat.TAR: "r:",
    ArchiveFormat.TAR_GZ: "r:gz",
    ArchiveFormat.TAR_BZ2: "r:bz2",
}


@dataclass
class ExtractionResult:
    """Summary of an extraction."""
    destination: Path
    archive_format: ArchiveFormat
    files_count: int
    total_size: int


def _sniff_format(path: Path) -> Optional[ArchiveFormat]:
    with open(path, "rb") as f:
        header = f.read(512)
    if header.startswith(b"PK\x03\x04") or header.startswith(b"PK\x05\x06"):
        return ArchiveFormat.ZIP
    if header.startswith(b"\x1f\x8b"):
        return ArchiveFormat.TAR_GZ
    if header.startswith(b"BZh"):
        return ArchiveFormat.TAR_BZ2
    if len(header) >= 262 and header[257:262] == b"ustar":
        return ArchiveFormat.TAR
    return None


def detect_format(archive_path: Union[str, Path]) -> ArchiveFormat:
    """Identify the archive format by extension, falling back to its signature."""
    path = Path(archive_path)
    name = path.name.lower()
    for extension, archive_format in EXTENSIONS:
        if name.endswith(extension):
            return archive_format

    sniffed = _sniff_format(path) if path.is_file() else None
    if sniffed is None:
        raise ExtractionError(
            f"Unsupported archive format: {path.name}",
            details={"supported": [ext for ext, _ in EXTENSIONS]}
        )
    return sniffed


def _check_member_name(name: str) -> None:
    member = PurePosixPath(name.replace("\\", "/"))
    if member.is_absolute() or ".." in member.parts or (member.parts and ":" in member.parts[0]):
        raise ExtractionError(f"Archive member escapes the extraction directory: {name}")


def _check_tar_member(member: tarfile.TarInfo, root: Path) -> None:
    _check_member_name(member.name)
    if member.isdev() or member.isfifo():
        raise ExtractionError(f"Archive contains a device or fifo entry: {member.name}")
    if member.issym() or member.islnk():
        if member.issym():
            base = (root / member.name).parent
        else:
            base = root
        target = os.path.normpath(os.path.join(base, member.linkname))
        if os.path.isabs(member.linkname) or not Path(target).is_relative_to(root):
            raise ExtractionError(
                f"Archive link points outside the extraction directory: {member.name} -> {member.linkname}"
            )


class ArchiveExtractor:
    """Extracts backup archives in a worker thread."""

    def _extract_tar(self, archive_path: Path, destination: Path, archive_format: ArchiveFormat) -> ExtractionResult:
        files_count = 0
        total_size = 0
        with tarfile.open(archive_path, TAR_MODES[archive_format]) as tar:
            members = tar.getmembers()
            for member in members:
                _check_tar_member(member, destination)
                if member.isfile():
                    files_count += 1
                    total_size += member.size
            tar.extractall(destination, members=members, filter="data")
        return ExtractionResult(destination, archive_format, files_count, total_size)

    def _extract_zip(self, archive_path: Path, destination: Path) -> ExtractionResult:
        files_count = 0
        total_size = 0
        with zipfile.ZipFile(archive_path) as archive:
            infos = archive.infolist()
            for info in infos:
                _check_member_name(info.filename)
                if not info.is_dir():
                    files_count += 1
                    total_size += info.file_size
            archive.extractall(destination)
        return ExtractionResult(destination, ArchiveFormat.ZIP, files_count, total_size)

    def extract_sync(self, archive_path: Union[str, Path], destination: Union[str, Path]) -> ExtractionResult:
        archive_path = Path(archive_path)
        destination = Path(destination).resolve()

        if not archive_path.is_file():
            raise ExtractionError(f"Archive not found: {archive_path}")

        archive_format = detect_format(archive_path)

        if destination.exists() and any(destination.iterdir()):
            raise ExtractionError(f"Extraction directory is not empty: {destination}")
        destination.mkdir(parents=True, exist_ok=True)

        logger.info(f"Extracting {archive_format.value} archive {archive_path} to {destination}")
        try:
            if archive_format == ArchiveFormat.ZIP:
                result = self._extract_zip(archive_path, destination)
            else:
                result = self._extract_tar(archive_path, destination, archive_format)
        except ExtractionError:
            raise
        except (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError) as e:
            raise ExtractionError(
                f"Corrupt or unreadable {archive_format.value} archive: {e}",
                details={"archive": str(archive_path)}
            ) from e

        logger.info(f"Extracted {result.files_count} files ({result.total_size} bytes)")
        return result

    async def extract(self, archive_path: Union[str, Path], destination: Union[str, Path]) -> ExtractionResult:
        """Extract ``archive_path`` into the empty directory ``destination``."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.extract_sync, archive_path, destination)
