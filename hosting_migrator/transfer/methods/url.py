"""
HTTP(S) download of a backup archive.

This module streams the archive with aiohttp in fixed-size chunks and
aborts as soon as the configured maximum backup size is passed.
"""

import asyncio
import os
from pathlib import Path
from urllib.parse import unquote, urlparse

import aiohttp

from hosting_migrator.core.exceptions import AcquisitionError
from hosting_migrator.models.config import BackupSource
from hosting_migrator.transfer.base import AcquiredBackup, AcquisitionMethod
from hosting_migrator.transfer.factory import register_acquisition_method
from hosting_migrator.utils.helpers import format_bytes


def filename_from_url(url: str) -> str:
    name = os.path.basename(unquote(urlparse(url).path))
    return name or "backup.tar.gz"


@register_acquisition_method('url')
class UrlDownloadMethod(AcquisitionMethod):
    """Downloads a backup archive over HTTP or HTTPS."""

    retryable_errors = (aiohttp.ClientError, asyncio.TimeoutError)

    async def fetch(
        self,
        source: BackupSource,
        destination_dir: Path,
        allow_directory: bool = False
    ) -> AcquiredBackup:
        url = source.url
        target = destination_dir / filename_from_url(url)
        timeout = aiohttp.ClientTimeout(total=self.settings.download_timeout)

        self.logger.info(f"Downloading backup from {url}")
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if 400 <= response.status < 500:
                        raise AcquisitionError(
                            f"Backup download rejected with HTTP {response.status}: {url}",
                            details={"status": response.status}
                        )
                    response.raise_for_status()

                    # a declared Content-Length over the limit fails before any data is read
                    guard = self.size_guard(response.content_length)

                    with open(target, "wb") as f:
                        async for chunk in response.content.iter_chunked(self.settings.chunk_size):
                            guard.add(len(chunk))
                            f.write(chunk)
        except BaseException:
            target.unlink(missing_ok=True)
            raise

        self.logger.info(f"Downloaded {format_bytes(guard.received)} to {target}")
        return AcquiredBackup(
            path=target,
            size=guard.received,
            source_kind="url",
            metadata={"url": url},
        )
