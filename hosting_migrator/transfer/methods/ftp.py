"""
FTP/FTPS acquisition.

This module pulls a backup archive, or mirrors a whole directory tree
for manual migrations, using Python's built-in ftplib. ftplib is
blocking, so every session runs in a worker thread.
"""

import asyncio
import ftplib
import posixpath
import ssl
from pathlib import Path
from typing import Union

from hosting_migrator.core.exceptions import AcquisitionError
from hosting_migrator.models.config import BackupSource, FtpConfig, TransferProtocol
from hosting_migrator.transfer.base import AcquiredBackup, AcquisitionMethod, SizeGuard
from hosting_migrator.transfer.factory import register_acquisition_method


@register_acquisition_method('ftp', 'ftps')
class FtpMethod(AcquisitionMethod):
    """
    FTP/FTPS implementation using ftplib.

    Supports single archive downloads and recursive MLSD mirroring of a
    remote directory.
    """

    retryable_errors = (ftplib.error_temp, ftplib.error_reply, EOFError, OSError)

    def _connect(self, config: FtpConfig) -> Union[ftplib.FTP, ftplib.FTP_TLS]:
        if config.protocol == TransferProtocol.FTPS:
            client = ftplib.FTP_TLS(context=ssl.create_default_context(), timeout=config.timeout)
        else:
            client = ftplib.FTP(timeout=config.timeout)

        client.connect(config.host, config.effective_port)
        client.login(config.username, config.password or "")
        client.set_pasv(config.passive_mode)

        if config.protocol == TransferProtocol.FTPS:
            client.prot_p()

        self.logger.info(f"FTP connection established to {config.host}:{config.effective_port}")
        return client

    @staticmethod
    def _disconnect(client: ftplib.FTP) -> None:
        try:
            client.quit()
        except ftplib.all_errors:
            client.close()

    def _download_file(self, client: ftplib.FTP, remote: str, local: Path, guard: SizeGuard) -> None:
        local.parent.mkdir(parents=True, exist_ok=True)
        with open(local, "wb") as f:
            def write(chunk: bytes) -> None:
                guard.add(len(chunk))
                f.write(chunk)

            client.retrbinary(f"RETR {remote}", write, blocksize=self.settings.chunk_size)

    def _mirror(self, client: ftplib.FTP, remote_dir: str, local_dir: Path, guard: SizeGuard) -> int:
        local_dir.mkdir(parents=True, exist_ok=True)
        count = 0
        for name, facts in client.mlsd(remote_dir, facts=["type", "size"]):
            entry_type = facts.get("type", "")
            if entry_type in ("cdir", "pdir") or name in (".", ".."):
                continue
            if "/" in name or name.startswith(".."):
                raise AcquisitionError(f"Refusing unsafe remote file name: {name}")

            remote_path = posixpath.join(remote_dir, name)
            if entry_type == "dir":
                count += self._mirror(client, remote_path, local_dir / name, guard)
            elif entry_type == "file":
                if "size" in facts:
                    guard.check(guard.received + int(facts["size"]))
                self._download_file(client, remote_path, local_dir / name, guard)
                count += 1
        return count

    def _fetch_sync(self, config: FtpConfig, destination_dir: Path, allow_directory: bool) -> AcquiredBackup:
        guard = self.size_guard()
        client = self._connect(config)
        try:
            if config.recursive:
                if not allow_directory:
                    raise AcquisitionError(
                        "Recursive FTP acquisition is only available for manual migrations"
                    )
                target = destination_dir / (posixpath.basename(config.remote_path.rstrip("/")) or "site")
                files = self._mirror(client, config.remote_path, target, guard)
                self.logger.info(f"Mirrored {files} files from {config.remote_path}")
                return AcquiredBackup(
                    path=target,
                    size=guard.received,
                    is_directory=True,
                    source_kind=config.protocol.value,
                    metadata={"host": config.host, "files": files},
                )

            try:
                guard.check(client.size(config.remote_path) or 0)
            except ftplib.error_perm:
                # SIZE is optional; the stream itself is still guarded
                pass

            target = destination_dir / (posixpath.basename(config.remote_path) or "backup")
            try:
                self._download_file(client, config.remote_path, target, guard)
            except BaseException:
                target.unlink(missing_ok=True)
                raise
            return AcquiredBackup(
                path=target,
                size=guard.received,
                source_kind=config.protocol.value,
                metadata={"host": config.host, "remote_path": config.remote_path},
            )
        except ftplib.error_perm as e:
            raise AcquisitionError(f"FTP server refused the request: {e}") from e
        finally:
            self._disconnect(client)

    async def fetch(
        self,
        source: BackupSource,
        destination_dir: Path,
        allow_directory: bool = False
    ) -> AcquiredBackup:
        config = source.ftp_config
        self.logger.info(
            f"Fetching {config.remote_path} from {config.protocol.value}://{config.host}"
        )
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._fetch_sync, config, destination_dir, allow_directory
        )
