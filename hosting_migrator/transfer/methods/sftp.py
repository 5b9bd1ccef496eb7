"""
SFTP acquisition using paramiko.
"""

import asyncio
import posixpath
import stat
from pathlib import Path

import paramiko
from paramiko import AutoAddPolicy, SFTPClient, SSHClient

from hosting_migrator.core.exceptions import AcquisitionError
from hosting_migrator.models.config import BackupSource, FtpConfig
from hosting_migrator.transfer.base import AcquiredBackup, AcquisitionMethod, SizeGuard
from hosting_migrator.transfer.factory import register_acquisition_method


@register_acquisition_method('sftp')
class SftpMethod(AcquisitionMethod):
    """Pulls a backup archive or directory tree over SFTP."""

    retryable_errors = (paramiko.SSHException, EOFError, OSError)

    def _connect(self, config: FtpConfig) -> SSHClient:
        client = SSHClient()
        client.set_missing_host_key_policy(AutoAddPolicy())
        client.connect(
            hostname=config.host,
            port=config.effective_port,
            username=config.username,
            password=config.password,
            timeout=config.timeout,
            look_for_keys=config.password is None,
            allow_agent=config.password is None,
        )
        self.logger.info(f"SSH connection established to {config.host}:{config.effective_port}")
        return client

    def _download_file(self, sftp: SFTPClient, remote: str, local: Path, guard: SizeGuard) -> None:
        local.parent.mkdir(parents=True, exist_ok=True)
        with sftp.open(remote, "rb") as remote_file, open(local, "wb") as f:
            while True:
                chunk = remote_file.read(self.settings.chunk_size)
                if not chunk:
                    break
                guard.add(len(chunk))
                f.write(chunk)

    def _mirror(self, sftp: SFTPClient, remote_dir: str, local_dir: Path, guard: SizeGuard) -> int:
        local_dir.mkdir(parents=True, exist_ok=True)
        count = 0
        for entry in sftp.listdir_attr(remote_dir):
            name = entry.filename
            if name in (".", "..") or "/" in name:
                continue
            remote_path = posixpath.join(remote_dir, name)
            if stat.S_ISDIR(entry.st_mode):
                count += self._mirror(sftp, remote_path, local_dir / name, guard)
            elif stat.S_ISREG(entry.st_mode):
                guard.check(guard.received + (entry.st_size or 0))
                self._download_file(sftp, remote_path, local_dir / name, guard)
                count += 1
        return count

    def _fetch_sync(self, config: FtpConfig, destination_dir: Path, allow_directory: bool) -> AcquiredBackup:
        guard = self.size_guard()
        try:
            client = self._connect(config)
        except paramiko.AuthenticationException as e:
            raise AcquisitionError(f"SFTP authentication failed for {config.username}@{config.host}") from e
        try:
            sftp = client.open_sftp()
            try:
                remote_stat = sftp.stat(config.remote_path)
            except FileNotFoundError as e:
                raise AcquisitionError(f"Remote path not found: {config.remote_path}") from e

            if stat.S_ISDIR(remote_stat.st_mode):
                if not (config.recursive and allow_directory):
                    raise AcquisitionError(
                        f"Remote path is a directory, expected an archive: {config.remote_path}"
                    )
                target = destination_dir / (posixpath.basename(config.remote_path.rstrip("/")) or "site")
                files = self._mirror(sftp, config.remote_path, target, guard)
                return AcquiredBackup(
                    path=target,
                    size=guard.received,
                    is_directory=True,
                    source_kind="sftp",
                    metadata={"host": config.host, "files": files},
                )

            guard.check(remote_stat.st_size or 0)
            target = destination_dir / (posixpath.basename(config.remote_path) or "backup")
            try:
                self._download_file(sftp, config.remote_path, target, guard)
            except BaseException:
                target.unlink(missing_ok=True)
                raise
            return AcquiredBackup(
                path=target,
                size=guard.received,
                source_kind="sftp",
                metadata={"host": config.host, "remote_path": config.remote_path},
            )
        finally:
            client.close()

    async def fetch(
        self,
        source: BackupSource,
        destination_dir: Path,
        allow_directory: bool = False
    ) -> AcquiredBackup:
        config = source.ftp_config
        self.logger.info(f"Fetching {config.remote_path} from sftp://{config.host}")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._fetch_sync, config, destination_dir, allow_directory
        )
