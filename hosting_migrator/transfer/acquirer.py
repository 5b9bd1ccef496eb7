"""
Archive acquirer.

Obtains the source backup for a migration through the acquisition
method matching its backup source, retrying transient transport
failures with exponential backoff.
"""

import logging
from pathlib import Path

from hosting_migrator.core.exceptions import AcquisitionError, MigrationError
from hosting_migrator.models.config import BackupSource, MigrationSettings
from hosting_migrator.transfer.base import AcquiredBackup, SizeGuard
from hosting_migrator.transfer.factory import AcquisitionMethodFactory
from hosting_migrator.utils.helpers import retry_async

# registers the built-in methods
import hosting_migrator.transfer.methods  # noqa: F401

logger = logging.getLogger(__name__)


class ArchiveAcquirer:
    """Brings a backup into a migration's private download directory."""

    def __init__(self, settings: MigrationSettings):
        self.settings = settings

    async def acquire(
        self,
        source: BackupSource,
        destination_dir: Path,
        allow_directory: bool = False
    ) -> AcquiredBackup:
        """
        Acquire a backup and validate it against the size limit.

        Raises:
            BackupTooLargeError: The backup exceeds max_backup_size; never retried
            AcquisitionError: Any other failure, including exhausted retries
        """
        destination_dir.mkdir(parents=True, exist_ok=True)
        method = AcquisitionMethodFactory.create_method(source.kind, self.settings)

        try:
            if method.retryable_errors:
                backup = await retry_async(
                    lambda: method.fetch(source, destination_dir, allow_directory),
                    max_attempts=self.settings.retry_attempts,
                    delay=self.settings.retry_delay,
                    exceptions=method.retryable_errors,
                    description=f"{source.kind} acquisition",
                )
            else:
                backup = await method.fetch(source, destination_dir, allow_directory)
        except MigrationError:
            raise
        except method.retryable_errors as e:
            raise AcquisitionError(
                f"Backup acquisition failed after {self.settings.retry_attempts} attempts: {e}",
                details={"source": source.kind}
            ) from e
        except Exception as e:
            raise AcquisitionError(f"Backup acquisition failed: {e}", details={"source": source.kind}) from e
        finally:
            await method.cleanup()

        SizeGuard(self.settings.max_backup_size).check(backup.size)
        logger.info(
            f"Acquired {'directory' if backup.is_directory else 'archive'} "
            f"{backup.path} ({backup.size} bytes) via {source.kind}"
        )
        return backup
