"""
Acquisition of a backup the customer already uploaded.

The uploaded file (or, for manual migrations, directory tree) is copied
into the migration workspace; the original upload is never modified.
"""

import asyncio
import shutil
from pathlib import Path

from hosting_migrator.core.exceptions import AcquisitionError
from hosting_migrator.models.config import BackupSource
from hosting_migrator.transfer.base import AcquiredBackup, AcquisitionMethod
from hosting_migrator.transfer.factory import register_acquisition_method
from hosting_migrator.utils.helpers import directory_size


@register_acquisition_method('upload')
class UploadedFileMethod(AcquisitionMethod):
    """Copies an uploaded backup into the workspace."""

    def resolve(self, reference: str) -> Path:
        path = Path(reference)
        if path.is_absolute():
            return path
        upload_root = Path(self.settings.upload_directory).resolve()
        resolved = (upload_root / path).resolve()
        if not resolved.is_relative_to(upload_root):
            raise AcquisitionError(
                f"Uploaded file reference escapes the upload directory: {reference}"
            )
        return resolved

    async def fetch(
        self,
        source: BackupSource,
        destination_dir: Path,
        allow_directory: bool = False
    ) -> AcquiredBackup:
        upload = self.resolve(source.uploaded_file)

        if not upload.exists():
            raise AcquisitionError(f"Uploaded file not found: {upload}")

        is_directory = upload.is_dir()
        if is_directory and not allow_directory:
            raise AcquisitionError(
                f"Uploaded backup is a directory, expected an archive: {upload}"
            )

        loop = asyncio.get_running_loop()
        if is_directory:
            size = await loop.run_in_executor(None, directory_size, upload)
        else:
            size = upload.stat().st_size

        # validated before anything is copied
        self.size_guard(size)

        target = destination_dir / upload.name
        self.logger.info(f"Copying uploaded backup {upload} ({size} bytes) to {target}")
        try:
            if is_directory:
                await loop.run_in_executor(
                    None, lambda: shutil.copytree(upload, target, symlinks=True)
                )
            else:
                await loop.run_in_executor(None, shutil.copy2, upload, target)
        except (OSError, shutil.Error) as e:
            raise AcquisitionError(f"Failed to copy uploaded backup: {e}") from e

        return AcquiredBackup(
            path=target,
            size=size,
            is_directory=is_directory,
            source_kind="upload",
            metadata={"original_path": str(upload)},
        )
