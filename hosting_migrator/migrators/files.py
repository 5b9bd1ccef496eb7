"""
File migrator.

Copies the account's web root and auxiliary directories into the
destination account root through a work queue drained by a bounded pool
of workers. Every file is hashed while copied and verified afterwards.
"""

import asyncio
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from hosting_migrator.core.exceptions import ItemMigrationError, OperationResult
from hosting_migrator.migrators.base import ItemMigrator, ItemOutcome, MigrationContext, StepOutcome
from hosting_migrator.models.session import ItemType
from hosting_migrator.transfer.integrity import IntegrityVerifier
from hosting_migrator.utils.logging import LogCategory

WEB_ROOT_NAME = "public_html"
FILE_MODE = 0o644
EXECUTABLE_MODE = 0o755
DIRECTORY_MODE = 0o755


@dataclass
class FileTask:
    """One file to copy."""
    source: Path
    relative: str
    size: int


def apply_permissions(path: Path, mode: int, owner: Optional[str] = None) -> OperationResult:
    """Set mode and, when running as root, ownership of a migrated path."""
    try:
        os.chmod(path, mode)
        if owner and hasattr(os, "geteuid") and os.geteuid() == 0:
            import pwd
            entry = pwd.getpwnam(owner)
            os.chown(path, entry.pw_uid, entry.pw_gid)
    except KeyError:
        return OperationResult.failed(f"Unknown system user {owner}", path=str(path))
    except OSError as e:
        return OperationResult.failed(f"Cannot set permissions on {path}: {e}", path=str(path))
    return OperationResult.ok(path=str(path))


def file_mode(source: Path) -> int:
    """Mode for a migrated file; owner-executable sources stay executable."""
    if source.stat().st_mode & stat.S_IXUSR:
        return EXECUTABLE_MODE
    return FILE_MODE


class FileMigrator(ItemMigrator[FileTask]):
    """Copies site files with checksum verification."""

    item_type = ItemType.FILE
    counter_field = "files_migrated"
    category = LogCategory.FILES
    nothing_to_do = "No files to migrate"

    def __init__(self, repository, settings, verifier: Optional[IntegrityVerifier] = None):
        super().__init__(repository, settings)
        self.verifier = verifier or IntegrityVerifier()

    def _roots(self, context: MigrationContext) -> List[Tuple[Path, str, List[str]]]:
        roots = []
        file_roots = context.manifest.file_roots
        if file_roots.web_root:
            roots.append((Path(file_roots.web_root), WEB_ROOT_NAME, file_roots.excluded))
        for name, path in sorted(file_roots.auxiliary.items()):
            roots.append((Path(path), name, []))
        return roots

    def _walk(self, context: MigrationContext) -> Tuple[List[FileTask], List[str]]:
        tasks: List[FileTask] = []
        skipped: List[str] = []
        for root, target, excluded in self._roots(context):
            if not root.is_dir():
                skipped.append(f"Source directory missing: {root}")
                continue
            for dirpath, dirnames, filenames in os.walk(root):
                current = Path(dirpath)
                if current == root:
                    dirnames[:] = [d for d in dirnames if d not in excluded]
                    filenames = [f for f in filenames if f not in excluded]
                for dirname in list(dirnames):
                    if (current / dirname).is_symlink():
                        dirnames.remove(dirname)
                        skipped.append(f"Skipped symlink {current / dirname}")
                dirnames.sort()
                for filename in sorted(filenames):
                    path = current / filename
                    if path.is_symlink():
                        skipped.append(f"Skipped symlink {path}")
                        continue
                    if not path.is_file():
                        skipped.append(f"Skipped special file {path}")
                        continue
                    relative = Path(target) / path.relative_to(root)
                    tasks.append(FileTask(path, relative.as_posix(), path.stat().st_size))
        return tasks, skipped

    def collect(self, context: MigrationContext) -> List[FileTask]:
        tasks, _ = self._walk(context)
        return tasks

    async def prepare(self, context: MigrationContext) -> List[FileTask]:
        loop = asyncio.get_running_loop()
        tasks, skipped = await loop.run_in_executor(None, self._walk, context)
        await self.add_warnings(context, skipped)
        return tasks

    def describe(self, item: FileTask) -> str:
        return str(item.source)

    def item_name(self, item: FileTask) -> Optional[str]:
        return item.relative

    def item_size(self, item: FileTask) -> int:
        return item.size

    def destination_for(self, item: FileTask, context: MigrationContext) -> Path:
        destination = context.account_root / context.mappings.map_path(item.relative)
        if not destination.resolve().is_relative_to(context.account_root.resolve()):
            raise ItemMigrationError(f"Mapped path for {item.relative} leaves the account root")
        return destination

    def counter_deltas(self, size: int) -> dict:
        return {"files_migrated": 1, "bytes_transferred": size}

    def _copy(self, item: FileTask, destination: Path, owner: Optional[str]) -> ItemOutcome:
        copied = self.verifier.copy_verified(item.source, destination)
        outcome = ItemOutcome(
            destination=str(destination),
            size_bytes=copied.size,
            checksum_source=copied.checksum_source,
            checksum_destination=copied.checksum_destination,
        )
        result = apply_permissions(destination, file_mode(item.source), owner)
        if not result.success:
            outcome.warnings.append(result.error)
        return outcome

    async def migrate_item(self, item: FileTask, context: MigrationContext) -> ItemOutcome:
        destination = self.destination_for(item, context)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._copy, item, destination, context.account_user)

    async def _worker(self, queue: "asyncio.Queue[FileTask]", context: MigrationContext) -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                context.token.raise_if_cancelled()
                await self.process(item, context)
            finally:
                queue.task_done()

    def _fix_directories(self, context: MigrationContext) -> List[str]:
        warnings = []
        if not context.account_root.is_dir():
            return warnings
        for dirpath, _, _ in os.walk(context.account_root):
            result = apply_permissions(Path(dirpath), DIRECTORY_MODE, context.account_user)
            if not result.success:
                warnings.append(result.error)
        return warnings

    async def run(self, context: MigrationContext) -> StepOutcome:
        items = await self.prepare(context)
        if not items:
            return StepOutcome(skipped=True, reason=self.nothing_to_do)

        context.step.append_log(f"Copying {len(items)} files with {self.settings.file_copy_workers} workers")
        queue: "asyncio.Queue[FileTask]" = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        workers = [
            asyncio.create_task(self._worker(queue, context))
            for _ in range(min(self.settings.file_copy_workers, len(items)))
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        loop = asyncio.get_running_loop()
        await self.add_warnings(context, await loop.run_in_executor(None, self._fix_directories, context))

        return self.outcome(context)
