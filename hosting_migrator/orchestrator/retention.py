"""
Retention sweeper for migration workspaces.

Periodically removes scratch workspaces under the temp directory whose
last modification is older than the retention window, whatever the
status of the migration that owned them.
"""

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from hosting_migrator.core.exceptions import OperationResult
from hosting_migrator.models.config import MigrationSettings

logger = logging.getLogger(__name__)


def remove_workspace(path: Union[str, Path]) -> OperationResult:
    """Delete a workspace directory tree."""
    path = Path(path)
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
    except OSError as e:
        return OperationResult.failed(f"Cannot remove {path}: {e}", path=str(path))
    return OperationResult.ok(path=str(path))


@dataclass
class SweepReport:
    """Outcome of one sweep."""
    scanned: int = 0
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class RetentionSweeper:
    """Deletes stale migration workspaces on a schedule."""

    def __init__(self, settings: MigrationSettings):
        self.settings = settings
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[SweepReport] = None

    @property
    def temp_root(self) -> Path:
        return Path(self.settings.temp_directory)

    @property
    def is_running(self) -> bool:
        return self._running

    def _expired(self, path: Path, cutoff: float) -> bool:
        return path.lstat().st_mtime < cutoff

    def sweep_sync(self, now: Optional[float] = None) -> SweepReport:
        report = SweepReport()
        root = self.temp_root
        if not root.is_dir():
            return report

        cutoff = (now if now is not None else time.time()) - self.settings.retention_days * 86400
        for entry in sorted(root.iterdir()):
            report.scanned += 1
            try:
                if not self._expired(entry, cutoff):
                    continue
            except OSError as e:
                logger.warning(f"Cannot stat workspace {entry}: {e}")
                report.failed.append(str(entry))
                continue

            result = remove_workspace(entry)
            if result.success:
                report.deleted.append(str(entry))
            else:
                logger.warning(result.error)
                report.failed.append(str(entry))

        if report.deleted or report.failed:
            logger.info(
                f"Retention sweep of {root}: {len(report.deleted)} deleted, "
                f"{len(report.failed)} failed, {report.scanned} scanned"
            )
        return report

    async def sweep(self, now: Optional[float] = None) -> SweepReport:
        """Run one sweep in a worker thread."""
        loop = asyncio.get_running_loop()
        self.last_report = await loop.run_in_executor(None, self.sweep_sync, now)
        return self.last_report

    async def start(self) -> None:
        """Start sweeping every ``sweep_interval_hours``."""
        if self._running:
            logger.warning("Retention sweeper is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Retention sweeper started")

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Retention sweeper stopped")

    async def _sweep_loop(self) -> None:
        interval = self.settings.sweep_interval_hours * 3600
        while self._running:
            try:
                await self.sweep()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Retention sweep failed: {e}")
                await asyncio.sleep(interval)
