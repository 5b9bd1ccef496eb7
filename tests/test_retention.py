"""
Tests for the workspace retention sweeper.
"""

import asyncio
import os
import time

import pytest

from hosting_migrator.orchestrator import RetentionSweeper, remove_workspace

DAY = 86400


def age(path, days: float) -> None:
    stamp = time.time() - days * DAY
    os.utime(path, (stamp, stamp))


@pytest.fixture
def sweeper(settings) -> RetentionSweeper:
    return RetentionSweeper(settings)


@pytest.fixture
def workspaces(sweeper):
    """Two workspaces: one ten days old, one fresh."""
    old = sweeper.temp_root / "MIG-1-OLD"
    fresh = sweeper.temp_root / "MIG-2-NEW"
    for workspace in (old, fresh):
        (workspace / "extract").mkdir(parents=True)
        (workspace / "extract" / "file.txt").write_text("data")
    age(old, 10)
    return old, fresh


class TestRemoveWorkspace:
    """Test workspace deletion."""

    def test_removes_tree(self, tmp_path):
        workspace = tmp_path / "MIG-1"
        (workspace / "downloads").mkdir(parents=True)
        (workspace / "downloads" / "a.tar.gz").write_bytes(b"x")

        result = remove_workspace(workspace)

        assert result.success
        assert not workspace.exists()

    def test_missing_workspace_is_fine(self, tmp_path):
        assert remove_workspace(tmp_path / "gone").success


class TestRetentionSweeper:
    """Test stale workspace sweeping."""

    def test_sweep_deletes_only_expired(self, sweeper, workspaces):
        old, fresh = workspaces

        report = sweeper.sweep_sync()

        assert report.scanned == 2
        assert report.deleted == [str(old)]
        assert report.failed == []
        assert not old.exists()
        assert fresh.exists()

    def test_sweep_is_idempotent(self, sweeper, workspaces):
        sweeper.sweep_sync()

        report = sweeper.sweep_sync()

        assert report.deleted == []
        assert report.scanned == 1

    def test_sweep_uses_supplied_clock(self, sweeper, workspaces):
        report = sweeper.sweep_sync(now=time.time() + 30 * DAY)

        assert len(report.deleted) == 2

    def test_zero_retention_deletes_everything_older_than_now(self, settings, workspaces):
        settings.retention_days = 0
        report = RetentionSweeper(settings).sweep_sync(now=time.time() + 1)

        assert len(report.deleted) == 2

    def test_missing_temp_root(self, settings, tmp_path):
        settings.temp_directory = str(tmp_path / "never-created")

        report = RetentionSweeper(settings).sweep_sync()

        assert report.scanned == 0

    @pytest.mark.asyncio
    async def test_async_sweep_records_report(self, sweeper, workspaces):
        report = await sweeper.sweep()

        assert sweeper.last_report is report
        assert len(report.deleted) == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, sweeper, workspaces):
        old, _ = workspaces

        await sweeper.start()
        assert sweeper.is_running
        for _ in range(100):
            if sweeper.last_report is not None:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert not sweeper.is_running
        assert not old.exists()

    @pytest.mark.asyncio
    async def test_start_twice_is_harmless(self, sweeper):
        await sweeper.start()
        await sweeper.start()
        await sweeper.stop()
        await sweeper.stop()

        assert not sweeper.is_running
