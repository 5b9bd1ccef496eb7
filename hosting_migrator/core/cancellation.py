"""
Cooperative cancellation for running migrations.
"""

import asyncio
from typing import Optional

from hosting_migrator.core.exceptions import MigrationCancelledError


class CancellationToken:
    """
    Flag checked by the pipeline before each step and each item.

    Work already handed to a collaborator, such as a database restore in
    progress, is not interrupted.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Cancelled by user") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise MigrationCancelledError(self.reason or "Migration cancelled")

    async def wait(self) -> None:
        await self._event.wait()
