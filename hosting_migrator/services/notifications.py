"""
Migration outcome notifiers.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from hosting_migrator.core.exceptions import OperationResult
from hosting_migrator.services.base import Notifier

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """Writes migration outcomes to the log."""

    async def notify_migration_outcome(
        self,
        migration_id: str,
        status: str,
        details: Optional[Dict[str, Any]] = None
    ) -> OperationResult:
        logger.info(f"Migration {migration_id} finished with status {status}", extra={"details": details or {}})
        return OperationResult.ok(channel="log")


class WebhookNotifier(Notifier):
    """POSTs migration outcomes as JSON to a webhook URL."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def notify_migration_outcome(
        self,
        migration_id: str,
        status: str,
        details: Optional[Dict[str, Any]] = None
    ) -> OperationResult:
        payload = {
            "migration_id": migration_id,
            "status": status,
            "details": details or {},
        }
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(self.url, json=payload) as response:
                    if response.status >= 400:
                        return OperationResult.failed(
                            f"Webhook returned HTTP {response.status}",
                            channel="webhook",
                            status=response.status,
                        )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return OperationResult.failed(f"Webhook delivery failed: {e}", channel="webhook")

        return OperationResult.ok(channel="webhook")


class CompositeNotifier(Notifier):
    """Fans a notification out to several notifiers."""

    def __init__(self, *notifiers: Notifier):
        self.notifiers = list(notifiers)

    async def notify_migration_outcome(
        self,
        migration_id: str,
        status: str,
        details: Optional[Dict[str, Any]] = None
    ) -> OperationResult:
        results = await asyncio.gather(*[
            notifier.notify_migration_outcome(migration_id, status, details)
            for notifier in self.notifiers
        ])
        failures = [r.error for r in results if not r.success]
        if failures:
            return OperationResult.failed("; ".join(failures), delivered=len(results) - len(failures))
        return OperationResult.ok(delivered=len(results))
