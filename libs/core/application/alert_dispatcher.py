"""Debounced, fire-and-forget delivery of fire station notifications."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from uuid import uuid4

from libs.core.application.contracts import (
    AlertNotifier,
    AlertRecordRepository,
    IncidentContext,
)
from libs.core.application.errors import AlertDeliveryError
from libs.core.domain.entities import AlertRecord

logger = logging.getLogger(__name__)

DEBOUNCE_SEC = 5.0
RETRY_MAX_ATTEMPTS = 1
RETRY_BACKOFF_SEC = 2.0
RETRY_BACKOFF_FACTOR = 2.0


@dataclass
class RetryPolicy:
    """Delivery attempts for one notification; one attempt means no retry."""

    max_attempts: int = RETRY_MAX_ATTEMPTS
    backoff_sec: float = RETRY_BACKOFF_SEC
    backoff_factor: float = RETRY_BACKOFF_FACTOR

    def delay_before(self, attempt: int) -> float:
        return self.backoff_sec * self.backoff_factor ** (attempt - 2)


class AlertDispatcher:
    """Coalesces alert requests inside a debounce window and delivers them.

    `request` never blocks or raises. A request arriving while the window is
    still open replaces the pending one and restarts the window.
    """

    def __init__(
        self,
        notifier: AlertNotifier,
        records: AlertRecordRepository,
        debounce_sec: float = DEBOUNCE_SEC,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._notifier = notifier
        self._records = records
        self._debounce_sec = debounce_sec
        self._retry = retry_policy or RetryPolicy()
        if self._retry.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._clock = clock
        self._window: asyncio.Task[None] | None = None
        self._deliveries: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._window is not None and not self._window.done()

    def request(self, context: IncidentContext) -> None:
        if self.pending:
            logger.info(
                "Replacing pending alert request with incident %s",
                context["incident_id"],
            )
            self._window.cancel()
        self._window = asyncio.get_running_loop().create_task(self._debounce(context))

    async def wait_idle(self) -> None:
        """Wait until the open window and all deliveries have finished."""
        while self.pending or self._deliveries:
            tasks = [task for task in (self._window, *self._deliveries) if task]
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        tasks = [task for task in (self._window, *self._deliveries) if task]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._window = None
        self._deliveries.clear()

    async def _debounce(self, context: IncidentContext) -> None:
        if self._debounce_sec > 0:
            await asyncio.sleep(self._debounce_sec)
        delivery = asyncio.get_running_loop().create_task(self._deliver(context))
        self._deliveries.add(delivery)
        delivery.add_done_callback(self._deliveries.discard)

    async def _deliver(self, context: IncidentContext) -> None:
        record = AlertRecord(
            alert_id=str(uuid4()),
            incident_id=context["incident_id"],
            confidence=context["confidence"],
            requested_at=self._clock(),
        )
        self._records.add(record)

        for attempt in range(1, self._retry.max_attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self._retry.delay_before(attempt))
            record.attempts = attempt
            try:
                await self._notifier.notify(context)
            except AlertDeliveryError as error:
                record.error = str(error)
                logger.error(
                    "Alert delivery for incident %s failed (attempt %d/%d): %s",
                    context["incident_id"],
                    attempt,
                    self._retry.max_attempts,
                    error,
                )
                continue
            except Exception as error:
                record.error = str(error) or type(error).__name__
                logger.exception(
                    "Alert notifier crashed for incident %s (attempt %d/%d)",
                    context["incident_id"],
                    attempt,
                    self._retry.max_attempts,
                )
                continue
            record.status = "delivered"
            record.error = None
            self._records.update(record)
            logger.info(
                "Fire station notified for incident %s", context["incident_id"]
            )
            return

        record.status = "failed"
        self._records.update(record)
