"""Retry scheduling for failed webhook deliveries.

After a failed attempt the scheduler either records the next due time
from a fixed backoff table or marks the delivery as terminally failed.
Due retries are picked up two ways:

- timer mode: a one-shot asyncio task per retry, armed in this process
- sweep: a periodic poll of the ledger for retrying rows that are due

Timers are lost when the process exits; the sweep only reads persisted
state, so running it makes retries survive restarts.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Literal

from courier.config import DEFAULT_RETRY_BACKOFF_SECONDS
from courier.models import utc_now

if TYPE_CHECKING:
    from courier.models import WebhookDelivery
    from courier.storage import DeliveryLedger

logger = logging.getLogger(__name__)

# resume(delivery_id, expected_attempts) re-runs a scheduled attempt
ResumeCallback = Callable[[str, int | None], Awaitable[None]]


def backoff_delay(attempts: int, backoff_seconds: list[float]) -> timedelta:
    """Delay before the next attempt after ``attempts`` failed attempts.

    The table is 1-based: after attempt 1 the first entry applies. Attempts
    past the end of the table reuse its last entry.
    """
    index = min(max(attempts, 1), len(backoff_seconds)) - 1
    return timedelta(seconds=backoff_seconds[index])


class RetryScheduler:
    """Moves failed deliveries to retrying or failed and re-runs them when due.

    Example:
        ```python
        scheduler = RetryScheduler(storage, resume=dispatcher.resume)
        scheduler.start_sweeper()
        ...
        await scheduler.close()
        ```
    """

    def __init__(
        self,
        ledger: DeliveryLedger,
        resume: ResumeCallback,
        backoff_seconds: list[float] | None = None,
        mode: Literal["timer", "sweep"] = "timer",
        sweep_interval_seconds: float = 30.0,
        sweep_batch_size: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the scheduler.

        Args:
            ledger: Delivery ledger to persist state transitions.
            resume: Callback re-running a delivery attempt.
            backoff_seconds: Backoff table (seconds, 1-based by attempt).
            mode: "timer" arms in-process timers; "sweep" relies on the sweeper.
            sweep_interval_seconds: Seconds between ledger sweeps.
            sweep_batch_size: Maximum deliveries resumed per sweep.
            clock: Source of the current time.
        """
        self._ledger = ledger
        self._resume = resume
        self._backoff = list(backoff_seconds or DEFAULT_RETRY_BACKOFF_SECONDS)
        self._mode = mode
        self._sweep_interval = sweep_interval_seconds
        self._sweep_batch_size = sweep_batch_size
        self._clock = clock
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def tasks(self) -> set[asyncio.Task[None]]:
        """Timer tasks that have not finished yet."""
        return {t for t in self._tasks if not t.done()}

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def delay_for(self, attempts: int) -> timedelta:
        """Backoff delay after ``attempts`` failed attempts."""
        return backoff_delay(attempts, self._backoff)

    async def handle_failure(
        self,
        delivery: WebhookDelivery,
        error: str,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        """Record a failed attempt and schedule the next one if any remain.

        Never raises; ledger write failures are logged.

        Args:
            delivery: Delivery whose latest attempt failed.
            error: Failure reason.
            http_status: Response status, if a response was received.
            response_body: Response body, if a response was received.
        """
        now = self._clock()

        if delivery.attempts_exhausted:
            delivery.mark_failed(
                now,
                error=error,
                http_status=http_status,
                response_body=response_body,
            )
            logger.warning(
                "Webhook delivery %s failed after %d attempts: %s",
                delivery.id,
                delivery.attempts,
                error,
            )
            await self._persist(delivery)
            return

        delay = self.delay_for(delivery.attempts)
        next_retry_at = now + delay
        delivery.mark_retrying(
            now,
            next_retry_at=next_retry_at,
            error=error,
            http_status=http_status,
            response_body=response_body,
        )
        logger.info(
            "Webhook delivery %s scheduled for retry (attempt %d of %d at %s): %s",
            delivery.id,
            delivery.attempts + 1,
            delivery.max_attempts,
            next_retry_at.isoformat(),
            error,
        )
        await self._persist(delivery)

        if self._mode == "timer":
            self.arm(delivery.id, delay, delivery.attempts)

    async def _persist(self, delivery: WebhookDelivery) -> None:
        try:
            await self._ledger.update_delivery(delivery)
        except Exception:
            logger.exception(
                "Failed to record %s state for webhook delivery %s", delivery.status, delivery.id
            )

    def arm(self, delivery_id: str, delay: timedelta, expected_attempts: int) -> None:
        """Arm a one-shot timer that resumes a delivery after ``delay``.

        A newer timer for the same delivery replaces a pending one.
        """
        self.cancel(delivery_id)
        task = asyncio.create_task(
            self._fire(delivery_id, delay.total_seconds(), expected_attempts),
            name=f"webhook-retry-{delivery_id}",
        )
        self._timers[delivery_id] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self, delivery_id: str) -> bool:
        """Cancel the pending timer of a delivery, if any."""
        pending = self._timers.pop(delivery_id, None)
        if pending is None or pending.done():
            return False
        pending.cancel()
        return True

    async def _fire(self, delivery_id: str, delay_seconds: float, expected_attempts: int) -> None:
        await asyncio.sleep(delay_seconds)
        # Unregister before resuming: a failure inside resume arms the next timer
        if self._timers.get(delivery_id) is asyncio.current_task():
            del self._timers[delivery_id]
        try:
            await self._resume(delivery_id, expected_attempts)
        except Exception:
            logger.exception("Scheduled retry of webhook delivery %s failed", delivery_id)

    async def sweep_once(self) -> int:
        """Resume every retrying delivery that is due now.

        Returns:
            Number of due deliveries found.
        """
        due = await self._ledger.find_due_retries(self._clock(), limit=self._sweep_batch_size)
        if not due:
            return 0

        logger.info("Sweep found %d due webhook deliveries", len(due))
        results = await asyncio.gather(
            *(self._resume(delivery.id, None) for delivery in due),
            return_exceptions=True,
        )
        for delivery, result in zip(due, results, strict=True):
            if isinstance(result, Exception):
                logger.error("Sweep could not resume delivery %s: %s", delivery.id, result)
        return len(due)

    async def run_sweeper(self) -> None:
        """Sweep the ledger forever, sleeping between passes."""
        while True:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Webhook retry sweep failed")
            await asyncio.sleep(self._sweep_interval)

    def start_sweeper(self) -> None:
        """Start the periodic sweep in the background."""
        if self.is_sweeping:
            return
        self._sweeper = asyncio.create_task(self.run_sweeper(), name="webhook-retry-sweeper")
        logger.info("Webhook retry sweeper started (every %.1fs)", self._sweep_interval)

    async def close(self) -> None:
        """Stop the sweeper and cancel pending timers.

        Cancelled timers are not lost when the sweeper runs on restart:
        their next_retry_at is already persisted.
        """
        tasks = [t for t in (self._sweeper, *self._tasks) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._sweeper = None
        self._timers.clear()
        if tasks:
            logger.info("Webhook retry scheduler stopped (%d tasks cancelled)", len(tasks))


__all__ = ["RetryScheduler", "backoff_delay"]
