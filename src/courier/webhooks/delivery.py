"""Webhook fan-out and delivery attempts.

The dispatcher turns one domain event into one ledger row per subscribed
endpoint and delivers each row in its own background task. Callers only
wait for the endpoint lookup and the row inserts; HTTP traffic, retries,
and failures never reach them.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, nullcontext
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx
from structlog.contextvars import bound_contextvars

from courier.config import Settings
from courier.config import settings as default_settings
from courier.exceptions import DeliveryError
from courier.models import (
    TEST_EVENT_TYPE,
    TestDeliveryResult,
    WebhookDelivery,
    WebhookEvent,
    truncate,
    utc_now,
)

from .scheduler import RetryScheduler
from .signing import sign

if TYPE_CHECKING:
    from courier.models import WebhookEndpoint
    from courier.storage import DeliveryLedger, EndpointRegistry

logger = logging.getLogger(__name__)

# Test deliveries return at most this much of the response body
TEST_RESPONSE_PREVIEW_CHARS = 500


@dataclass
class AttemptOutcome:
    """Classified result of a single HTTP attempt."""

    success: bool
    http_status: int | None = None
    response_body: str | None = None
    error: str | None = None


class WebhookDispatcher:
    """Dispatches webhook events to registered endpoints.

    Handles:
    - Finding endpoints subscribed to an event type
    - Creating one ledger row per endpoint
    - Signing payloads with HMAC-SHA256
    - Delivering in background tasks, optionally capped per process
    - Handing failures to the RetryScheduler

    Example:
        ```python
        async with httpx.AsyncClient() as http:
            dispatcher = WebhookDispatcher(storage, storage, http)

            # Fan out an event to all subscribed endpoints
            await dispatcher.dispatch("org_1", "menu.published", {"menuId": "m1"})

            # Wait for background attempts (tests, shutdown)
            await dispatcher.drain()
        ```
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        ledger: DeliveryLedger,
        http_client: httpx.AsyncClient,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the webhook dispatcher.

        Args:
            registry: Source of endpoint configuration.
            ledger: Store for delivery rows.
            http_client: Shared client used for every outbound request.
            settings: Delivery settings. Defaults to the global settings.
            clock: Source of the current time.
        """
        self._registry = registry
        self._ledger = ledger
        self._http = http_client
        self._settings = settings or default_settings
        self._clock = clock
        max_concurrent = self._settings.webhook_max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None
        self._tasks: set[asyncio.Task[None]] = set()
        # delivery id -> token of the run that currently owns the row
        self._in_flight: dict[str, object] = {}
        self.scheduler = RetryScheduler(
            ledger,
            resume=self.resume,
            backoff_seconds=self._settings.webhook_retry_backoff_seconds,
            mode=self._settings.retry_mode,
            sweep_interval_seconds=self._settings.sweep_interval_seconds,
            sweep_batch_size=self._settings.sweep_batch_size,
            clock=clock,
        )

    @property
    def pending_tasks(self) -> int:
        """Background attempts and armed retry timers not yet finished."""
        return sum(1 for t in self._tasks if not t.done()) + len(self.scheduler.tasks)

    async def dispatch(
        self,
        organization_id: str,
        event_type: str,
        data: dict[str, Any],
    ) -> list[str]:
        """Fan an event out to every subscribed endpoint of an organization.

        Never raises: lookup and ledger failures are logged and the affected
        endpoints are skipped.

        Args:
            organization_id: Organization the event belongs to.
            event_type: Event type, e.g. "menu.published".
            data: Event-specific payload.

        Returns:
            IDs of the deliveries created.
        """
        try:
            endpoints = await self._registry.find_enabled_endpoints(organization_id)
        except Exception:
            logger.exception(
                "Failed to look up webhook endpoints for organization %s", organization_id
            )
            return []

        subscribed = [e for e in endpoints if e.subscribes_to(event_type)]
        if not subscribed:
            logger.debug(
                "No webhooks subscribed to event %s for organization %s",
                event_type,
                organization_id,
            )
            return []

        event = WebhookEvent(type=event_type, data=dict(data))
        delivery_ids: list[str] = []

        for endpoint in subscribed:
            delivery = WebhookDelivery.for_event(
                endpoint.id,
                event,
                max_attempts=self._settings.webhook_max_attempts,
            )
            try:
                await self._ledger.create_delivery(delivery)
            except Exception:
                logger.exception(
                    "Failed to create delivery of %s for endpoint %s", event_type, endpoint.id
                )
                continue

            delivery_ids.append(delivery.id)
            with bound_contextvars(organization_id=organization_id):
                self._spawn(
                    self.attempt(delivery, str(endpoint.url), endpoint.secret),
                    name=f"webhook-attempt-{delivery.id}",
                )

        logger.info(
            "Dispatched %s event %s to %d endpoints", event_type, event.id, len(delivery_ids)
        )
        return delivery_ids

    async def attempt(
        self,
        delivery: WebhookDelivery,
        endpoint_url: str,
        endpoint_secret: str,
    ) -> None:
        """Make one delivery attempt and record its outcome.

        Never raises. Attempts of a delivery that is already in flight in
        this process are skipped.
        """
        token = self._claim(delivery.id)
        if token is None:
            return
        await self._run(delivery, endpoint_url, endpoint_secret, token)

    async def _run(
        self,
        delivery: WebhookDelivery,
        endpoint_url: str,
        endpoint_secret: str,
        token: object,
    ) -> None:
        try:
            with bound_contextvars(delivery_id=delivery.id):
                await self._attempt(delivery, endpoint_url, endpoint_secret, token)
        except Exception:
            logger.exception("Unexpected error delivering webhook %s", delivery.id)
        finally:
            self._release(delivery.id, token)

    async def resume(self, delivery_id: str, expected_attempts: int | None = None) -> None:
        """Re-run a scheduled attempt from persisted state.

        Timers pass ``expected_attempts`` so a stale timer does nothing once
        the delivery has moved on. The sweeper passes None and relies on
        ``next_retry_at`` being due instead.
        """
        token = self._claim(delivery_id)
        if token is None:
            return
        try:
            with bound_contextvars(delivery_id=delivery_id):
                await self._resume(delivery_id, expected_attempts, token)
        finally:
            self._release(delivery_id, token)

    async def _resume(
        self, delivery_id: str, expected_attempts: int | None, token: object
    ) -> None:
        delivery = await self._ledger.find_delivery(delivery_id)
        if delivery is None:
            logger.warning("Scheduled webhook delivery %s no longer exists", delivery_id)
            return

        if expected_attempts is not None:
            if delivery.status != "retrying" or delivery.attempts != expected_attempts:
                logger.debug("Skipping stale retry timer for delivery %s", delivery_id)
                return
        elif not delivery.is_due(self._clock()):
            return

        endpoint = await self._registry.get_endpoint(delivery.endpoint_id)
        if endpoint is None or not endpoint.enabled:
            delivery.mark_failed(self._clock(), error="Webhook endpoint not found or disabled")
            logger.warning(
                "Webhook delivery %s failed: endpoint %s not found or disabled",
                delivery.id,
                delivery.endpoint_id,
            )
            await self._ledger.update_delivery(delivery)
            return

        if delivery.attempts_exhausted:
            # Last attempt never recorded an outcome and its lease expired
            await self.scheduler.handle_failure(
                delivery, "Delivery attempt did not complete before its lease expired"
            )
            return

        with bound_contextvars(organization_id=endpoint.organization_id):
            await self._attempt(delivery, str(endpoint.url), endpoint.secret, token)

    async def _attempt(
        self,
        delivery: WebhookDelivery,
        endpoint_url: str,
        endpoint_secret: str,
        token: object,
    ) -> None:
        # The lease starts once a request slot is held
        async with self._slot():
            if self._superseded(delivery.id, token):
                return
            try:
                delivery.begin_attempt(self._clock(), self._settings.in_flight_lease_seconds)
            except ValueError as e:
                logger.warning("Skipping webhook delivery %s: %s", delivery.id, e)
                return

            try:
                await self._ledger.update_delivery(delivery)
            except Exception:
                logger.exception(
                    "Failed to record attempt %d of webhook delivery %s; attempt abandoned",
                    delivery.attempts,
                    delivery.id,
                )
                return

            outcome = await self._send(
                delivery,
                endpoint_url,
                endpoint_secret,
                timeout=self._settings.webhook_timeout_seconds,
            )

        if self._superseded(delivery.id, token):
            logger.info(
                "Discarding outcome of attempt %d of webhook delivery %s: "
                "superseded by a manual retry",
                delivery.attempts,
                delivery.id,
            )
            return

        if not outcome.success or outcome.http_status is None:
            await self.scheduler.handle_failure(
                delivery,
                outcome.error or "Delivery failed",
                http_status=outcome.http_status,
                response_body=outcome.response_body,
            )
            return

        delivery.mark_success(
            self._clock(),
            http_status=outcome.http_status,
            response_body=outcome.response_body,
        )
        logger.info(
            "Webhook delivered: %s to %s (status %d, attempt %d)",
            delivery.event_type,
            endpoint_url,
            outcome.http_status,
            delivery.attempts,
        )
        try:
            await self._ledger.update_delivery(delivery)
        except Exception:
            logger.exception(
                "Webhook delivery %s succeeded but its ledger update failed", delivery.id
            )

    def _headers(self, delivery: WebhookDelivery, signature: str) -> dict[str, str]:
        event = delivery.payload
        return {
            "Content-Type": "application/json",
            "X-Webhook-Signature": signature,
            "X-Webhook-ID": event.id,
            "X-Webhook-Delivery-ID": delivery.id,
            "X-Webhook-Event": event.type,
            "X-Webhook-Timestamp": event.timestamp.isoformat(),
            "User-Agent": self._settings.webhook_user_agent,
        }

    async def _send(
        self,
        delivery: WebhookDelivery,
        endpoint_url: str,
        endpoint_secret: str,
        timeout: float,
    ) -> AttemptOutcome:
        """POST the delivery's payload and classify the result. Never raises."""
        body = delivery.payload.to_body()
        limit = self._settings.webhook_response_body_limit

        try:
            headers = self._headers(delivery, sign(body, endpoint_secret))
            response = await self._http.post(
                endpoint_url,
                content=body,
                headers=headers,
                timeout=timeout,
            )
        except DeliveryError as e:
            return AttemptOutcome(success=False, error=str(e))
        except httpx.TimeoutException:
            return AttemptOutcome(success=False, error=f"Request timed out after {timeout:g}s")
        except httpx.HTTPError as e:
            return AttemptOutcome(
                success=False,
                error=truncate(f"{type(e).__name__}: {e}", limit),
            )
        except Exception as e:
            logger.exception("Unexpected error posting webhook delivery %s", delivery.id)
            return AttemptOutcome(success=False, error=truncate(f"Unexpected error: {e}", limit))

        response_body = truncate(response.text, limit) or None
        if response.is_success:
            return AttemptOutcome(
                success=True,
                http_status=response.status_code,
                response_body=response_body,
            )

        logger.warning(
            "Webhook rejected: %s to %s (status %d)",
            delivery.event_type,
            endpoint_url,
            response.status_code,
        )
        return AttemptOutcome(
            success=False,
            http_status=response.status_code,
            response_body=response_body,
            error=f"HTTP {response.status_code}",
        )

    async def retry(self, delivery_id: str) -> bool:
        """Restart a delivery with a fresh set of automatic attempts.

        Works from any status, including success. The reset row is persisted
        before an immediate background attempt is launched. An attempt still
        in flight is superseded: its request completes but its outcome is
        not recorded.

        Args:
            delivery_id: Delivery to retry.

        Returns:
            False if the delivery or its endpoint does not exist.
        """
        delivery = await self._ledger.find_delivery(delivery_id)
        if delivery is None:
            return False

        endpoint = await self._registry.get_endpoint(delivery.endpoint_id)
        if endpoint is None:
            return False

        token = self._take_over(delivery.id)
        self.scheduler.cancel(delivery.id)
        delivery.reset_for_manual_retry(self._clock())
        try:
            await self._ledger.update_delivery(delivery)
        except Exception:
            self._release(delivery.id, token)
            raise

        with bound_contextvars(organization_id=endpoint.organization_id):
            self._spawn(
                self._run(delivery, str(endpoint.url), endpoint.secret, token),
                name=f"webhook-attempt-{delivery.id}",
            )
        logger.info("Manual retry scheduled for webhook delivery %s", delivery.id)
        return True

    async def send_test(self, endpoint: WebhookEndpoint) -> TestDeliveryResult:
        """Send a ``test.ping`` event to an endpoint and wait for the result.

        The test delivery gets one attempt with the short test timeout and
        is recorded on the ledger as success or failed, never retried.

        Args:
            endpoint: Endpoint to test.

        Returns:
            Outcome of the attempt, with at most 500 characters of response body.
        """
        event = WebhookEvent(
            type=TEST_EVENT_TYPE,
            data={"message": "Test webhook delivery from Courier"},
        )
        delivery = WebhookDelivery.for_event(endpoint.id, event, max_attempts=1)
        await self._ledger.create_delivery(delivery)

        timeout = self._settings.webhook_test_timeout_seconds
        async with self._slot():
            delivery.begin_attempt(self._clock(), timeout)
            outcome = await self._send(
                delivery, str(endpoint.url), endpoint.secret, timeout=timeout
            )

        if outcome.success and outcome.http_status is not None:
            delivery.mark_success(
                self._clock(),
                http_status=outcome.http_status,
                response_body=outcome.response_body,
            )
        else:
            delivery.mark_failed(
                self._clock(),
                error=outcome.error or "Delivery failed",
                http_status=outcome.http_status,
                response_body=outcome.response_body,
            )

        try:
            await self._ledger.update_delivery(delivery)
        except Exception:
            logger.exception("Failed to record outcome of test delivery %s", delivery.id)

        return TestDeliveryResult(
            delivery_id=delivery.id,
            success=outcome.success,
            http_status=outcome.http_status,
            response_body=truncate(outcome.response_body, TEST_RESPONSE_PREVIEW_CHARS),
            error=outcome.error,
        )

    def _slot(self) -> AbstractAsyncContextManager[Any]:
        """Request slot under the optional per-process cap."""
        if self._semaphore is None:
            return nullcontext()
        return self._semaphore

    def _claim(self, delivery_id: str) -> object | None:
        """Take ownership of a delivery for one run.

        Returns a token identifying the run, or None when another run owns
        the delivery.
        """
        if delivery_id in self._in_flight:
            logger.debug("Webhook delivery %s already in flight", delivery_id)
            return None
        return self._take_over(delivery_id)

    def _take_over(self, delivery_id: str) -> object:
        """Give ownership to a new run, superseding any run in flight."""
        token = object()
        self._in_flight[delivery_id] = token
        return token

    def _release(self, delivery_id: str, token: object) -> None:
        if self._in_flight.get(delivery_id) is token:
            del self._in_flight[delivery_id]

    def _superseded(self, delivery_id: str, token: object) -> bool:
        return self._in_flight.get(delivery_id) is not token

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait until no background attempt or armed retry timer is left.

        Retry timers wait out their backoff, so tests draining in timer
        mode should use a short backoff table.
        """
        while True:
            tasks = [t for t in (*self._tasks, *self.scheduler.tasks) if not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Stop the scheduler and wait for in-progress attempts.

        Retries still pending keep their persisted next_retry_at and are
        picked up by the sweeper of the next process.
        """
        await self.scheduler.close()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        # Attempts that failed while closing may have armed new timers
        await self.scheduler.close()


__all__ = ["AttemptOutcome", "WebhookDispatcher"]
