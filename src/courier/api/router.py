"""FastAPI router for Courier API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from courier import __version__
from courier.exceptions import NotFoundError, ValidationError
from courier.models import EVENT_TYPE_DESCRIPTIONS, DeliveryStatus
from courier.service import CourierService
from courier.storage.deliveries import MAX_SCAN

from .schemas import (
    DeliveryListResponse,
    DeliveryResponse,
    EventTypeInfo,
    EventTypesResponse,
    HealthResponse,
    RetryResponse,
    TestDeliveryResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: CourierService | None = None


def set_service(service: CourierService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> CourierService:
    """Dependency to get the CourierService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[CourierService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health, including storage and retry sweeper state."""
    if _service is None:
        return HealthResponse(
            status="unhealthy",
            version=__version__,
            storage_connected=False,
        )

    return HealthResponse(
        status="healthy",
        version=__version__,
        storage_connected=True,
        retry_mode=_service.settings.retry_mode,
        sweeper_running=_service.dispatcher.scheduler.is_sweeping,
    )


@router.get("/event-types", response_model=EventTypesResponse, tags=["webhooks"])
async def list_event_types() -> EventTypesResponse:
    """List the event types endpoints can subscribe to."""
    return EventTypesResponse(
        event_types=[
            EventTypeInfo(type=event_type, description=description)
            for event_type, description in EVENT_TYPE_DESCRIPTIONS.items()
        ]
    )


@router.post(
    "/deliveries/{delivery_id}/retry",
    response_model=RetryResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["webhooks"],
)
async def retry_delivery(delivery_id: str, service: ServiceDep) -> RetryResponse:
    """Restart a delivery with a fresh set of attempts.

    The first attempt runs in the background; poll the endpoint's
    deliveries to follow its progress.

    Raises:
        NotFoundError: If the delivery or its endpoint does not exist.
    """
    if not await service.dispatcher.retry(delivery_id):
        raise NotFoundError("webhook_delivery", delivery_id)

    return RetryResponse(
        success=True,
        delivery_id=delivery_id,
        message="Retry scheduled",
    )


@router.post(
    "/endpoints/{endpoint_id}/test",
    response_model=TestDeliveryResponse,
    tags=["webhooks"],
)
async def send_test_delivery(endpoint_id: str, service: ServiceDep) -> TestDeliveryResponse:
    """Send a test.ping event to an endpoint and report the outcome.

    Raises:
        NotFoundError: If the endpoint does not exist.
    """
    endpoint = await service.storage.get_endpoint(endpoint_id)
    if endpoint is None:
        raise NotFoundError("webhook_endpoint", endpoint_id)

    result = await service.dispatcher.send_test(endpoint)
    logger.info(
        "Test delivery %s to endpoint %s: %s",
        result.delivery_id,
        endpoint_id,
        "success" if result.success else "failed",
    )
    return TestDeliveryResponse(**result.model_dump())


@router.get(
    "/endpoints/{endpoint_id}/deliveries",
    response_model=DeliveryListResponse,
    tags=["webhooks"],
)
async def list_endpoint_deliveries(
    endpoint_id: str,
    service: ServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
    delivery_status: Annotated[DeliveryStatus | None, Query(alias="status")] = None,
) -> DeliveryListResponse:
    """List an endpoint's deliveries, newest first.

    Raises:
        ValidationError: If the page lies beyond the scanned history.
        NotFoundError: If the endpoint does not exist.
    """
    if offset + limit > MAX_SCAN:
        raise ValidationError("offset", f"offset + limit must not exceed {MAX_SCAN}")

    endpoint = await service.storage.get_endpoint(endpoint_id)
    if endpoint is None:
        raise NotFoundError("webhook_endpoint", endpoint_id)

    deliveries = await service.storage.list_deliveries(
        endpoint_id,
        limit=limit,
        offset=offset,
        status=delivery_status,
    )
    return DeliveryListResponse(
        deliveries=[DeliveryResponse.from_delivery(d) for d in deliveries],
        limit=limit,
        offset=offset,
    )
