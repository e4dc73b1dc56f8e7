"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from courier.models import DeliveryStatus, WebhookDelivery


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, unhealthy).
        version: API version.
        storage_connected: Whether storage is connected.
        retry_mode: Retry scheduling mode (timer or sweep).
        sweeper_running: Whether the persisted retry sweep is active.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool
    retry_mode: str | None = None
    sweeper_running: bool = False


class EventTypeInfo(BaseModel):
    """A subscribable event type."""

    model_config = ConfigDict(extra="forbid")

    type: str
    description: str


class EventTypesResponse(BaseModel):
    """Response listing the event vocabulary."""

    model_config = ConfigDict(extra="forbid")

    event_types: list[EventTypeInfo]


class RetryResponse(BaseModel):
    """Response for a manual retry request."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    delivery_id: str
    message: str


class TestDeliveryResponse(BaseModel):
    """Response for a synchronous test delivery.

    Attributes:
        delivery_id: Ledger row recording the test.
        success: Whether the endpoint answered with 2xx.
        http_status: Status code, if a response was received.
        response_body: First 500 characters of the response body.
        error: Failure reason, if any.
    """

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(extra="forbid")

    delivery_id: str
    success: bool
    http_status: int | None = None
    response_body: str | None = None
    error: str | None = None


class DeliveryResponse(BaseModel):
    """A delivery ledger row as exposed to operators."""

    model_config = ConfigDict(extra="forbid")

    id: str
    endpoint_id: str
    event_type: str
    payload: dict[str, Any]
    status: DeliveryStatus
    attempts: int
    max_attempts: int
    http_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    next_retry_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_delivery(cls, delivery: WebhookDelivery) -> DeliveryResponse:
        return cls(
            id=delivery.id,
            endpoint_id=delivery.endpoint_id,
            event_type=delivery.event_type,
            payload=delivery.payload.model_dump(mode="json"),
            status=delivery.status,
            attempts=delivery.attempts,
            max_attempts=delivery.max_attempts,
            http_status=delivery.http_status,
            response_body=delivery.response_body,
            error_message=delivery.error_message,
            next_retry_at=delivery.next_retry_at,
            completed_at=delivery.completed_at,
            created_at=delivery.created_at,
        )


class DeliveryListResponse(BaseModel):
    """A page of an endpoint's deliveries, newest first."""

    model_config = ConfigDict(extra="forbid")

    deliveries: list[DeliveryResponse]
    limit: int = Field(ge=1)
    offset: int = Field(ge=0)
