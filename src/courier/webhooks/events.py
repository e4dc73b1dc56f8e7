"""Convenience emitters for domain events.

Each helper builds the payload receivers expect for one event type and
hands it to the dispatcher. Payload keys are part of the wire format and
stay camelCase.

Example:
    ```python
    from courier.webhooks import events

    await events.emit_menu_published(dispatcher, "org_1", {"id": "menu_1", "name": "Lunch"})
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .delivery import WebhookDispatcher


async def emit_menu_created(
    dispatcher: WebhookDispatcher, organization_id: str, menu: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(organization_id, "menu.created", {"menu": menu})


async def emit_menu_updated(
    dispatcher: WebhookDispatcher, organization_id: str, menu: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(organization_id, "menu.updated", {"menu": menu})


async def emit_menu_published(
    dispatcher: WebhookDispatcher, organization_id: str, menu: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(organization_id, "menu.published", {"menu": menu})


async def emit_menu_deleted(
    dispatcher: WebhookDispatcher, organization_id: str, menu_id: str
) -> list[str]:
    return await dispatcher.dispatch(organization_id, "menu.deleted", {"menuId": menu_id})


async def emit_venue_created(
    dispatcher: WebhookDispatcher, organization_id: str, venue: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(organization_id, "venue.created", {"venue": venue})


async def emit_venue_updated(
    dispatcher: WebhookDispatcher, organization_id: str, venue: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(organization_id, "venue.updated", {"venue": venue})


async def emit_venue_deleted(
    dispatcher: WebhookDispatcher, organization_id: str, venue_id: str
) -> list[str]:
    return await dispatcher.dispatch(organization_id, "venue.deleted", {"venueId": venue_id})


async def emit_qr_code_created(
    dispatcher: WebhookDispatcher, organization_id: str, qr_code: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(organization_id, "qr_code.created", {"qrCode": qr_code})


async def emit_qr_code_scanned(
    dispatcher: WebhookDispatcher,
    organization_id: str,
    qr_code_id: str,
    metadata: dict[str, Any] | None = None,
) -> list[str]:
    """Emit a scan. Scan metadata (location, device) is merged into the payload."""
    data: dict[str, Any] = {"qrCodeId": qr_code_id}
    if metadata:
        data.update(metadata)
    return await dispatcher.dispatch(organization_id, "qr_code.scanned", data)


async def emit_qr_code_deleted(
    dispatcher: WebhookDispatcher, organization_id: str, qr_code_id: str
) -> list[str]:
    return await dispatcher.dispatch(organization_id, "qr_code.deleted", {"qrCodeId": qr_code_id})


async def emit_subscription_created(
    dispatcher: WebhookDispatcher, organization_id: str, subscription: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(
        organization_id, "subscription.created", {"subscription": subscription}
    )


async def emit_subscription_updated(
    dispatcher: WebhookDispatcher, organization_id: str, subscription: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(
        organization_id, "subscription.updated", {"subscription": subscription}
    )


async def emit_subscription_canceled(
    dispatcher: WebhookDispatcher, organization_id: str, subscription: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(
        organization_id, "subscription.canceled", {"subscription": subscription}
    )


async def emit_subscription_renewed(
    dispatcher: WebhookDispatcher, organization_id: str, subscription: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(
        organization_id, "subscription.renewed", {"subscription": subscription}
    )


async def emit_organization_updated(
    dispatcher: WebhookDispatcher, organization_id: str, organization: dict[str, Any]
) -> list[str]:
    return await dispatcher.dispatch(
        organization_id, "organization.updated", {"organization": organization}
    )


async def emit_team_member_added(
    dispatcher: WebhookDispatcher,
    organization_id: str,
    user_id: str,
    role: str,
    invited_by: str | None = None,
) -> list[str]:
    return await dispatcher.dispatch(
        organization_id,
        "team.member_added",
        {"userId": user_id, "role": role, "invitedBy": invited_by},
    )


async def emit_team_member_removed(
    dispatcher: WebhookDispatcher,
    organization_id: str,
    user_id: str,
    removed_by: str | None = None,
) -> list[str]:
    return await dispatcher.dispatch(
        organization_id,
        "team.member_removed",
        {"userId": user_id, "removedBy": removed_by},
    )


__all__ = [
    "emit_menu_created",
    "emit_menu_deleted",
    "emit_menu_published",
    "emit_menu_updated",
    "emit_organization_updated",
    "emit_qr_code_created",
    "emit_qr_code_deleted",
    "emit_qr_code_scanned",
    "emit_subscription_canceled",
    "emit_subscription_created",
    "emit_subscription_renewed",
    "emit_subscription_updated",
    "emit_team_member_added",
    "emit_team_member_removed",
    "emit_venue_created",
    "emit_venue_deleted",
    "emit_venue_updated",
]
