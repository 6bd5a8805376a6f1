"""
Notification subscription endpoints.

POST   /v1/notifications/subscribe                 Subscribe to one game.
POST   /v1/notifications/unsubscribe               Drop one game.
DELETE /v1/notifications/subscriptions/{id}        Delete a subscription.
POST   /v1/notifications/test                      Send a test push.
GET    /v1/notifications/config                    Public push configuration.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from shared.config import Settings, get_settings
from shared.errors import DeliveryExpired, DeliveryTransient
from shared.models.domain import (
    SubscribeRequest,
    SubscribeResult,
    TestPushRequest,
    UnsubscribeRequest,
)
from shared.utils.logging import get_logger

from api.dependencies import get_lifecycle
from notifications.lifecycle import SubscriptionLifecycleManager

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


@router.post("/subscribe", response_model=SubscribeResult)
async def subscribe(
    body: SubscribeRequest,
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle),
) -> SubscribeResult:
    """
    Subscribe a push endpoint to one game.

    Omitted event preferences default to on. Reusing a subscriptionId adds
    the game to the existing record; an unknown id yields a new one.
    """
    return await lifecycle.subscribe(body)


@router.post("/unsubscribe")
async def unsubscribe(
    body: UnsubscribeRequest,
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    await lifecycle.unsubscribe(body.subscription_id, body.game_id)
    return {"success": True}


@router.delete("/subscriptions/{subscription_id}")
async def delete_subscription(
    subscription_id: str,
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    removed = await lifecycle.unsubscribe_all(subscription_id)
    return {"success": True, "removedGames": removed}


@router.post("/test", response_model=None)
async def send_test(
    body: TestPushRequest,
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any] | JSONResponse:
    """Deliver a fixed test notification to the subscription's endpoint."""
    try:
        await lifecycle.send_test(body.subscription_id)
    except DeliveryExpired:
        return JSONResponse(
            status_code=410,
            content={"success": False, "error": "subscription_expired"},
        )
    except DeliveryTransient as exc:
        logger.warning("test_push_failed", subscription_id=body.subscription_id, error=exc.reason)
        return {"success": False, "error": exc.reason}
    return {"success": True, "message": "Test notification sent successfully"}


@router.get("/config")
async def push_config(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    return {
        "vapidPublicKey": settings.vapid_public_key or None,
        "leagues": settings.notification_leagues,
    }
