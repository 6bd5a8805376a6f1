"""
Cron trigger for the notification cycle.

GET /v1/cron/notifications  Run one cycle and return its summary.
"""
from __future__ import annotations

import hmac
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

from api.dependencies import get_pipeline
from notifications.pipeline import NotificationPipeline

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/cron", tags=["cron"])


def _authorized(authorization: Optional[str], secret: str) -> bool:
    if not secret:
        return True
    # Header values may carry non-ASCII text; compare_digest rejects such str.
    return hmac.compare_digest(
        (authorization or "").encode("utf-8"), f"Bearer {secret}".encode("utf-8")
    )


@router.get("/notifications")
async def run_notifications(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    pipeline: NotificationPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """
    Run one notification cycle.

    Guarded by `Authorization: Bearer <cron_secret>` when a secret is set.
    A store outage surfaces as a 500 through the NotifierError handler.
    """
    if not _authorized(authorization, settings.cron_secret):
        logger.warning("cron_unauthorized")
        raise HTTPException(status_code=401, detail="Unauthorized")

    result = await pipeline.process_notifications()
    return {"success": True, **result.model_dump(by_alias=True)}
