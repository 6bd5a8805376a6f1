"""
Web Push transport.
Signs with VAPID and encrypts payloads through pywebpush. The library is
blocking, so each send runs in a worker thread with a bounded timeout.
"""
from __future__ import annotations

import asyncio
import time

import requests
from py_vapid import VapidException
from pywebpush import WebPushException, webpush

from shared.config import Settings, get_settings
from shared.errors import DeliveryExpired, DeliveryTransient
from shared.models.domain import PushEndpoint, PushPayload
from shared.utils.logging import get_logger

logger = get_logger(__name__)

EXPIRED_STATUS_CODES = {404, 410}


class WebPushTransport:
    """Delivers one payload to one push endpoint."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return self._settings.push_configured

    def _send_blocking(self, endpoint: PushEndpoint, data: str) -> int:
        s = self._settings
        resp = webpush(
            subscription_info=endpoint.subscription_info(),
            data=data,
            vapid_private_key=s.vapid_private_key,
            # pywebpush adds aud/exp to the claims dict it is given
            vapid_claims={"sub": s.vapid_subject},
            ttl=s.push_ttl_s,
            timeout=s.push_timeout_s,
            headers={"Urgency": s.push_urgency},
        )
        return resp.status_code

    async def send(self, endpoint: PushEndpoint, payload: PushPayload) -> None:
        """
        Deliver a payload.

        Raises:
            DeliveryExpired: The endpoint answered 404 or 410.
            DeliveryTransient: Anything else that kept the push from landing.
        """
        if not self.configured:
            raise DeliveryTransient("VAPID keys not configured")

        start = time.perf_counter()
        try:
            status = await asyncio.wait_for(
                asyncio.to_thread(self._send_blocking, endpoint, payload.to_json()),
                timeout=self._settings.push_timeout_s + 1.0,
            )
        except WebPushException as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            if status_code in EXPIRED_STATUS_CODES:
                raise DeliveryExpired(status_code) from exc
            raise DeliveryTransient(exc.message or "push rejected", status_code) from exc
        except (
            requests.RequestException,
            VapidException,
            asyncio.TimeoutError,
            ValueError,
            TypeError,
        ) as exc:
            # Malformed endpoints and keys fail here too, before any request.
            raise DeliveryTransient(str(exc) or exc.__class__.__name__) from exc

        logger.debug(
            "push_sent",
            status=status,
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )
