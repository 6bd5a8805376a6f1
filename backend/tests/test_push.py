"""Web Push transport: outcome classification around pywebpush."""
from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
import requests
from conftest import make_endpoint
from py_vapid import VapidException
from pywebpush import WebPushException

from shared.config import Settings
from shared.errors import DeliveryExpired, DeliveryTransient
from notifications.formatting import format_test_payload
from notifications.push import WebPushTransport


def _rejected(status_code: int) -> WebPushException:
    return WebPushException("Push failed", response=MagicMock(status_code=status_code))


@pytest.fixture
def push(settings: Settings) -> WebPushTransport:
    return WebPushTransport(settings)


@pytest.mark.asyncio
async def test_successful_send_passes_vapid_and_payload(push: WebPushTransport, settings: Settings) -> None:
    with patch("notifications.push.webpush", return_value=MagicMock(status_code=201)) as wp:
        await push.send(make_endpoint("x"), format_test_payload())

    kwargs = wp.call_args.kwargs
    assert kwargs["subscription_info"]["endpoint"] == "https://push.example.com/send/x"
    assert kwargs["vapid_private_key"] == "test-private"
    assert kwargs["vapid_claims"] == {"sub": settings.vapid_subject}
    assert json.loads(kwargs["data"])["title"] == "Test Notification"


@pytest.mark.parametrize("status_code", [404, 410])
@pytest.mark.asyncio
async def test_gone_endpoint_is_expired(push: WebPushTransport, status_code: int) -> None:
    with patch("notifications.push.webpush", side_effect=_rejected(status_code)):
        with pytest.raises(DeliveryExpired) as exc_info:
            await push.send(make_endpoint(), format_test_payload())
    assert exc_info.value.status_code == status_code


@pytest.mark.parametrize("status_code", [400, 413, 429, 500, 503])
@pytest.mark.asyncio
async def test_other_rejections_are_transient(push: WebPushTransport, status_code: int) -> None:
    with patch("notifications.push.webpush", side_effect=_rejected(status_code)):
        with pytest.raises(DeliveryTransient) as exc_info:
            await push.send(make_endpoint(), format_test_payload())
    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_network_failure_is_transient(push: WebPushTransport) -> None:
    with patch("notifications.push.webpush", side_effect=requests.ConnectionError("reset")):
        with pytest.raises(DeliveryTransient):
            await push.send(make_endpoint(), format_test_payload())


@pytest.mark.asyncio
async def test_unconfigured_transport_never_calls_webpush() -> None:
    transport = WebPushTransport(Settings(vapid_public_key="", vapid_private_key=""))
    assert transport.configured is False
    with patch("notifications.push.webpush") as wp:
        with pytest.raises(DeliveryTransient):
            await transport.send(make_endpoint(), format_test_payload())
    wp.assert_not_called()


@pytest.mark.parametrize(
    "error",
    [VapidException("Could not parse endpoint"), ValueError("bad p256dh"), TypeError("bad key type")],
)
@pytest.mark.asyncio
async def test_signing_and_encoding_failures_are_transient(push: WebPushTransport, error: Exception) -> None:
    with patch("notifications.push.webpush", side_effect=error):
        with pytest.raises(DeliveryTransient):
            await push.send(make_endpoint(), format_test_payload())
