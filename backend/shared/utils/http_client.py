"""
Async HTTP client for scores provider requests.
One shared httpx.AsyncClient per provider, bounded retries for responses
that may succeed on a second try, and per-request Prometheus metrics.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.config import get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import PROVIDER_LATENCY, PROVIDER_REQUESTS

logger = get_logger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
MAX_RETRY_AFTER_S = 10.0


def _retry_after(resp: httpx.Response, attempt: int) -> float:
    """Seconds to wait before the next attempt: Retry-After when sent, else linear."""
    header = resp.headers.get("Retry-After")
    if header:
        try:
            return min(float(header), MAX_RETRY_AFTER_S)
        except ValueError:
            pass
    return float(attempt)


class ProviderHTTPClient:
    """
    Async HTTP client for one sports data provider.

    Retries 429/5xx responses and transport failures up to max_retries
    attempts in total. Other 4xx responses are raised immediately.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._provider = provider_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s or settings.provider_request_timeout_s
        self._attempts = max(1, max_retries or settings.provider_max_retries)
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        endpoint: str = "unknown",
    ) -> httpx.Response:
        """
        GET path relative to base_url.

        Args:
            path: API path.
            params: Query parameters.
            endpoint: Endpoint label for metrics (scoreboard, summary).

        Raises:
            httpx.HTTPStatusError: Non-retryable status, or retries exhausted on one.
            httpx.TransportError: Timeouts or connection failures on every attempt.
        """
        if not self._client:
            raise RuntimeError("ProviderHTTPClient not started. Call start() first.")

        for attempt in range(1, self._attempts + 1):
            last_attempt = attempt == self._attempts
            started = time.perf_counter()
            status = "error"
            failure: Optional[httpx.TransportError] = None
            try:
                resp = await self._client.get(path, params=params)
                status = str(resp.status_code)
            except httpx.TransportError as exc:
                failure = exc
                status = "timeout" if isinstance(exc, httpx.TimeoutException) else "error"
            finally:
                PROVIDER_LATENCY.labels(provider=self._provider).observe(time.perf_counter() - started)
                PROVIDER_REQUESTS.labels(provider=self._provider, endpoint=endpoint, status=status).inc()

            if failure is not None:
                logger.warning(
                    "provider_transport_error",
                    provider=self._provider,
                    path=path,
                    attempt=attempt,
                    error=str(failure) or failure.__class__.__name__,
                )
                if last_attempt:
                    raise failure
                await asyncio.sleep(float(attempt))
                continue

            if resp.status_code in RETRYABLE_STATUS and not last_attempt:
                delay = _retry_after(resp, attempt)
                logger.warning(
                    "provider_retryable_status",
                    provider=self._provider,
                    path=path,
                    status=resp.status_code,
                    attempt=attempt,
                    retry_in_s=delay,
                )
                await asyncio.sleep(delay)
                continue

            resp.raise_for_status()
            logger.debug(
                "provider_request_success",
                provider=self._provider,
                path=path,
                latency_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return resp

        raise RuntimeError(f"Provider request failed after {self._attempts} attempts")
