"""
API service entrypoint.
Serves subscription routes and the cron trigger through uvicorn.
PORT overrides the configured port when the platform assigns one.
"""
from __future__ import annotations

import os

import uvicorn

from shared.config import get_settings


def main() -> None:
    settings = get_settings()

    uvicorn.run(
        "api.app:app",
        host=settings.api_host,
        port=int(os.environ.get("PORT", settings.api_port)),
        workers=settings.api_workers,
        log_level=settings.log_level.lower(),
        access_log=False,  # RequestContextMiddleware logs requests
        # Rate limiting keys on the client address behind the platform proxy.
        proxy_headers=True,
        forwarded_allow_ips="*",
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
