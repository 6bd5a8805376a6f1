#!/usr/bin/env python3
"""
Integration check for the notification service.

Checks:
  1. /health returns 200 + status ok
  2. /ready reports Redis reachable
  3. /v1/notifications/config lists subscribable leagues
  4. /v1/notifications/unsubscribe for an unknown id returns 404
  5. /v1/cron/notifications runs a cycle (needs CRON_SECRET when configured)
  6. ESPN scoreboard endpoints are reachable for every notification league

Usage:
  python scripts/integration_notifications.py [BASE_URL] [CRON_SECRET]

  BASE_URL defaults to http://localhost:8000.
"""
from __future__ import annotations

import sys
import json
from urllib.request import urlopen, Request
from urllib.error import URLError, HTTPError

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
RESET = "\033[0m"

BASE = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
CRON_SECRET = sys.argv[2] if len(sys.argv) > 2 else ""
ESPN_BASE = "https://site.api.espn.com/apis/site/v2/sports"
ESPN_CHECKS = {
    "hockey/nhl": "NHL",
    "football/nfl": "NFL",
    "basketball/nba": "NBA",
    "baseball/mlb": "MLB",
    "soccer/usa.1": "MLS",
    "soccer/eng.1": "Premier League",
    "basketball/mens-college-basketball": "NCAA Men",
    "basketball/womens-college-basketball": "NCAA Women",
}

passed = 0
failed = 0
warnings = 0


def _request_json(
    url: str,
    method: str = "GET",
    body: dict | None = None,
    headers: dict[str, str] | None = None,
    timeout: int = 15,
) -> dict | list | None:
    data = json.dumps(body).encode() if body is not None else None
    all_headers = {"Accept": "application/json", **(headers or {})}
    if data is not None:
        all_headers["Content-Type"] = "application/json"
    try:
        req = Request(url, data=data, headers=all_headers, method=method)
        with urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read())
    except HTTPError as e:
        return {"__http_error__": e.code, "__url__": url}
    except (URLError, TimeoutError, OSError) as e:
        return {"__network_error__": str(e), "__url__": url}


def ok(msg: str) -> None:
    global passed
    passed += 1
    print(f"  {GREEN}PASS{RESET}  {msg}")


def fail(msg: str) -> None:
    global failed
    failed += 1
    print(f"  {RED}FAIL{RESET}  {msg}")


def warn(msg: str) -> None:
    global warnings
    warnings += 1
    print(f"  {YELLOW}WARN{RESET}  {msg}")


def main() -> None:
    print(f"\n=== Notification Service Integration Test ===")
    print(f"Backend: {BASE}\n")

    # 1. Health
    print("[1] Health check")
    data = _request_json(f"{BASE}/health")
    if isinstance(data, dict) and data.get("status") == "ok":
        ok("/health returns status=ok")
    else:
        fail(f"/health unexpected: {data}")

    # 2. Readiness
    print("[2] Readiness")
    data = _request_json(f"{BASE}/ready")
    if isinstance(data, dict) and data.get("redis") is True:
        ok("/ready: redis reachable")
    else:
        fail(f"/ready unexpected: {data}")

    # 3. Config
    print("[3] Push config")
    data = _request_json(f"{BASE}/v1/notifications/config")
    if isinstance(data, dict) and data.get("leagues"):
        ok(f"/v1/notifications/config: leagues={data['leagues']}")
        if not data.get("vapidPublicKey"):
            warn("VAPID public key not configured; pushes will fail as transient")
    else:
        fail(f"/v1/notifications/config unexpected: {data}")

    # 4. Unknown subscription
    print("[4] Unsubscribe unknown id")
    data = _request_json(
        f"{BASE}/v1/notifications/unsubscribe",
        method="POST",
        body={"subscriptionId": "integration-check-missing", "gameId": "0"},
    )
    if isinstance(data, dict) and data.get("__http_error__") == 404:
        ok("unknown subscription returns 404")
    else:
        fail(f"unsubscribe unexpected: {data}")

    # 5. Cron cycle
    print("[5] Notification cycle")
    headers = {"Authorization": f"Bearer {CRON_SECRET}"} if CRON_SECRET else None
    data = _request_json(f"{BASE}/v1/cron/notifications", headers=headers, timeout=60)
    if isinstance(data, dict) and data.get("success"):
        ok(
            f"cycle: processed={data.get('processed')}, events={data.get('events')}, "
            f"notifications={data.get('notifications')}, leagues={data.get('leaguesPolled')}"
        )
        if data.get("skipped"):
            warn("cycle skipped: another run holds the lock")
    elif isinstance(data, dict) and data.get("__http_error__") == 401:
        fail("cron endpoint rejected the secret (pass CRON_SECRET as the second argument)")
    else:
        fail(f"cron unexpected: {data}")

    # 6. ESPN direct reachability
    print("[6] ESPN API reachability")
    for path, label in ESPN_CHECKS.items():
        data = _request_json(f"{ESPN_BASE}/{path}/scoreboard")
        if isinstance(data, dict) and "events" in data:
            count = len(data["events"])
            ok(f"  ESPN {label}: {count} events")
            if count == 0:
                warn(f"  ESPN {label}: 0 events (may be off-season)")
        elif isinstance(data, dict) and data.get("__http_error__"):
            fail(f"  ESPN {label}: HTTP {data['__http_error__']}")
        elif isinstance(data, dict) and data.get("__network_error__"):
            fail(f"  ESPN {label}: network error: {data['__network_error__']}")
        else:
            warn(f"  ESPN {label}: unexpected shape")

    # Summary
    print(f"\n=== Results: {GREEN}{passed} passed{RESET}, {RED}{failed} failed{RESET}, {YELLOW}{warnings} warnings{RESET} ===\n")
    sys.exit(1 if failed > 0 else 0)


if __name__ == "__main__":
    main()
