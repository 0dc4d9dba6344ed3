"""Liveness and identity check against the bridge's HTTP API."""

from __future__ import annotations

from typing import Any

import httpx

from qq_gateway.log import get_logger
from qq_gateway.qq.accounts import ResolvedAccount
from qq_gateway.qq.models import ProbeResult
from qq_gateway.qq.send import api_url, auth_headers, open_client

logger = get_logger(__name__)


async def _fetch_status(http: httpx.AsyncClient, account: ResolvedAccount, timeout: float) -> str:
    """Best-effort online status; any failure degrades to "unknown"."""
    try:
        response = await http.post(
            api_url(account.http_url, "get_status"),
            headers=auth_headers(account.access_token),
            timeout=timeout,
        )
        response.raise_for_status()
        payload: Any = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("qq_probe_status_failed", account_id=account.account_id, error=str(e))
        return "unknown"

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict) or "online" not in data:
        return "unknown"
    return "online" if data.get("online") else "offline"


async def probe_account(
    account: ResolvedAccount,
    timeout_ms: int = 5000,
    *,
    client: httpx.AsyncClient | None = None,
) -> ProbeResult:
    """Ask the bridge who is logged in, then whether it is online."""
    timeout = timeout_ms / 1000
    try:
        async with open_client(client, timeout) as http:
            response = await http.post(
                api_url(account.http_url, "get_login_info"),
                headers=auth_headers(account.access_token),
                timeout=timeout,
            )
            if response.status_code >= 400:
                return ProbeResult.failure(f"HTTP {response.status_code}: {response.text}")

            payload: Any = response.json()
            data = payload.get("data") if isinstance(payload, dict) else None
            if not isinstance(data, dict) or not data.get("user_id"):
                return ProbeResult.failure("Invalid response from NapCatQQ API")

            status = await _fetch_status(http, account, timeout)
    except httpx.TimeoutException:
        return ProbeResult.failure(f"Timed out after {timeout_ms}ms")
    except (httpx.HTTPError, ValueError) as e:
        return ProbeResult.failure(str(e) or type(e).__name__)

    return ProbeResult(
        ok=True,
        self_id=data["user_id"],
        nickname=data.get("nickname") or "",
        status=status,
    )
