"""Outbound calls to the OneBot HTTP API (send_private_msg / send_group_msg)."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from qq_gateway.log import get_logger
from qq_gateway.qq.accounts import ResolvedAccount
from qq_gateway.qq.models import SendResult, image_segment, reply_segment, text_segment
from qq_gateway.qq.targets import parse_target

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 30000


class QQApiError(Exception):
    """Raised when the bridge answers an API call with a non-2xx status."""

    def __init__(self, endpoint: str, status_code: int, body: str):
        super().__init__(f"QQ API error ({status_code}) on {endpoint}: {body}")
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body


def api_url(http_url: str, endpoint: str) -> str:
    return f"{http_url.rstrip('/')}/{endpoint}"


def auth_headers(access_token: str) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def request_timeout(account: ResolvedAccount) -> float:
    return (account.config.connection_timeout_ms or DEFAULT_TIMEOUT_MS) / 1000


@asynccontextmanager
async def open_client(
    client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Use the caller's client when given, otherwise a short-lived one."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


async def call_api(
    account: ResolvedAccount,
    endpoint: str,
    body: dict[str, Any] | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    timeout = request_timeout(account)
    async with open_client(client, timeout) as http:
        response = await http.post(
            api_url(account.http_url, endpoint),
            headers=auth_headers(account.access_token),
            json=body,
            timeout=timeout,
        )
    if response.status_code >= 400:
        raise QQApiError(endpoint, response.status_code, response.text)
    payload = response.json()
    return payload if isinstance(payload, dict) else {}


def build_message_segments(
    text: str,
    *,
    media_url: str | None = None,
    reply_to_id: str | None = None,
) -> list[dict[str, Any]]:
    """Reply reference first, then media, then the caption text."""
    segments: list[dict[str, Any]] = []
    if reply_to_id:
        segments.append(reply_segment(reply_to_id))
    if media_url:
        segments.append(image_segment(media_url))
    if text:
        segments.append(text_segment(text))
    return segments


def _send_result(payload: dict[str, Any]) -> SendResult:
    data = payload.get("data") or {}
    message_id = data.get("message_id") if isinstance(data, dict) else None
    return SendResult(message_id="" if message_id is None else str(message_id))


async def send_private_message(
    user_id: str | int,
    text: str,
    account: ResolvedAccount,
    *,
    media_url: str | None = None,
    reply_to_id: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    payload = await call_api(
        account,
        "send_private_msg",
        {
            "user_id": user_id,
            "message": build_message_segments(text, media_url=media_url, reply_to_id=reply_to_id),
        },
        client=client,
    )
    return _send_result(payload)


async def send_group_message(
    group_id: str | int,
    text: str,
    account: ResolvedAccount,
    *,
    media_url: str | None = None,
    reply_to_id: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    payload = await call_api(
        account,
        "send_group_msg",
        {
            "group_id": group_id,
            "message": build_message_segments(text, media_url=media_url, reply_to_id=reply_to_id),
        },
        client=client,
    )
    return _send_result(payload)


async def send_message(
    to: str,
    text: str,
    account: ResolvedAccount,
    *,
    media_url: str | None = None,
    reply_to_id: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    """Send to a delivery target string; group vs. direct comes from the target's shape."""
    target = parse_target(to)
    logger.debug(
        "qq_send",
        account_id=account.account_id,
        kind=target.kind.value,
        target_id=target.id,
        length=len(text),
    )
    send = send_group_message if target.is_group else send_private_message
    return await send(
        target.id,
        text,
        account,
        media_url=media_url,
        reply_to_id=reply_to_id,
        client=client,
    )
