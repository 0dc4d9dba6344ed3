"""Drive the reply pipeline for one message and deliver its replies over the bridge."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from qq_gateway.ai.dispatcher import (
    SILENT,
    DispatcherCallbacks,
    DispatchInfo,
    ReplyDispatcher,
    ReplyPayload,
)
from qq_gateway.config import AppConfig
from qq_gateway.core.types import ReplyKind
from qq_gateway.log import get_logger
from qq_gateway.qq.accounts import ResolvedAccount
from qq_gateway.qq.events import MessageEvent
from qq_gateway.qq.message_context import build_message_context, parse_inbound_message
from qq_gateway.qq.models import MessageContext, SendResult
from qq_gateway.qq.policy import evaluate_access
from qq_gateway.qq.send import send_message

logger = get_logger(__name__)

EMPTY_RESPONSE_FALLBACK = "No response generated. Please try again."
DEFAULT_TEXT_CHUNK_LIMIT = 4000
DEFAULT_REPLY_TO_MODE = "first"


@dataclass
class DeliveryState:
    delivered: bool = False
    skipped_non_silent: int = 0
    sent: int = 0


def chunk_text(text: str, limit: int = DEFAULT_TEXT_CHUNK_LIMIT, mode: str = "length") -> list[str]:
    """Split a reply into chunks that fit the bridge's message size."""
    if mode == "newline":
        pieces: list[str] = []
        for line in text.split("\n"):
            if line.strip():
                pieces.extend(chunk_text(line, limit))
        return pieces or [text]

    if limit <= 0 or len(text) <= limit:
        return [text]

    chunks = []
    while text:
        if len(text) <= limit:
            chunks.append(text)
            break
        # Try to split at a newline
        split_pos = text.rfind("\n", 0, limit)
        if split_pos <= 0:
            split_pos = limit
        chunks.append(text[:split_pos])
        text = text[split_pos:].lstrip("\n")
    return chunks


async def deliver_reply(
    text: str,
    to: str,
    account: ResolvedAccount,
    *,
    reply_to_id: str | None = None,
    media_url: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> SendResult | None:
    """Send one reply; failures are logged and reported as None, never raised."""
    try:
        return await send_message(
            to, text, account, media_url=media_url, reply_to_id=reply_to_id, client=client
        )
    except Exception as e:
        logger.error("qq_reply_send_failed", account_id=account.account_id, to=to, error=str(e))
        return None


async def dispatch_message(
    context: MessageContext,
    account: ResolvedAccount,
    dispatcher: ReplyDispatcher,
    *,
    client: httpx.AsyncClient | None = None,
) -> DeliveryState:
    cfg = account.config
    limit = cfg.text_chunk_limit or DEFAULT_TEXT_CHUNK_LIMIT
    chunk_mode = cfg.chunk_mode or "length"
    reply_to_mode = cfg.reply_to_mode or DEFAULT_REPLY_TO_MODE
    state = DeliveryState()

    def reply_reference() -> str | None:
        if reply_to_mode == "all" or (reply_to_mode == "first" and state.sent == 0):
            return context.message_id or None
        return None

    async def deliver(payload: ReplyPayload, info: DispatchInfo) -> None:
        if info.kind is not ReplyKind.FINAL or not (payload.text or payload.media_url):
            return
        for index, chunk in enumerate(chunk_text(payload.text, limit, chunk_mode)):
            result = await deliver_reply(
                chunk,
                context.chat_id,
                account,
                reply_to_id=reply_reference(),
                media_url=payload.media_url if index == 0 else None,
                client=client,
            )
            state.sent += 1
            if result is not None and result.message_id:
                state.delivered = True

    def on_skip(_payload: ReplyPayload, info: DispatchInfo) -> None:
        if info.reason != SILENT:
            state.skipped_non_silent += 1

    def on_error(err: Exception, info: DispatchInfo) -> None:
        logger.error("qq_reply_failed", kind=info.kind.value, error=str(err))

    try:
        await dispatcher.dispatch(context.payload, DispatcherCallbacks(deliver, on_skip, on_error))
    except Exception as e:
        logger.error("qq_dispatch_failed", session_key=context.payload.session_key, error=str(e))
        state.skipped_non_silent += 1

    if not state.delivered and state.skipped_non_silent > 0:
        await deliver_reply(EMPTY_RESPONSE_FALLBACK, context.chat_id, account, client=client)

    return state


async def handle_inbound_message(
    event: MessageEvent,
    config: AppConfig,
    account: ResolvedAccount,
    dispatcher: ReplyDispatcher,
    *,
    client: httpx.AsyncClient | None = None,
) -> DeliveryState | None:
    """Parse, gate, route, and dispatch one message event. None when it was dropped."""
    message = parse_inbound_message(event, account.account_id)

    decision = evaluate_access(message, account)
    if not decision.allowed:
        logger.info(
            "qq_inbound_blocked",
            account_id=account.account_id,
            sender_id=message.sender_id,
            chat_type=message.chat_type.value,
            reason=decision.reason,
        )
        return None

    context = build_message_context(message, config, account)
    if context is None:
        logger.info("qq_context_unavailable", account_id=account.account_id, peer_id=message.peer_id)
        return None

    return await dispatch_message(context, account, dispatcher, client=client)
