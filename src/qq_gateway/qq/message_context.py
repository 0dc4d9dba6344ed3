"""Turn OneBot message events into inbound messages and routed message contexts."""

from __future__ import annotations

from typing import Any

from qq_gateway.config import AppConfig
from qq_gateway.core.routing import RoutePeer, resolve_agent_route
from qq_gateway.core.session import resolve_thread_session_keys
from qq_gateway.core.types import CHANNEL_ID, ChatType, PeerKind
from qq_gateway.qq.accounts import ResolvedAccount
from qq_gateway.qq.events import MessageEvent, MessageSegment, SegmentType
from qq_gateway.qq.models import InboundContext, InboundMessage, MessageContext
from qq_gateway.qq.policy import resolve_group_config
from qq_gateway.qq.targets import format_chat_id


def _id_str(value: Any) -> str:
    return "" if value is None else str(value)


def build_group_peer_id(group_id: int | str, user_id: int | str | None = None) -> str:
    """Group peers carry the sender so downstream can scope per member."""
    base = str(group_id)
    if user_id:
        return f"{base}:{user_id}"
    return base


def extract_text(message: str | list[MessageSegment]) -> str:
    if isinstance(message, str):
        return message
    return "".join(
        seg.data["text"]
        for seg in message
        if seg.type == SegmentType.TEXT and isinstance(seg.data.get("text"), str)
    )


def extract_reply_to_id(segments: list[MessageSegment]) -> str | None:
    for seg in segments:
        if seg.type != SegmentType.REPLY:
            continue
        reply_id = seg.data.get("id")
        if isinstance(reply_id, (str, int)) and not isinstance(reply_id, bool):
            return str(reply_id)
        return None
    return None


def is_self_mentioned(segments: list[MessageSegment], self_id: int | str | None) -> bool:
    target = _id_str(self_id)
    for seg in segments:
        if seg.type != SegmentType.AT:
            continue
        qq = _id_str(seg.data.get("qq"))
        if qq == "all" or (target and qq == target):
            return True
    return False


def _sender_name(event: MessageEvent) -> str:
    return event.sender.card or event.sender.nickname or _id_str(event.user_id)


def _timestamp_ms(event: MessageEvent) -> int:
    try:
        return int(event.time * 1000)
    except (TypeError, ValueError, OverflowError):
        return 0


def parse_inbound_message(event: MessageEvent, account_id: str) -> InboundMessage:
    """Normalize a wire message event. Missing fields degrade, nothing raises."""
    segments = event.message if isinstance(event.message, list) else []

    if event.is_group:
        peer_id = build_group_peer_id(event.group_id, event.sender.user_id)
        chat_type = ChatType.GROUP
    else:
        peer_id = _id_str(event.user_id)
        chat_type = ChatType.DIRECT

    return InboundMessage(
        account_id=account_id,
        chat_type=chat_type,
        peer_id=peer_id,
        sender_id=_id_str(event.user_id),
        sender_name=_sender_name(event),
        text=extract_text(event.message),
        message_id=_id_str(event.message_id),
        timestamp_ms=_timestamp_ms(event),
        reply_to_id=extract_reply_to_id(segments),
        group_id=_id_str(event.group_id) or None,
        was_mentioned=is_self_mentioned(segments, event.self_id),
        raw=event,
    )


def build_message_context(
    message: InboundMessage,
    config: AppConfig,
    account: ResolvedAccount,
) -> MessageContext | None:
    """Resolve route and session for a message; None when routing yields nothing."""
    is_group = message.is_group
    route = resolve_agent_route(
        config,
        CHANNEL_ID,
        account.account_id,
        RoutePeer(kind=PeerKind.GROUP if is_group else PeerKind.DM, id=message.peer_id),
    )
    if route is None:
        return None

    session_key = route.session_key
    extra_prompt = None
    if is_group:
        session_key = resolve_thread_session_keys(route.session_key, message.group_id).session_key
        group_cfg = resolve_group_config(account.config, message.group_id)
        extra_prompt = group_cfg.system_prompt if group_cfg else None

    payload = InboundContext(
        body=message.text,
        from_id=message.sender_id,
        to=message.peer_id,
        session_key=session_key,
        agent_id=route.agent_id,
        account_id=account.account_id,
        message_sid=message.message_id,
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        timestamp_ms=message.timestamp_ms,
        chat_type=message.chat_type,
        reply_to_id=message.reply_to_id,
        group_id=message.group_id,
        extra_system_prompt=extra_prompt,
        history_limit=account.config.history_limit if is_group else account.config.dm_history_limit,
    )

    return MessageContext(
        payload=payload,
        route=route,
        # Group peer ids may carry a ":<sender>" suffix; delivery needs the bare group.
        chat_id=format_chat_id(is_group, message.group_id if is_group else message.sender_id),
        is_group=is_group,
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        message_id=message.message_id,
        text=message.text,
        reply_to_id=message.reply_to_id,
    )
