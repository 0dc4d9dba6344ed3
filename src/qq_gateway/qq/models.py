"""Channel-level records built from and sent to the OneBot bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from qq_gateway.core.types import CHANNEL_ID, ChatType

if TYPE_CHECKING:
    from qq_gateway.core.routing import ResolvedAgentRoute
    from qq_gateway.qq.events import MessageEvent


@dataclass(frozen=True, slots=True)
class InboundMessage:
    account_id: str
    chat_type: ChatType
    peer_id: str  # user id, or "groupId[:senderId]" for groups
    sender_id: str
    sender_name: str
    text: str
    message_id: str
    timestamp_ms: int
    reply_to_id: Optional[str] = None
    group_id: Optional[str] = None
    was_mentioned: bool = False
    channel: str = CHANNEL_ID
    raw: Optional[MessageEvent] = field(default=None, compare=False, repr=False)

    @property
    def is_group(self) -> bool:
        return self.chat_type is ChatType.GROUP


@dataclass(frozen=True, slots=True)
class InboundContext:
    """What the reply pipeline needs to know about one inbound message."""

    body: str
    from_id: str
    to: str
    session_key: str
    agent_id: str
    account_id: str
    message_sid: str
    sender_id: str
    sender_name: str
    timestamp_ms: int
    chat_type: ChatType
    reply_to_id: Optional[str] = None
    group_id: Optional[str] = None
    extra_system_prompt: Optional[str] = None
    history_limit: Optional[int] = None  # turns to keep for the session; 0 keeps none
    provider: str = CHANNEL_ID
    surface: str = CHANNEL_ID


@dataclass(frozen=True, slots=True)
class MessageContext:
    payload: InboundContext
    route: ResolvedAgentRoute
    chat_id: str  # "group:<peerId>" or "user:<senderId>"
    is_group: bool
    sender_id: str
    sender_name: str
    message_id: str
    text: str
    reply_to_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SendResult:
    message_id: str
    channel: str = CHANNEL_ID


@dataclass(frozen=True, slots=True)
class ProbeResult:
    ok: bool
    self_id: Optional[int | str] = None
    nickname: str = ""
    status: str = ""
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> ProbeResult:
        return cls(ok=False, error=error)


def text_segment(text: str) -> dict[str, Any]:
    return {"type": "text", "data": {"text": text}}


def reply_segment(message_id: str) -> dict[str, Any]:
    return {"type": "reply", "data": {"id": message_id}}


def image_segment(file: str) -> dict[str, Any]:
    return {"type": "image", "data": {"file": file}}
