"""OneBot 11 wire events as a closed tagged union on ``post_type``.

Decoding fails closed: a frame that is not JSON, is not an object, or carries
an unknown ``post_type`` is logged and dropped rather than raised.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from qq_gateway.log import get_logger

logger = get_logger(__name__)


class SegmentType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    FACE = "face"
    AT = "at"
    REPLY = "reply"
    JSON = "json"
    XML = "xml"
    RECORD = "record"
    VIDEO = "video"
    FILE = "file"


class MessageSegment(BaseModel):
    """One unit of rich message content. Unknown segment types pass through untouched."""

    model_config = ConfigDict(extra="allow")

    type: str
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class Sender(BaseModel):
    model_config = ConfigDict(extra="allow")

    user_id: Optional[int | str] = None
    nickname: Optional[str] = None
    card: Optional[str] = None
    role: Optional[str] = None


class _Event(BaseModel):
    model_config = ConfigDict(extra="allow")

    time: float = 0
    self_id: Optional[int | str] = None


class MessageEvent(_Event):
    post_type: Literal["message"]
    message_type: str = "private"
    sub_type: Optional[str] = None
    message_id: int | str = 0
    user_id: Optional[int | str] = None
    group_id: Optional[int | str] = None
    message: str | list[MessageSegment] = ""
    raw_message: str = ""
    sender: Sender = Field(default_factory=Sender)

    @field_validator("message", mode="before")
    @classmethod
    def _coerce_message(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            return [seg for seg in value if isinstance(seg, dict) and isinstance(seg.get("type"), str)]
        return ""

    @field_validator("sender", mode="before")
    @classmethod
    def _coerce_sender(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, Sender)) else {}

    @property
    def is_group(self) -> bool:
        return self.message_type == "group" and bool(self.group_id)


class NoticeEvent(_Event):
    post_type: Literal["notice"]
    notice_type: str = ""
    sub_type: Optional[str] = None
    user_id: Optional[int | str] = None
    group_id: Optional[int | str] = None


class RequestEvent(_Event):
    post_type: Literal["request"]
    request_type: str = ""
    sub_type: Optional[str] = None
    user_id: Optional[int | str] = None
    group_id: Optional[int | str] = None
    comment: Optional[str] = None
    flag: str = ""


class MetaEvent(_Event):
    post_type: Literal["meta_event"]
    meta_event_type: str = ""
    sub_type: Optional[str] = None
    status: Optional[dict[str, Any]] = None
    interval: Optional[int] = None


OneBotEvent = Annotated[
    Union[MessageEvent, NoticeEvent, RequestEvent, MetaEvent],
    Field(discriminator="post_type"),
]

_EVENT_ADAPTER: TypeAdapter[OneBotEvent] = TypeAdapter(OneBotEvent)


def decode_event(frame: str | bytes) -> MessageEvent | NoticeEvent | RequestEvent | MetaEvent | None:
    """Decode one WebSocket frame. Returns None (after logging) when it can't be used."""
    try:
        payload = json.loads(frame)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("qq_event_decode_failed", reason="invalid_json", error=str(e))
        return None

    if not isinstance(payload, dict):
        logger.warning("qq_event_decode_failed", reason="not_an_object")
        return None

    try:
        return _EVENT_ADAPTER.validate_python(payload)
    except ValidationError as e:
        logger.warning(
            "qq_event_decode_failed",
            reason="schema",
            post_type=payload.get("post_type"),
            error_count=e.error_count(),
        )
        return None
