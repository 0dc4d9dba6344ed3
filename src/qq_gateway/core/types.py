"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum

CHANNEL_ID = "qq"
DEFAULT_ACCOUNT_ID = "default"
DEFAULT_AGENT_ID = "main"


class ChatType(StrEnum):
    DIRECT = "direct"
    GROUP = "group"


class PeerKind(StrEnum):
    DM = "dm"
    GROUP = "group"


class TokenSource(StrEnum):
    ENV = "env"
    TOKEN_FILE = "tokenFile"
    CONFIG = "config"
    NONE = "none"


class ReplyKind(StrEnum):
    TOOL = "tool"
    BLOCK = "block"
    FINAL = "final"
