"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Annotated, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

ReplyToMode = Literal["off", "first", "all"]
ChunkMode = Literal["length", "newline"]
DmPolicy = Literal["pairing", "allowlist", "open", "disabled"]
GroupPolicy = Literal["open", "disabled", "allowlist"]

# YAML reads unquoted numeric keys (QQ group numbers, account ids) as ints.
IdKey = Annotated[str, BeforeValidator(str)]


class _ChannelModel(BaseModel):
    """Channel sections use the camelCase keys of the bridge-facing config."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class QQGroupConfig(_ChannelModel):
    enabled: Optional[bool] = None
    require_mention: Optional[bool] = None
    allow_from: Optional[list[str | int]] = None
    system_prompt: Optional[str] = None


class QQAccountConfig(_ChannelModel):
    """Per-account settings. Unset fields stay ``None`` so merges can tell them apart."""

    name: Optional[str] = None
    enabled: Optional[bool] = None
    http_url: Optional[str] = None
    ws_url: Optional[str] = None
    access_token: Optional[str] = None
    token_file: Optional[str] = None
    connection_timeout_ms: Optional[int] = None
    reconnect_interval_ms: Optional[int] = None
    reply_to_mode: Optional[ReplyToMode] = None
    text_chunk_limit: Optional[int] = None
    chunk_mode: Optional[ChunkMode] = None
    dm_policy: Optional[DmPolicy] = None
    group_policy: Optional[GroupPolicy] = None
    allow_from: Optional[list[str | int]] = None
    group_allow_from: Optional[list[str | int]] = None
    groups: Optional[dict[IdKey, QQGroupConfig]] = None
    history_limit: Optional[int] = None
    dm_history_limit: Optional[int] = None


class QQConfig(QQAccountConfig):
    accounts: dict[IdKey, QQAccountConfig] = Field(default_factory=dict)


class ChannelsConfig(BaseModel):
    qq: QQConfig = Field(default_factory=QQConfig)


class BindingPeer(_ChannelModel):
    kind: Literal["dm", "group"]
    id: str


class BindingMatch(_ChannelModel):
    channel: str
    account_id: Optional[str] = None  # None or "*" matches every account
    peer: Optional[BindingPeer] = None


class BindingConfig(_ChannelModel):
    agent_id: str
    match: BindingMatch


class AgentConfig(BaseModel):
    id: str
    default: bool = False
    name: str = ""
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    system_prompt: str = ""
    temperature: float = 0.7


class SessionConfig(BaseModel):
    dm_scope: Literal["main", "per-peer"] = "main"


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    max_retries: int = 3
    timeout: int = 120


class BridgeConfig(BaseModel):
    """How to launch the OneBot bridge (NapCatQQ) when the gateway supervises it."""

    autostart: bool = False
    command: list[str] = Field(default_factory=list)
    cwd: Optional[str] = None
    env: dict[str, str] = Field(default_factory=dict)
    startup_delay_s: float = 5.0
    stop_timeout_s: float = 10.0


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    agents: list[AgentConfig] = Field(default_factory=list)
    bindings: list[BindingConfig] = Field(default_factory=list)
    session: SessionConfig = Field(default_factory=SessionConfig)
    anthropic: Optional[AnthropicConfig] = None
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)


# ${VAR} or ${VAR:-fallback}
_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _interpolate_env_vars(text: str) -> str:
    """Substitute environment references; unset variables without a fallback stay literal."""

    def _replace(match: re.Match) -> str:
        value = os.environ.get(match.group(1))
        if value:
            return value
        fallback = match.group(2)
        if fallback is not None:
            return fallback
        return match.group(0) if value is None else value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Read ``.env`` (when present), then the YAML file, and validate it into an AppConfig.

    Raises FileNotFoundError when the config file is missing and
    pydantic.ValidationError when its contents don't fit the schema.
    """
    env_file = Path(env_path)
    if env_file.is_file():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    data = yaml.safe_load(_interpolate_env_vars(config_file.read_text(encoding="utf-8"))) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_file}")
    return AppConfig.model_validate(data)
