"""Inbound access control: DM policy, group policy, per-group overrides, mention gating."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from qq_gateway.config import QQAccountConfig, QQGroupConfig
from qq_gateway.qq.accounts import ResolvedAccount
from qq_gateway.qq.models import InboundMessage

_CHANNEL_PREFIX = re.compile(r"^qq:", re.IGNORECASE)

DEFAULT_DM_POLICY = "pairing"
DEFAULT_GROUP_POLICY = "open"


@dataclass(frozen=True, slots=True)
class AccessDecision:
    allowed: bool
    reason: str = "allowed"


ALLOWED = AccessDecision(allowed=True)


def normalize_allow_entry(entry: str | int) -> str:
    return _CHANNEL_PREFIX.sub("", str(entry).strip())


def is_sender_allowed(sender_id: str, entries: Iterable[str | int] | None) -> bool:
    allowed = {normalize_allow_entry(e) for e in entries or ()}
    allowed.discard("")
    return "*" in allowed or sender_id in allowed


def resolve_group_config(config: QQAccountConfig, group_id: str | None) -> QQGroupConfig | None:
    groups = config.groups or {}
    if group_id and group_id in groups:
        return groups[group_id]
    return groups.get("*")


def _evaluate_dm(message: InboundMessage, config: QQAccountConfig) -> AccessDecision:
    policy = config.dm_policy or DEFAULT_DM_POLICY
    if policy == "disabled":
        return AccessDecision(False, "dm_disabled")
    if policy == "open":
        return ALLOWED
    if is_sender_allowed(message.sender_id, config.allow_from):
        return ALLOWED
    # pairing approval happens out of band; until then the sender is unknown
    return AccessDecision(False, "pairing_required" if policy == "pairing" else "not_allowlisted")


def _evaluate_group(message: InboundMessage, config: QQAccountConfig) -> AccessDecision:
    policy = config.group_policy or DEFAULT_GROUP_POLICY
    if policy == "disabled":
        return AccessDecision(False, "group_disabled")

    group_cfg = resolve_group_config(config, message.group_id)
    if group_cfg and group_cfg.enabled is False:
        return AccessDecision(False, "group_disabled")

    if policy == "allowlist":
        entries = config.group_allow_from if config.group_allow_from is not None else config.allow_from
        if not is_sender_allowed(message.sender_id, entries):
            return AccessDecision(False, "not_allowlisted")

    if group_cfg and group_cfg.allow_from is not None:
        if not is_sender_allowed(message.sender_id, group_cfg.allow_from):
            return AccessDecision(False, "not_allowlisted")

    if group_cfg and group_cfg.require_mention and not message.was_mentioned:
        return AccessDecision(False, "mention_required")

    return ALLOWED


def evaluate_access(message: InboundMessage, account: ResolvedAccount) -> AccessDecision:
    """Decide whether an inbound message reaches the agent. Blocks are silent."""
    if message.is_group:
        return _evaluate_group(message, account.config)
    return _evaluate_dm(message, account.config)
