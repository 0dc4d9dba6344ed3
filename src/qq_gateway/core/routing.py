"""Agent routing: bindings, default agent, and route resolution per inbound peer."""

from __future__ import annotations

from dataclasses import dataclass

from qq_gateway.config import AppConfig, BindingConfig
from qq_gateway.core.session import (
    build_main_session_key,
    build_peer_session_key,
    normalize_account_id,
    normalize_agent_id,
)
from qq_gateway.core.types import DEFAULT_AGENT_ID, PeerKind
from qq_gateway.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RoutePeer:
    kind: PeerKind
    id: str


@dataclass(frozen=True, slots=True)
class ResolvedAgentRoute:
    agent_id: str
    channel: str
    account_id: str
    session_key: str
    main_session_key: str
    matched_by: str  # "binding.peer" | "binding.account" | "binding.channel" | "default"


def resolve_default_agent_id(config: AppConfig) -> str:
    for agent in config.agents:
        if agent.default:
            return normalize_agent_id(agent.id)
    if config.agents:
        return normalize_agent_id(config.agents[0].id)
    return DEFAULT_AGENT_ID


def _channel_bindings(config: AppConfig, channel: str) -> list[BindingConfig]:
    wanted = channel.strip().lower()
    return [b for b in config.bindings if b.match.channel.strip().lower() == wanted]


def _binding_account(binding: BindingConfig) -> str | None:
    """The account a binding is pinned to, or None when it applies to every account."""
    raw = (binding.match.account_id or "").strip()
    if not raw or raw == "*":
        return None
    return normalize_account_id(raw)


def list_bound_account_ids(config: AppConfig, channel: str) -> list[str]:
    ids: set[str] = set()
    for binding in _channel_bindings(config, channel):
        account_id = _binding_account(binding)
        if account_id:
            ids.add(account_id)
    return sorted(ids)


def resolve_default_agent_bound_account_id(config: AppConfig, channel: str) -> str | None:
    """Account id the default agent is bound to on ``channel``, if any."""
    default_agent = resolve_default_agent_id(config)
    for binding in _channel_bindings(config, channel):
        if normalize_agent_id(binding.agent_id) != default_agent:
            continue
        account_id = _binding_account(binding)
        if account_id:
            return account_id
    return None


def _match_binding(
    bindings: list[BindingConfig], account_id: str, peer: RoutePeer
) -> tuple[BindingConfig, str] | None:
    account_matches = [
        b for b in bindings if _binding_account(b) in (None, account_id)
    ]

    for binding in account_matches:
        bound_peer = binding.match.peer
        if bound_peer and bound_peer.kind == peer.kind.value and bound_peer.id.strip() == peer.id:
            return binding, "binding.peer"

    for binding in account_matches:
        if binding.match.peer is None and _binding_account(binding) == account_id:
            return binding, "binding.account"

    for binding in account_matches:
        if binding.match.peer is None and _binding_account(binding) is None:
            return binding, "binding.channel"

    return None


def resolve_agent_route(
    config: AppConfig,
    channel: str,
    account_id: str | None,
    peer: RoutePeer,
) -> ResolvedAgentRoute | None:
    """Pick the agent for an inbound peer and derive its session key.

    The most specific binding wins: an exact peer match, then an account-wide
    binding, then a channel-wide binding, then the default agent. Returns None
    when the selected agent is not among the configured agents.
    """
    normalized_account = normalize_account_id(account_id)
    matched = _match_binding(_channel_bindings(config, channel), normalized_account, peer)

    if matched:
        binding, matched_by = matched
        agent_id = normalize_agent_id(binding.agent_id)
    else:
        agent_id = resolve_default_agent_id(config)
        matched_by = "default"

    known_agents = {normalize_agent_id(a.id) for a in config.agents}
    if known_agents and agent_id not in known_agents:
        logger.warning("route_unknown_agent", agent_id=agent_id, channel=channel, peer_id=peer.id)
        return None

    return ResolvedAgentRoute(
        agent_id=agent_id,
        channel=channel,
        account_id=normalized_account,
        session_key=build_peer_session_key(
            agent_id, channel, peer.kind, peer.id, dm_scope=config.session.dm_scope
        ),
        main_session_key=build_main_session_key(agent_id),
        matched_by=matched_by,
    )
