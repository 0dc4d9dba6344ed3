"""Session key derivation for agent conversations."""

from __future__ import annotations

from dataclasses import dataclass

from qq_gateway.core.types import DEFAULT_ACCOUNT_ID, DEFAULT_AGENT_ID, PeerKind


def normalize_account_id(account_id: str | None) -> str:
    """Trim and lower-case an account id; blank ids map to the default account."""
    trimmed = (account_id or "").strip()
    if not trimmed:
        return DEFAULT_ACCOUNT_ID
    return trimmed.lower()


def normalize_agent_id(agent_id: str | None) -> str:
    trimmed = (agent_id or "").strip()
    if not trimmed:
        return DEFAULT_AGENT_ID
    return trimmed.lower()


def build_main_session_key(agent_id: str) -> str:
    return f"agent:{normalize_agent_id(agent_id)}:main"


def build_peer_session_key(
    agent_id: str,
    channel: str,
    peer_kind: PeerKind,
    peer_id: str,
    dm_scope: str = "main",
) -> str:
    """Build the base session key for a peer.

    Direct chats collapse into the agent's main session unless ``dm_scope`` is
    ``per-peer``; groups always get a session of their own.
    """
    if peer_kind is PeerKind.DM and dm_scope == "main":
        return build_main_session_key(agent_id)
    return f"agent:{normalize_agent_id(agent_id)}:{channel}:{peer_kind.value}:{peer_id.strip().lower()}"


@dataclass(frozen=True, slots=True)
class ThreadSessionKeys:
    session_key: str
    parent_session_key: str | None = None


def resolve_thread_session_keys(base_session_key: str, thread_id: str | None) -> ThreadSessionKeys:
    """Derive a thread-scoped session key; without a thread id the base key is kept."""
    thread = (thread_id or "").strip()
    if not thread:
        return ThreadSessionKeys(session_key=base_session_key)
    return ThreadSessionKeys(
        session_key=f"{base_session_key}:thread:{thread.lower()}",
        parent_session_key=base_session_key,
    )
