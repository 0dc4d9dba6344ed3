"""Tests for agent routing and session keys."""

from qq_gateway.core.routing import (
    RoutePeer,
    list_bound_account_ids,
    resolve_agent_route,
    resolve_default_agent_id,
)
from qq_gateway.core.session import (
    build_peer_session_key,
    normalize_account_id,
    resolve_thread_session_keys,
)
from qq_gateway.core.types import PeerKind

GROUP_PEER = RoutePeer(PeerKind.GROUP, "100:7")
DM_PEER = RoutePeer(PeerKind.DM, "42")


def _binding(agent_id, account_id=None, peer=None):
    match = {"channel": "qq"}
    if account_id is not None:
        match["accountId"] = account_id
    if peer is not None:
        match["peer"] = peer
    return {"agentId": agent_id, "match": match}


def test_default_agent_without_agents(make_config):
    route = resolve_agent_route(make_config(), "qq", None, DM_PEER)
    assert route.agent_id == "main"
    assert route.account_id == "default"
    assert route.matched_by == "default"
    assert route.main_session_key == "agent:main:main"


def test_default_agent_flag_and_first_agent(make_config):
    assert resolve_default_agent_id(make_config(agents=[{"id": "a"}, {"id": "B", "default": True}])) == "b"
    assert resolve_default_agent_id(make_config(agents=[{"id": "a"}, {"id": "b"}])) == "a"


def test_peer_binding_beats_account_and_channel(make_config):
    config = make_config(
        agents=[{"id": "main"}, {"id": "ops"}, {"id": "chat"}, {"id": "team"}],
        bindings=[
            _binding("chat"),
            _binding("ops", account_id="work"),
            _binding("team", peer={"kind": "group", "id": "100:7"}),
        ],
    )
    assert resolve_agent_route(config, "qq", "work", GROUP_PEER).agent_id == "team"
    assert resolve_agent_route(config, "qq", "work", DM_PEER).matched_by == "binding.account"
    assert resolve_agent_route(config, "qq", "home", DM_PEER).agent_id == "chat"
    assert resolve_agent_route(config, "qq", "home", DM_PEER).matched_by == "binding.channel"


def test_bindings_for_other_accounts_are_ignored(make_config):
    config = make_config(bindings=[_binding("ops", account_id="work")])
    route = resolve_agent_route(config, "qq", "home", DM_PEER)
    assert route.agent_id == "main"
    assert route.matched_by == "default"


def test_bindings_for_other_channels_are_ignored(make_config):
    config = make_config(bindings=[{"agentId": "ops", "match": {"channel": "telegram"}}])
    assert resolve_agent_route(config, "qq", None, DM_PEER).agent_id == "main"


def test_unknown_agent_yields_no_route(make_config):
    config = make_config(agents=[{"id": "main"}], bindings=[_binding("ghost")])
    assert resolve_agent_route(config, "qq", None, DM_PEER) is None


def test_group_session_key(make_config):
    route = resolve_agent_route(make_config(), "qq", None, GROUP_PEER)
    assert route.session_key == "agent:main:qq:group:100:7"


def test_list_bound_account_ids(make_config):
    config = make_config(bindings=[_binding("a", account_id="Work"), _binding("b", account_id="*"), _binding("c")])
    assert list_bound_account_ids(config, "qq") == ["work"]


def test_session_keys():
    assert build_peer_session_key("Main", "qq", PeerKind.DM, "42") == "agent:main:main"
    assert build_peer_session_key("main", "qq", PeerKind.DM, "42", dm_scope="per-peer") == "agent:main:qq:dm:42"

    thread = resolve_thread_session_keys("agent:main:qq:group:100", "100")
    assert thread.session_key == "agent:main:qq:group:100:thread:100"
    assert thread.parent_session_key == "agent:main:qq:group:100"
    assert resolve_thread_session_keys("base", None).session_key == "base"


def test_normalize_account_id():
    assert normalize_account_id("  Work ") == "work"
    assert normalize_account_id("") == "default"
    assert normalize_account_id(None) == "default"
