"""Tests for inbound access control."""

import pytest

from qq_gateway.core.types import ChatType
from qq_gateway.qq.models import InboundMessage
from qq_gateway.qq.policy import evaluate_access, is_sender_allowed, normalize_allow_entry


def dm(sender_id="42"):
    return InboundMessage(
        account_id="default",
        chat_type=ChatType.DIRECT,
        peer_id=sender_id,
        sender_id=sender_id,
        sender_name="someone",
        text="hi",
        message_id="1",
        timestamp_ms=0,
    )


def group_message(sender_id="42", group_id="100", mentioned=False):
    return InboundMessage(
        account_id="default",
        chat_type=ChatType.GROUP,
        peer_id=f"{group_id}:{sender_id}",
        sender_id=sender_id,
        sender_name="someone",
        text="hi",
        message_id="1",
        timestamp_ms=0,
        group_id=group_id,
        was_mentioned=mentioned,
    )


class TestDirectMessages:
    def test_pairing_is_the_default_and_blocks_strangers(self, make_account):
        decision = evaluate_access(dm(), make_account())
        assert not decision.allowed
        assert decision.reason == "pairing_required"

    def test_allow_from_admits_sender(self, make_account):
        assert evaluate_access(dm("42"), make_account(allowFrom=["qq:42"])).allowed

    def test_numeric_allow_entries(self, make_account):
        assert evaluate_access(dm("42"), make_account(allowFrom=[42])).allowed

    def test_allowlist_blocks_unknown(self, make_account):
        decision = evaluate_access(dm("7"), make_account(dmPolicy="allowlist", allowFrom=["42"]))
        assert decision.reason == "not_allowlisted"

    def test_wildcard(self, make_account):
        assert evaluate_access(dm("7"), make_account(dmPolicy="allowlist", allowFrom=["*"])).allowed

    def test_open(self, make_account):
        assert evaluate_access(dm(), make_account(dmPolicy="open")).allowed

    def test_disabled(self, make_account):
        decision = evaluate_access(dm(), make_account(dmPolicy="disabled", allowFrom=["*"]))
        assert decision.reason == "dm_disabled"


class TestGroups:
    def test_open_by_default(self, make_account):
        assert evaluate_access(group_message(), make_account()).allowed

    def test_disabled_policy(self, make_account):
        decision = evaluate_access(group_message(), make_account(groupPolicy="disabled"))
        assert decision.reason == "group_disabled"

    def test_disabled_group_entry(self, make_account):
        account = make_account(groups={"100": {"enabled": False}})
        assert not evaluate_access(group_message(), account).allowed
        assert evaluate_access(group_message(group_id="200"), account).allowed

    def test_allowlist_uses_group_allow_from(self, make_account):
        account = make_account(groupPolicy="allowlist", groupAllowFrom=["42"], allowFrom=["7"])
        assert evaluate_access(group_message("42"), account).allowed
        assert not evaluate_access(group_message("7"), account).allowed

    def test_allowlist_falls_back_to_allow_from(self, make_account):
        account = make_account(groupPolicy="allowlist", allowFrom=["7"])
        assert evaluate_access(group_message("7"), account).allowed

    def test_per_group_allow_from(self, make_account):
        account = make_account(groups={"100": {"allowFrom": ["9"]}})
        decision = evaluate_access(group_message("42"), account)
        assert decision.reason == "not_allowlisted"
        assert evaluate_access(group_message("9"), account).allowed

    @pytest.mark.parametrize("mentioned, allowed", [(False, False), (True, True)])
    def test_wildcard_group_requires_mention(self, make_account, mentioned, allowed):
        account = make_account(groups={"*": {"requireMention": True}})
        decision = evaluate_access(group_message(mentioned=mentioned), account)
        assert decision.allowed is allowed

    def test_specific_group_overrides_wildcard(self, make_account):
        account = make_account(groups={"*": {"requireMention": True}, "100": {"requireMention": False}})
        assert evaluate_access(group_message(), account).allowed


def test_allow_entries_are_normalized():
    assert normalize_allow_entry(" QQ:123 ") == "123"
    assert is_sender_allowed("123", ["qq:123"])
    assert not is_sender_allowed("123", ["", "  "])
    assert not is_sender_allowed("123", None)
