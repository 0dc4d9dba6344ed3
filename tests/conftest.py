"""Pytest configuration and fixtures."""

import pytest

from qq_gateway.config import AppConfig
from qq_gateway.qq.accounts import resolve_account
from qq_gateway.qq.events import MessageEvent


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the operator override token and debug flag out of every test."""
    monkeypatch.delenv("QQ_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("QQ_DEBUG_ACCOUNTS", raising=False)


def _build_config(qq=None, **extra):
    return AppConfig.model_validate({"channels": {"qq": qq or {}}, **extra})


@pytest.fixture
def make_config():
    """Build an AppConfig from a channels.qq section plus top-level keys."""
    return _build_config


@pytest.fixture
def make_account():
    """Resolve an account with bridge URLs filled in unless overridden."""

    def _make(account_id=None, **qq):
        qq.setdefault("httpUrl", "http://bridge.test")
        qq.setdefault("wsUrl", "ws://bridge.test/ws")
        return resolve_account(_build_config(qq), account_id)

    return _make


@pytest.fixture
def make_event():
    """Build a OneBot message event from wire-shaped keyword overrides."""

    def _make(**fields):
        data = {
            "post_type": "message",
            "message_type": "private",
            "user_id": 123456789,
            "message": "hi",
            "message_id": 1,
            "time": 1700000000,
            "sender": {"user_id": 123456789, "nickname": "Al"},
        }
        data.update(fields)
        return MessageEvent.model_validate(data)

    return _make
