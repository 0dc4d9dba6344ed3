"""Tests for configuration loading."""

import os

import pytest

from qq_gateway.config import AppConfig, load_config
from qq_gateway.qq.policy import resolve_group_config

CONFIG_YAML = """
log_level: DEBUG
channels:
  qq:
    httpUrl: http://127.0.0.1:3000
    wsUrl: ws://127.0.0.1:3001
    accessToken: ${QQ_TEST_TOKEN}
    replyToMode: all
    groups:
      "100":
        requireMention: true
    accounts:
      work:
        name: Work
        reconnectIntervalMs: 2000
agents:
  - id: main
    default: true
    system_prompt: Be kind.
bindings:
  - agentId: main
    match:
      channel: qq
      accountId: work
anthropic:
  api_key: ${ANTHROPIC_TEST_KEY}
"""


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("QQ_TEST_TOKEN", "from-env")
    monkeypatch.setenv("ANTHROPIC_TEST_KEY", "sk-test")
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


def test_load_config(config_file, tmp_path):
    config = load_config(config_file, tmp_path / "missing.env")

    assert config.log_level == "DEBUG"
    qq = config.channels.qq
    assert qq.http_url == "http://127.0.0.1:3000"
    assert qq.access_token == "from-env"
    assert qq.reply_to_mode == "all"
    assert qq.groups["100"].require_mention is True
    assert qq.accounts["work"].reconnect_interval_ms == 2000
    assert config.agents[0].system_prompt == "Be kind."
    assert config.bindings[0].match.account_id == "work"
    assert config.anthropic.api_key == "sk-test"


def test_unset_env_var_is_left_as_is(config_file, tmp_path, monkeypatch):
    monkeypatch.delenv("QQ_TEST_TOKEN")
    config = load_config(config_file, tmp_path / "missing.env")
    assert config.channels.qq.access_token == "${QQ_TEST_TOKEN}"


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("QQ_DOTENV_TOKEN", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("QQ_DOTENV_TOKEN=dotenv-token\n", encoding="utf-8")
    config_path = tmp_path / "config.yaml"
    config_path.write_text("channels:\n  qq:\n    accessToken: ${QQ_DOTENV_TOKEN}\n", encoding="utf-8")

    try:
        config = load_config(config_path, env_file)
    finally:
        os.environ.pop("QQ_DOTENV_TOKEN", None)

    assert config.channels.qq.access_token == "dotenv-token"


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", tmp_path / "nope.env")


def test_empty_config_file_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")
    config = load_config(path, tmp_path / "nope.env")
    assert config == AppConfig()
    assert config.bridge.autostart is False
    assert config.session.dm_scope == "main"


def test_env_fallback_syntax(tmp_path, monkeypatch):
    monkeypatch.delenv("QQ_TEST_WS", raising=False)
    monkeypatch.setenv("QQ_TEST_HTTP", "http://from-env")
    path = tmp_path / "config.yaml"
    path.write_text(
        "channels:\n"
        "  qq:\n"
        "    httpUrl: ${QQ_TEST_HTTP:-http://fallback}\n"
        "    wsUrl: ${QQ_TEST_WS:-ws://127.0.0.1:3001}\n",
        encoding="utf-8",
    )
    qq = load_config(path, tmp_path / "nope.env").channels.qq
    assert qq.http_url == "http://from-env"
    assert qq.ws_url == "ws://127.0.0.1:3001"


def test_non_mapping_root_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        load_config(path, tmp_path / "nope.env")


def test_numeric_group_and_account_keys_become_strings(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "channels:\n"
        "  qq:\n"
        "    groups:\n"
        "      123456:\n"
        "        requireMention: false\n"
        "    accounts:\n"
        "      42:\n"
        "        groups:\n"
        "          654321:\n"
        "            enabled: false\n",
        encoding="utf-8",
    )
    qq = load_config(path, tmp_path / "nope.env").channels.qq

    assert qq.groups["123456"].require_mention is False
    assert qq.accounts["42"].groups["654321"].enabled is False
    assert resolve_group_config(qq, "123456").require_mention is False
