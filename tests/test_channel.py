"""Tests for the QQ channel: outbound sends, inbound bookkeeping, and status."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from qq_gateway.ai.dispatcher import DispatchInfo, ReplyDispatcher, ReplyPayload
from qq_gateway.core.types import ReplyKind
from qq_gateway.qq.accounts import resolve_account
from qq_gateway.qq.channel import QQChannel
from qq_gateway.qq.models import ProbeResult
from qq_gateway.qq.monitor import MonitorConfigError

QQ_SECTION = {"httpUrl": "http://bridge.test", "wsUrl": "ws://bridge.test/ws", "dmPolicy": "open"}


def _bridge():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"data": {"message_id": 7}})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


@pytest.fixture
def dispatcher():
    return AsyncMock(spec=ReplyDispatcher)


@pytest.mark.asyncio
async def test_send_text_accepts_channel_prefix(make_config, dispatcher):
    client, requests = _bridge()
    async with client:
        channel = QQChannel(make_config(QQ_SECTION), dispatcher, client=client)
        result = await channel.send_text("qq:group:5", "hello")

    assert result.message_id == "7"
    assert result.channel == "qq"
    assert requests[0].url.path == "/send_group_msg"
    assert channel.registry.runtime("default").last_outbound_at is not None


@pytest.mark.asyncio
async def test_send_media(make_config, dispatcher):
    client, requests = _bridge()
    async with client:
        channel = QQChannel(make_config(QQ_SECTION), dispatcher, client=client)
        await channel.send_media("user:9", "look", "http://img/a.png", reply_to_id="3")

    body = json.loads(requests[0].content)
    assert body["user_id"] == "9"
    assert [seg["type"] for seg in body["message"]] == ["reply", "image", "text"]


@pytest.mark.asyncio
async def test_handle_message_records_activity(make_config, make_event, dispatcher):
    async def reply(ctx, callbacks):
        await callbacks.deliver(ReplyPayload(text="pong"), DispatchInfo(ReplyKind.FINAL))

    dispatcher.dispatch.side_effect = reply
    config = make_config(QQ_SECTION)
    client, requests = _bridge()
    async with client:
        channel = QQChannel(config, dispatcher, client=client)
        await channel.handle_message(resolve_account(config), make_event())

    runtime = channel.registry.runtime("default")
    assert runtime.last_inbound_at is not None
    assert runtime.last_outbound_at is not None
    assert requests[0].url.path == "/send_private_msg"


@pytest.mark.asyncio
async def test_start_account_requires_ws_url(make_config, dispatcher):
    config = make_config({"httpUrl": "http://bridge.test"})
    channel = QQChannel(config, dispatcher)
    with pytest.raises(MonitorConfigError):
        await channel.start_account(resolve_account(config))
    assert channel.registry.ids() == []


@pytest.mark.asyncio
async def test_stop_unknown_account_is_noop(make_config, dispatcher):
    channel = QQChannel(make_config(QQ_SECTION), dispatcher)
    await channel.stop_account("nobody")
    await channel.stop_all()


@pytest.mark.asyncio
async def test_wait_for_login_polls_until_online(make_config, dispatcher, monkeypatch):
    channel = QQChannel(make_config(QQ_SECTION), dispatcher)
    probe = AsyncMock(side_effect=[
        ProbeResult.failure("connection refused"),
        ProbeResult(ok=True, self_id=10001, nickname="Bot", status="offline"),
        ProbeResult(ok=True, self_id=10001, nickname="Bot", status="online"),
    ])
    monkeypatch.setattr(channel, "probe", probe)

    result = await channel.wait_for_login(resolve_account(channel.config), timeout_ms=5000, poll_interval_s=0)

    assert result.connected
    assert "Bot (10001)" in result.message
    assert probe.await_count == 3


@pytest.mark.asyncio
async def test_wait_for_login_gives_up(make_config, dispatcher, monkeypatch):
    channel = QQChannel(make_config(QQ_SECTION), dispatcher)
    monkeypatch.setattr(channel, "probe", AsyncMock(return_value=ProbeResult.failure("down")))

    result = await channel.wait_for_login(resolve_account(channel.config), timeout_ms=50, poll_interval_s=0.1)

    assert not result.connected
    assert "Timeout" in result.message


def test_collect_warnings(make_config, dispatcher):
    config = make_config({"httpUrl": "http://bridge.test"})
    channel = QQChannel(config, dispatcher)
    assert channel.collect_warnings(resolve_account(config)) == [
        "QQ WebSocket URL not configured (required for receiving messages)"
    ]


def test_snapshot(make_config, dispatcher):
    config = make_config({**QQ_SECTION, "name": "Main", "accessToken": "tok"})
    channel = QQChannel(config, dispatcher)
    channel.registry.record_error("default", "boom")

    snapshot = channel.snapshot(resolve_account(config))

    assert snapshot["account_id"] == "default"
    assert snapshot["name"] == "Main"
    assert snapshot["configured"] is True
    assert snapshot["token_source"] == "config"
    assert snapshot["running"] is False
    assert snapshot["mode"] == "websocket"
    assert snapshot["last_error"] == "boom"
    assert snapshot["probe"] is None
