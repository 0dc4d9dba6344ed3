"""QQ channel: per-account monitors, inbound handling, outbound sends, and status."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import httpx

from qq_gateway.ai.dispatcher import ReplyDispatcher
from qq_gateway.config import AppConfig
from qq_gateway.core.account_registry import AccountRegistry
from qq_gateway.log import get_logger
from qq_gateway.qq.accounts import ResolvedAccount, resolve_account
from qq_gateway.qq.dispatch import handle_inbound_message
from qq_gateway.qq.events import MessageEvent
from qq_gateway.qq.models import ProbeResult, SendResult
from qq_gateway.qq.monitor import MonitorConfigError, QQMonitor
from qq_gateway.qq.probe import probe_account
from qq_gateway.qq.send import send_message
from qq_gateway.qq.targets import normalize_target

logger = get_logger(__name__)

STARTUP_PROBE_TIMEOUT_MS = 2500
LOGIN_PROBE_TIMEOUT_MS = 5000


@dataclass(frozen=True, slots=True)
class LoginWaitResult:
    connected: bool
    message: str


class QQChannel:
    """Connects resolved QQ accounts to the reply pipeline."""

    def __init__(
        self,
        config: AppConfig,
        dispatcher: ReplyDispatcher,
        registry: AccountRegistry | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self._dispatcher = dispatcher
        self._registry = registry or AccountRegistry()
        self._client = client

    @property
    def registry(self) -> AccountRegistry:
        return self._registry

    async def start_account(
        self, account: ResolvedAccount, abort_event: asyncio.Event | None = None
    ) -> QQMonitor:
        if not account.ws_url:
            raise MonitorConfigError("WebSocket URL required for QQ gateway")

        logger.info("qq_account_starting", account_id=account.account_id)
        probe = await probe_account(account, STARTUP_PROBE_TIMEOUT_MS, client=self._client)
        if probe.ok:
            logger.info(
                "qq_account_identity",
                account_id=account.account_id,
                nickname=probe.nickname,
                self_id=probe.self_id,
            )
        else:
            logger.warning("qq_account_probe_failed", account_id=account.account_id, error=probe.error)

        async def on_message(event: MessageEvent) -> None:
            await self.handle_message(account, event)

        def on_error(error: Exception) -> None:
            logger.error("qq_ws_error", account_id=account.account_id, error=str(error))
            self._registry.record_error(account.account_id, str(error))

        monitor = QQMonitor(
            account,
            on_event=self._log_event,
            on_message=on_message,
            on_error=on_error,
            abort_event=abort_event,
        ).start()
        self._registry.register(account.account_id, monitor)
        logger.info("qq_account_started", account_id=account.account_id)
        return monitor

    async def stop_account(self, account_id: str) -> None:
        monitor = self._registry.unregister(account_id)
        if monitor is None:
            return
        monitor.close()
        await monitor.wait_closed()
        logger.info("qq_account_stopped", account_id=account_id)

    async def stop_all(self) -> None:
        for account_id in self._registry.ids():
            await self.stop_account(account_id)

    @staticmethod
    def _log_event(event: Any) -> None:
        if isinstance(event, MessageEvent):
            logger.debug(
                "qq_message_received",
                message_type=event.message_type,
                sender=event.sender.nickname,
                message_id=event.message_id,
            )
        else:
            logger.debug("qq_event_received", post_type=event.post_type)

    async def handle_message(self, account: ResolvedAccount, event: MessageEvent) -> None:
        self._registry.record_inbound(account.account_id)
        state = await handle_inbound_message(
            event, self.config, account, self._dispatcher, client=self._client
        )
        if state is not None and state.sent:
            self._registry.record_outbound(account.account_id)

    async def send_text(
        self,
        to: str,
        text: str,
        account_id: str | None = None,
        reply_to_id: str | None = None,
    ) -> SendResult:
        account = resolve_account(self.config, account_id)
        result = await send_message(
            normalize_target(to), text, account, reply_to_id=reply_to_id, client=self._client
        )
        self._registry.record_outbound(account.account_id)
        return result

    async def send_media(
        self,
        to: str,
        text: str,
        media_url: str,
        account_id: str | None = None,
        reply_to_id: str | None = None,
    ) -> SendResult:
        account = resolve_account(self.config, account_id)
        result = await send_message(
            normalize_target(to),
            text,
            account,
            media_url=media_url,
            reply_to_id=reply_to_id,
            client=self._client,
        )
        self._registry.record_outbound(account.account_id)
        return result

    async def probe(self, account: ResolvedAccount, timeout_ms: int = 5000) -> ProbeResult:
        return await probe_account(account, timeout_ms, client=self._client)

    async def wait_for_login(
        self,
        account: ResolvedAccount,
        timeout_ms: int | None = None,
        poll_interval_s: float = 3.0,
    ) -> LoginWaitResult:
        """Poll the bridge until the QQ login shows up online, or give up."""
        deadline = time.monotonic() + (timeout_ms / 1000 if timeout_ms else 180.0)
        while True:
            probe = await self.probe(account, LOGIN_PROBE_TIMEOUT_MS)
            if probe.ok and probe.status == "online":
                return LoginWaitResult(
                    connected=True,
                    message=f"QQ logged in successfully as {probe.nickname} ({probe.self_id})",
                )
            if time.monotonic() + poll_interval_s > deadline:
                return LoginWaitResult(
                    connected=False,
                    message="Timeout waiting for QQ login. Please check NapCat WebUI for QR code.",
                )
            await asyncio.sleep(poll_interval_s)

    def collect_warnings(self, account: ResolvedAccount) -> list[str]:
        warnings: list[str] = []
        if not account.http_url:
            warnings.append("QQ HTTP URL not configured")
        if not account.ws_url:
            warnings.append("QQ WebSocket URL not configured (required for receiving messages)")
        return warnings

    def snapshot(self, account: ResolvedAccount, probe: ProbeResult | None = None) -> dict[str, Any]:
        rt = self._registry.runtime(account.account_id)
        return {
            "account_id": account.account_id,
            "name": account.name,
            "enabled": account.enabled,
            "configured": account.is_configured,
            "token_source": account.token_source.value,
            "running": rt.running,
            "mode": rt.mode or ("websocket" if account.ws_url else "http"),
            "last_start_at": rt.last_start_at,
            "last_stop_at": rt.last_stop_at,
            "last_error": rt.last_error,
            "last_inbound_at": rt.last_inbound_at,
            "last_outbound_at": rt.last_outbound_at,
            "probe": probe,
        }
