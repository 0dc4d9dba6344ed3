"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

import asyncio

import httpx

from qq_gateway.ai.client import AIClient, AnthropicClient
from qq_gateway.ai.dispatcher import DEFAULT_HISTORY_LIMIT, AgentReplyDispatcher, ReplyDispatcher
from qq_gateway.config import AppConfig
from qq_gateway.core.account_registry import AccountRegistry
from qq_gateway.log import get_logger
from qq_gateway.qq.accounts import list_enabled_accounts
from qq_gateway.qq.channel import QQChannel
from qq_gateway.services.bridge import BridgeService, BridgeState

logger = get_logger(__name__)


class QQGatewayApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig, dispatcher: ReplyDispatcher | None = None):
        self.config = config
        self.registry = AccountRegistry()
        self.bridge = BridgeService(config.bridge)
        self.dispatcher = dispatcher or self._create_dispatcher()
        self.http_client = httpx.AsyncClient()
        self.channel = QQChannel(config, self.dispatcher, self.registry, client=self.http_client)
        self._abort_events: dict[str, asyncio.Event] = {}

    async def start(self) -> None:
        """Start the bridge (when supervised) and one monitor per enabled account."""
        # 1. Bridge process
        if self.config.bridge.autostart:
            await self._ensure_bridge()

        # 2. Accounts
        for account in list_enabled_accounts(self.config):
            abort_event = asyncio.Event()
            try:
                await self.channel.start_account(account, abort_event)
                self._abort_events[account.account_id] = abort_event
            except Exception as e:
                logger.error("account_start_failed", account_id=account.account_id, error=str(e))
                self.registry.record_error(account.account_id, str(e))

        logger.info("qq_gateway_started", account_count=len(self.registry.ids()))

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        for event in self._abort_events.values():
            event.set()
        self._abort_events.clear()
        await self.channel.stop_all()

        if self.bridge.state is BridgeState.RUNNING:
            try:
                await self.bridge.stop()
            except Exception as e:
                logger.error("bridge_stop_error", error=str(e))

        await self.http_client.aclose()
        logger.info("qq_gateway_stopped")

    async def _ensure_bridge(self) -> None:
        status = self.bridge.status()
        if status.state is BridgeState.RUNNING:
            logger.info("bridge_already_running", pid=status.pid)
            return
        await self.bridge.start()
        # NapCat needs a moment before its OneBot endpoints answer
        await asyncio.sleep(self.config.bridge.startup_delay_s)

    def _create_ai_client(self) -> AIClient:
        if not self.config.anthropic:
            raise ValueError("No 'anthropic' section in config; the agent reply pipeline needs one")
        return AnthropicClient(self.config.anthropic)

    def _create_dispatcher(self) -> ReplyDispatcher:
        qq = self.config.channels.qq
        return AgentReplyDispatcher(
            ai_client=self._create_ai_client(),
            agents=self.config.agents,
            history_limit=DEFAULT_HISTORY_LIMIT if qq.history_limit is None else qq.history_limit,
            dm_history_limit=DEFAULT_HISTORY_LIMIT if qq.dm_history_limit is None else qq.dm_history_limit,
        )
