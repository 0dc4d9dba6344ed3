"""Reply pipeline: the dispatcher contract channels drive, and the agent-backed implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from qq_gateway.ai.client import AIClient
from qq_gateway.config import AgentConfig
from qq_gateway.core.types import ChatType, ReplyKind
from qq_gateway.log import get_logger
from qq_gateway.qq.models import InboundContext

logger = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 20
RESET_COMMAND = "/reset"
RESET_REPLY = "Session reset. Starting fresh."

SILENT = "silent"


@dataclass(frozen=True, slots=True)
class ReplyPayload:
    text: str = ""
    media_url: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DispatchInfo:
    kind: ReplyKind
    reason: Optional[str] = None  # set for skips; "silent" skips never trigger a fallback


@dataclass(frozen=True, slots=True)
class DispatcherCallbacks:
    deliver: Callable[[ReplyPayload, DispatchInfo], Awaitable[None]]
    on_skip: Callable[[ReplyPayload, DispatchInfo], None]
    on_error: Callable[[Exception, DispatchInfo], None]


class ReplyDispatcher(ABC):
    """Generates replies for one inbound context and hands them to the channel."""

    @abstractmethod
    async def dispatch(self, ctx: InboundContext, callbacks: DispatcherCallbacks) -> None:
        ...


class AgentReplyDispatcher(ReplyDispatcher):
    """Replies with the routed agent's model, keeping per-session history in memory."""

    def __init__(
        self,
        ai_client: AIClient,
        agents: list[AgentConfig],
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        dm_history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self._ai_client = ai_client
        self._agents = {agent.id.strip().lower(): agent for agent in agents}
        self._history_limit = history_limit
        self._dm_history_limit = dm_history_limit
        self._histories: dict[str, list[dict[str, Any]]] = {}

    def history(self, session_key: str) -> list[dict[str, Any]]:
        return list(self._histories.get(session_key, []))

    def reset(self, session_key: str) -> None:
        self._histories.pop(session_key, None)
        logger.info("session_reset", session_key=session_key)

    def _agent(self, agent_id: str) -> AgentConfig:
        return self._agents.get(agent_id) or AgentConfig(id=agent_id)

    def _limit(self, ctx: InboundContext) -> int:
        if ctx.history_limit is not None:
            return ctx.history_limit
        if ctx.chat_type is ChatType.GROUP:
            return self._history_limit
        return self._dm_history_limit

    def _remember(self, ctx: InboundContext, turn: dict[str, Any]) -> None:
        max_messages = self._limit(ctx) * 2
        if max_messages <= 0:
            self._histories.pop(ctx.session_key, None)
            return
        turns = self._histories.setdefault(ctx.session_key, [])
        turns.append(turn)
        if len(turns) > max_messages:
            del turns[: len(turns) - max_messages]
        # the API wants the conversation to open with a user turn
        while turns and turns[0]["role"] != "user":
            turns.pop(0)

    async def dispatch(self, ctx: InboundContext, callbacks: DispatcherCallbacks) -> None:
        final = DispatchInfo(kind=ReplyKind.FINAL)
        text = ctx.body.strip()

        if not text:
            callbacks.on_skip(ReplyPayload(), DispatchInfo(ReplyKind.FINAL, SILENT))
            return

        if text.lower() == RESET_COMMAND:
            self.reset(ctx.session_key)
            await callbacks.deliver(ReplyPayload(text=RESET_REPLY), final)
            return

        agent = self._agent(ctx.agent_id)
        content = f"{ctx.sender_name}: {text}" if ctx.chat_type is ChatType.GROUP else text
        prior = self.history(ctx.session_key) if self._limit(ctx) > 0 else []
        messages = prior + [{"role": "user", "content": content}]
        system = "\n\n".join(p for p in (agent.system_prompt, ctx.extra_system_prompt) if p)

        try:
            response = await self._ai_client.chat(
                system=system,
                messages=messages,
                model=agent.model,
                max_tokens=agent.max_tokens,
                temperature=agent.temperature,
            )
        except Exception as e:
            logger.error("ai_error", agent_id=agent.id, session_key=ctx.session_key, error=str(e))
            callbacks.on_error(e, final)
            callbacks.on_skip(ReplyPayload(), DispatchInfo(ReplyKind.FINAL, "error"))
            return

        if not response.text:
            callbacks.on_skip(ReplyPayload(), DispatchInfo(ReplyKind.FINAL, "empty"))
            return

        self._remember(ctx, {"role": "user", "content": content})
        self._remember(ctx, {"role": "assistant", "content": response.text})
        await callbacks.deliver(ReplyPayload(text=response.text), final)
