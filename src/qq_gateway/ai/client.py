"""Model backends the reply dispatcher talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from qq_gateway.config import AnthropicConfig
from qq_gateway.log import get_logger

logger = get_logger(__name__)


@dataclass
class AIResponse:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str | None = None


class AIClient(ABC):
    """One chat completion per call; history is managed by the caller."""

    @abstractmethod
    async def chat(
        self,
        system: str,
        messages: list[dict[str, Any]],
        model: str = "",
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AIResponse:
        ...


class AnthropicClient(AIClient):
    """Anthropic Messages API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig, client: Any = None):
        if client is None:
            import anthropic

            client = anthropic.AsyncAnthropic(
                api_key=config.api_key,
                base_url=config.base_url,
                max_retries=config.max_retries,
                timeout=config.timeout,
            )
        self._client = client

    async def chat(
        self,
        system: str,
        messages: list[dict[str, Any]],
        model: str = "",
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AIResponse:
        request: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": messages,
            "temperature": temperature,
        }
        if system:
            request["system"] = system

        logger.debug("ai_request", model=model, message_count=len(messages))
        response = await self._client.messages.create(**request)

        usage = response.usage
        logger.debug(
            "ai_response",
            model=model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        # Only text blocks become the reply; anything else (e.g. thinking) is dropped.
        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        return AIResponse(
            text=text.strip(),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            stop_reason=response.stop_reason,
        )
