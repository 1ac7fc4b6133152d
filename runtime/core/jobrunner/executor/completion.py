"""Completion service abstraction.

The executor only needs one operation from a language model backend: given a
system prompt, tool specs and the transcript so far, return the next assistant
turn. `AnthropicCompletionService` implements it on the Anthropic Messages
API; tests substitute a scripted fake.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence, Union

import anthropic

from jobrunner.config.settings import ExecutorConfig
from jobrunner.errors import CompletionServiceError
from jobrunner.tools.catalog import ToolSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    input: dict[str, Any]


Block = Union[TextBlock, ToolCall]


@dataclass(frozen=True)
class CompletionTurn:
    blocks: tuple[Block, ...]
    stop_reason: str | None = None

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if isinstance(b, TextBlock) and b.text)

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [b for b in self.blocks if isinstance(b, ToolCall)]

    @property
    def is_terminal(self) -> bool:
        return not self.tool_calls

    def to_message(self) -> dict[str, Any]:
        content: list[dict[str, Any]] = []
        for b in self.blocks:
            if isinstance(b, TextBlock):
                content.append({"type": "text", "text": b.text})
            else:
                content.append({"type": "tool_use", "id": b.id, "name": b.name, "input": b.input})
        return {"role": "assistant", "content": content}


class CompletionService(ABC):
    @abstractmethod
    async def converse(self, *, system: str, tools: Sequence[ToolSpec], messages: list[dict[str, Any]]) -> CompletionTurn:
        """Return the next assistant turn for the transcript."""


def _turn_from_response(response: Any) -> CompletionTurn:
    blocks: list[Block] = []
    for block in response.content:
        if block.type == "text":
            blocks.append(TextBlock(text=block.text))
        elif block.type == "tool_use":
            args = block.input if isinstance(block.input, dict) else {}
            blocks.append(ToolCall(id=block.id, name=block.name, input=dict(args)))
    return CompletionTurn(blocks=tuple(blocks), stop_reason=response.stop_reason)


class AnthropicCompletionService(CompletionService):
    def __init__(self, *, api_key: str, model: str, max_tokens: int, client: anthropic.AsyncAnthropic | None = None):
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens

    async def converse(self, *, system: str, tools: Sequence[ToolSpec], messages: list[dict[str, Any]]) -> CompletionTurn:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system,
            "messages": messages,
        }
        if tools:
            kwargs["tools"] = [t.to_api() for t in tools]
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise CompletionServiceError(f"Completion request failed: {e}") from e
        return _turn_from_response(response)


def completion_service_from_env(config: ExecutorConfig) -> CompletionService | None:
    """Anthropic-backed service when the credential is present, else None (simulation mode)."""
    api_key = config.api_key()
    if api_key is None:
        logger.info("simulation_mode_enabled: %s is not set", config.api_key_env, extra={"event": "simulation_mode_enabled"})
        return None
    return AnthropicCompletionService(api_key=api_key, model=config.model, max_tokens=config.max_tokens)
