"""Reasoning service interface and OpenAI-compatible implementation.

The turn orchestrator treats the reasoning service as an opaque streaming
function: it sends the system context, the conversation so far and the tool
definitions, and receives text fragments, complete tool calls, and a final
RoundComplete event carrying usage metadata.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Union

from openai import AsyncOpenAI, OpenAIError

from dojo.core.errors import ReasoningServiceError

logger = logging.getLogger(__name__)


# =============================================================================
# Stream Events
# =============================================================================


@dataclass
class TextDelta:
    """A fragment of assistant text."""

    text: str


@dataclass
class ToolCall:
    """A complete structured tool invocation."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None  # Set when the arguments could not be decoded


@dataclass
class RoundComplete:
    """End of one reasoning round."""

    usage: dict[str, int] = field(default_factory=dict)
    stop_reason: Optional[str] = None


ReasoningEvent = Union[TextDelta, ToolCall, RoundComplete]


@dataclass
class ReasoningRequest:
    """Everything the reasoning service needs for one round."""

    system_context: str
    conversation: list[dict[str, Any]]
    tools: list[dict[str, Any]]
    max_output_tokens: int = 4096


class ReasoningService(ABC):
    """Streaming reasoning backend."""

    @abstractmethod
    def stream(self, request: ReasoningRequest) -> AsyncIterator[ReasoningEvent]:
        """Stream one round of output.

        Raises:
            ReasoningServiceError: If the backend fails mid-stream
        """


# =============================================================================
# Conversation helpers
# =============================================================================


def assistant_tool_message(text: str, calls: list[ToolCall]) -> dict[str, Any]:
    """Assistant message that carries the tool calls of a round."""
    return {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in calls
        ],
    }


def tool_result_message(call: ToolCall, content: str) -> dict[str, Any]:
    """Tool message feeding a result back to the model."""
    return {"role": "tool", "tool_call_id": call.id, "content": content}


def _parse_arguments(raw: str) -> tuple[dict[str, Any], Optional[str]]:
    """Decode streamed tool arguments."""
    if not raw.strip():
        return {}, None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        return {}, f"Invalid JSON arguments: {e}"
    if not isinstance(value, dict):
        return {}, "Tool arguments must be a JSON object"
    return value, None


# =============================================================================
# OpenAI-compatible implementation
# =============================================================================


class OpenAIReasoningService(ReasoningService):
    """Reasoning service backed by an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
    ):
        """Initialize the service.

        Args:
            client: Async OpenAI-compatible client
            model: Model name to request
            temperature: Sampling temperature
        """
        self.client = client
        self.model = model
        self.temperature = temperature

    async def stream(self, request: ReasoningRequest) -> AsyncIterator[ReasoningEvent]:
        messages = [{"role": "system", "content": request.system_context}, *request.conversation]
        kwargs: dict[str, Any] = {}
        if request.tools:
            kwargs["tools"] = request.tools

        # Tool-call fragments arrive split across chunks, keyed by index
        pending: dict[int, dict[str, str]] = {}
        usage: dict[str, int] = {}
        stop_reason: Optional[str] = None

        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=request.max_output_tokens,
                stream=True,
                stream_options={"include_usage": True},
                **kwargs,
            )

            async for chunk in stream:
                if chunk.usage:
                    usage = {
                        "prompt_tokens": chunk.usage.prompt_tokens,
                        "completion_tokens": chunk.usage.completion_tokens,
                        "total_tokens": chunk.usage.total_tokens,
                    }
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta
                if delta.content:
                    yield TextDelta(text=delta.content)

                for fragment in delta.tool_calls or []:
                    slot = pending.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                    if fragment.id:
                        slot["id"] = fragment.id
                    if fragment.function:
                        if fragment.function.name:
                            slot["name"] += fragment.function.name
                        if fragment.function.arguments:
                            slot["arguments"] += fragment.function.arguments

                if choice.finish_reason:
                    stop_reason = choice.finish_reason

        except OpenAIError as e:
            logger.error(f"Reasoning stream failed: {e}")
            raise ReasoningServiceError(str(e)) from e

        for index in sorted(pending):
            slot = pending[index]
            arguments, error = _parse_arguments(slot["arguments"])
            yield ToolCall(
                id=slot["id"] or f"call_{index}",
                name=slot["name"],
                arguments=arguments,
                error=error,
            )

        yield RoundComplete(usage=usage, stop_reason=stop_reason)
