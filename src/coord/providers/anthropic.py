"""Anthropic Messages API adapter.

Streams ``POST {url}/messages`` and feeds the ``content_block_*``
events straight into a :class:`~coord.llm.assembler.ResponseAssembler`,
whose block model they already follow.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any

import httpx

from coord.config import GenerationConfig, ProfileSpec
from coord.errors import InvalidRequestError, InvalidResponseError, error_for_type
from coord.llm.assembler import (
    BlockEvent,
    BlockStart,
    BlockStop,
    JSONDelta,
    ResponseAssembler,
    SignatureDelta,
    TextDelta,
    ThinkingDelta,
)
from coord.llm.callid import anthropic_call_id
from coord.llm.stream import StreamContent, StreamWriter, closed_stream, start_stream
from coord.types import (
    ChatContext,
    Content,
    FileData,
    FinishReason,
    FunctionCall,
    FunctionDeclaration,
    FunctionResponse,
    InlineData,
    Role,
    Segment,
    Text,
    ThinkingBlock,
    UsageData,
)

from .transport import decode_event, iter_sse_data, post_stream

_logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 2048

_FINISH_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.MAX_TOKENS,
    "tool_use": FinishReason.TOOL_USE,
    "refusal": FinishReason.SAFETY,
}


# ---------------------------------------------------------------------------
# Request conversion
# ---------------------------------------------------------------------------

def _convert_part(part: Segment, role: Role) -> dict[str, Any] | None:
    if isinstance(part, Text):
        # The API rejects empty text blocks.
        return {"type": "text", "text": part.text} if part.text else None
    if isinstance(part, InlineData):
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": part.mime_type,
                "data": base64.b64encode(part.data).decode("ascii"),
            },
        }
    if isinstance(part, FileData):
        return {"type": "image", "source": {"type": "url", "url": part.file_uri}}
    if isinstance(part, FunctionCall):
        if role is not Role.MODEL:
            raise InvalidRequestError("function calls are only allowed in model turns")
        return {"type": "tool_use", "id": part.id, "name": part.name, "input": part.args}
    if isinstance(part, FunctionResponse):
        if role is not Role.FUNCTION:
            raise InvalidRequestError("function responses are only allowed in function turns")
        return {
            "type": "tool_result",
            "tool_use_id": part.id,
            "content": [
                {"type": "text", "text": json.dumps(part.content, ensure_ascii=False)},
            ],
            "is_error": part.is_error,
        }
    if isinstance(part, ThinkingBlock):
        if part.redacted:
            return {"type": "redacted_thinking", "data": part.data}
        return {"type": "thinking", "thinking": part.data, "signature": part.signature}
    raise InvalidRequestError(f"unsupported segment: {part!r}")


def convert_content(content: Content) -> dict[str, Any] | None:
    """Convert one turn into a Messages API message.

    Tool results travel in ``user`` messages.  Returns ``None`` when the
    turn has nothing the API accepts.
    """
    role = "assistant" if content.role is Role.MODEL else "user"
    blocks = [b for b in (_convert_part(p, content.role) for p in content.parts) if b]
    if not blocks:
        return None
    return {"role": role, "content": blocks}


def convert_tool(tool: FunctionDeclaration) -> dict[str, Any]:
    schema = tool.schema.to_dict() if tool.schema else {"type": "object", "properties": {}}
    return {"name": tool.name, "description": tool.description, "input_schema": schema}


# ---------------------------------------------------------------------------
# Response translation
# ---------------------------------------------------------------------------

def _start_segment(block: dict[str, Any]) -> Segment:
    kind = block.get("type")
    if kind == "text":
        return Text(block.get("text") or "")
    if kind == "tool_use":
        return FunctionCall(
            name=block.get("name") or "",
            id=block.get("id") or anthropic_call_id(),
            args=block.get("input") or {},
        )
    if kind == "thinking":
        return ThinkingBlock(
            data=block.get("thinking") or "",
            signature=block.get("signature") or "",
        )
    if kind == "redacted_thinking":
        return ThinkingBlock(data=block.get("data") or "", redacted=True)
    raise InvalidResponseError(f"unsupported content block type: {kind!r}")


def _delta_event(index: int, delta: dict[str, Any]) -> BlockEvent | None:
    kind = delta.get("type")
    if kind == "text_delta":
        return TextDelta(index, delta.get("text") or "")
    if kind == "input_json_delta":
        return JSONDelta(index, delta.get("partial_json") or "")
    if kind == "thinking_delta":
        return ThinkingDelta(index, delta.get("thinking") or "")
    if kind == "signature_delta":
        return SignatureDelta(index, delta.get("signature") or "")
    _logger.debug("Ignoring %s delta at block %d", kind, index)
    return None


class _EventTranslator:
    """Tracks message-level state across one streamed response."""

    def __init__(self) -> None:
        self.assembler = ResponseAssembler()
        self.finish_reason = FinishReason.UNKNOWN
        self.usage: UsageData | None = None
        self.done = False

    def _update_usage(self, usage: dict[str, Any] | None) -> None:
        if not usage:
            return
        if self.usage is None:
            self.usage = UsageData()
        # Counts in message_delta are cumulative.
        if usage.get("input_tokens") is not None:
            self.usage.input_tokens = usage["input_tokens"]
        if usage.get("output_tokens") is not None:
            self.usage.output_tokens = usage["output_tokens"]
        self.usage.total_tokens = self.usage.input_tokens + self.usage.output_tokens

    def feed(self, event: dict[str, Any]) -> list[Segment]:
        kind = event.get("type")

        if kind == "content_block_start":
            return self.assembler.feed(
                BlockStart(event.get("index", 0), _start_segment(event.get("content_block") or {}))
            )
        if kind == "content_block_delta":
            block_event = _delta_event(event.get("index", 0), event.get("delta") or {})
            return self.assembler.feed(block_event) if block_event else []
        if kind == "content_block_stop":
            return self.assembler.feed(BlockStop(event.get("index", 0)))

        if kind == "message_start":
            self._update_usage((event.get("message") or {}).get("usage"))
        elif kind == "message_delta":
            reason = (event.get("delta") or {}).get("stop_reason")
            if reason:
                self.finish_reason = _FINISH_REASONS.get(reason, FinishReason.UNKNOWN)
            self._update_usage(event.get("usage"))
        elif kind == "message_stop":
            self.done = True
        elif kind == "error":
            err = event.get("error") or {}
            raise error_for_type(err.get("type") or "", err.get("message") or "")
        elif kind != "ping":
            _logger.debug("Ignoring stream event %r", kind)
        return []


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class AnthropicModel:
    """Streaming model backed by the Anthropic Messages API."""

    def __init__(
        self,
        model: str,
        api_key: str = "",
        base_url: str = DEFAULT_BASE_URL,
        config: GenerationConfig | None = None,
        timeout: float = 120,
        extra_params: dict[str, Any] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._model = model
        self._config = config or GenerationConfig()
        self._extra_params = extra_params or {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url or DEFAULT_BASE_URL,
            headers={
                "x-api-key": api_key,
                "anthropic-version": API_VERSION,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout, connect=30, read=60),
        )

    @classmethod
    def from_profile(cls, profile: ProfileSpec) -> AnthropicModel:
        return cls(
            model=profile.model,
            api_key=profile.resolved_api_key(),
            base_url=profile.url or DEFAULT_BASE_URL,
            config=profile.generation,
            timeout=profile.timeout,
            extra_params=profile.extra_params,
        )

    def name(self) -> str:
        return self._model

    async def close(self) -> None:
        await self._client.aclose()

    def build_request(self, chat: ChatContext | None, input: Content) -> dict[str, Any]:
        """Build the JSON body for a streaming Messages call."""
        chat = chat or ChatContext()
        messages = [
            m for m in (convert_content(c) for c in [*chat.contents, input]) if m
        ]

        cfg = self._config
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": cfg.max_output_tokens or DEFAULT_MAX_TOKENS,
            "stream": True,
        }
        system = "\n\n".join(
            s for s in (cfg.system_instruction, chat.system_instruction) if s
        )
        if system:
            payload["system"] = system
        if chat.tools:
            payload["tools"] = [convert_tool(t) for t in chat.tools]
        if cfg.temperature is not None:
            payload["temperature"] = cfg.temperature
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p
        if cfg.top_k is not None:
            payload["top_k"] = cfg.top_k
        if cfg.stop_sequences:
            payload["stop_sequences"] = list(cfg.stop_sequences)
        if cfg.thinking_budget:
            payload["thinking"] = {"type": "enabled", "budget_tokens": cfg.thinking_budget}
        if self._extra_params:
            payload.update(self._extra_params)
        return payload

    def generate_stream(
        self,
        chat: ChatContext | None,
        input: Content,
        *,
        cancel: asyncio.Event | None = None,
    ) -> StreamContent:
        try:
            payload = self.build_request(chat, input)
        except InvalidRequestError as e:
            return closed_stream(e)

        async def _worker(out: StreamWriter) -> None:
            async def _consume(resp: httpx.Response) -> None:
                await self._consume(resp, out)

            await post_stream(
                self._client, "/messages", payload, out, _consume, label="Anthropic",
            )

        return start_stream(_worker, cancel)

    async def _consume(self, resp: httpx.Response, out: StreamWriter) -> None:
        translator = _EventTranslator()
        async for data in iter_sse_data(resp):
            for segment in translator.feed(decode_event(data)):
                await out.send(segment)
            if translator.done:
                break

        unfinished = translator.assembler.open_indices()
        if unfinished:
            raise InvalidResponseError(f"stream ended with open content blocks {unfinished}")

        out.content = Content(role=Role.MODEL, parts=translator.assembler.finalize())
        out.usage = translator.usage
        out.finish_reason = translator.finish_reason
        _logger.debug(
            "Anthropic stream done: %d part(s), finish=%s",
            len(out.content.parts), out.finish_reason.value,
        )
