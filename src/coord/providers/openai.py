"""OpenAI-compatible chat completions adapter.

Talks to ``POST {url}/chat/completions`` with ``stream: true``, which
covers OpenAI itself as well as LM Studio, Ollama's ``/v1`` endpoint,
vLLM and similar servers.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any

import httpx

from coord.config import GenerationConfig, ProfileSpec
from coord.errors import InvalidRequestError, error_for_type
from coord.llm.assembler import BlockStart, BlockStop, JSONDelta, ResponseAssembler, TextDelta
from coord.llm.callid import openai_call_id
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

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MAX_TOKENS = 2048

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.MAX_TOKENS,
    "tool_calls": FinishReason.TOOL_USE,
    "function_call": FinishReason.TOOL_USE,
    "content_filter": FinishReason.SAFETY,
}

_ROLES = {
    Role.USER: "user",
    Role.MODEL: "assistant",
    Role.FUNCTION: "tool",
}


# ---------------------------------------------------------------------------
# Request conversion
# ---------------------------------------------------------------------------

def _image_part(url: str) -> dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": url}}


def convert_content(content: Content) -> list[dict[str, Any]]:
    """Convert one turn into chat completion messages.

    User and model turns become a single message; every tool result
    becomes its own ``tool`` message.

    Raises
    ------
    InvalidRequestError
        When a segment is not allowed for the turn's role.
    """
    role = _ROLES[content.role]
    messages: list[dict[str, Any]] = []
    parts: list[dict[str, Any]] = []
    tool_calls: list[dict[str, Any]] = []

    for part in content.parts:
        if isinstance(part, Text):
            if part.text:
                parts.append({"type": "text", "text": part.text})
        elif isinstance(part, InlineData):
            if content.role is not Role.USER:
                raise InvalidRequestError("inline data is only allowed in user turns")
            encoded = base64.b64encode(part.data).decode("ascii")
            parts.append(_image_part(f"data:{part.mime_type};base64,{encoded}"))
        elif isinstance(part, FileData):
            if content.role is not Role.USER:
                raise InvalidRequestError("file data is only allowed in user turns")
            parts.append(_image_part(part.file_uri))
        elif isinstance(part, FunctionCall):
            if content.role is not Role.MODEL:
                raise InvalidRequestError("function calls are only allowed in model turns")
            tool_calls.append({
                "id": part.id,
                "type": "function",
                "function": {"name": part.name, "arguments": json.dumps(part.args)},
            })
        elif isinstance(part, FunctionResponse):
            if content.role is not Role.FUNCTION:
                raise InvalidRequestError(
                    "function responses are only allowed in function turns"
                )
            messages.append({
                "role": "tool",
                "tool_call_id": part.id,
                "content": json.dumps(part.content, ensure_ascii=False),
            })
        elif isinstance(part, ThinkingBlock):
            # Chat completions has no field for reasoning replay.
            continue

    if parts or tool_calls:
        msg: dict[str, Any] = {"role": role}
        if all(p["type"] == "text" for p in parts):
            msg["content"] = "".join(p["text"] for p in parts) if parts else None
        else:
            msg["content"] = parts
        if tool_calls:
            msg["tool_calls"] = tool_calls
        messages.insert(0, msg)

    return messages


def convert_tool(tool: FunctionDeclaration) -> dict[str, Any]:
    parameters = tool.schema.to_dict() if tool.schema else {"type": "object", "properties": {}}
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": parameters,
        },
    }


class _ChunkTranslator:
    """Maps chat completion chunks onto assembler block events."""

    def __init__(self) -> None:
        self.assembler = ResponseAssembler()
        self.finish_reason = FinishReason.UNKNOWN
        self.usage: UsageData | None = None
        self._text_block: int | None = None
        self._tool_blocks: dict[int, int] = {}

    def feed(self, chunk: dict[str, Any]) -> list[Segment]:
        err = chunk.get("error")
        if err:
            if isinstance(err, dict):
                raise error_for_type(err.get("type") or "", err.get("message") or "")
            raise error_for_type("", str(err))

        usage = chunk.get("usage")
        if usage:
            self.usage = UsageData(
                input_tokens=usage.get("prompt_tokens", 0) or 0,
                output_tokens=usage.get("completion_tokens", 0) or 0,
                total_tokens=usage.get("total_tokens", 0) or 0,
            )

        choices = chunk.get("choices") or []
        if not choices:
            return []
        choice = choices[0]
        delta = choice.get("delta") or {}
        out: list[Segment] = []

        text = delta.get("content")
        if text:
            if self._text_block is not None and self._text_block == len(self.assembler) - 1:
                out += self.assembler.feed(TextDelta(self._text_block, text))
            else:
                self._text_block = len(self.assembler)
                out += self.assembler.feed(BlockStart(self._text_block, Text(text)))

        for tc in delta.get("tool_calls") or []:
            idx = tc.get("index", 0)
            func = tc.get("function") or {}
            if idx not in self._tool_blocks:
                block = len(self.assembler)
                self._tool_blocks[idx] = block
                call = FunctionCall(
                    name=func.get("name") or "",
                    id=tc.get("id") or openai_call_id(),
                )
                out += self.assembler.feed(BlockStart(block, call))
            if func.get("arguments"):
                out += self.assembler.feed(JSONDelta(self._tool_blocks[idx], func["arguments"]))

        reason = choice.get("finish_reason")
        if reason:
            self.finish_reason = _FINISH_REASONS.get(reason, FinishReason.UNKNOWN)
        return out

    def close(self) -> list[Segment]:
        out: list[Segment] = []
        for index in self.assembler.open_indices():
            out += self.assembler.feed(BlockStop(index))
        return out


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class OpenAIModel:
    """Streaming model backed by an OpenAI-compatible endpoint."""

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

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(
            base_url=base_url or DEFAULT_BASE_URL,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=30, read=60),
        )

    @classmethod
    def from_profile(cls, profile: ProfileSpec) -> OpenAIModel:
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
        """Build the JSON body for a streaming completion."""
        chat = chat or ChatContext()
        messages: list[dict[str, Any]] = []
        for instruction in (chat.system_instruction, self._config.system_instruction):
            if instruction:
                messages.append({"role": "system", "content": instruction})
        for content in [*chat.contents, input]:
            messages.extend(convert_content(content))

        cfg = self._config
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
            "max_tokens": cfg.max_output_tokens or DEFAULT_MAX_TOKENS,
        }
        if chat.tools:
            payload["tools"] = [convert_tool(t) for t in chat.tools]
        if cfg.temperature is not None:
            payload["temperature"] = cfg.temperature
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p
        if cfg.stop_sequences:
            payload["stop"] = list(cfg.stop_sequences)
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
                self._client, "/chat/completions", payload, out, _consume, label="OpenAI",
            )

        return start_stream(_worker, cancel)

    async def _consume(self, resp: httpx.Response, out: StreamWriter) -> None:
        translator = _ChunkTranslator()
        async for data in iter_sse_data(resp):
            chunk = decode_event(data)
            for segment in translator.feed(chunk):
                await out.send(segment)
        for segment in translator.close():
            await out.send(segment)

        out.content = Content(role=Role.MODEL, parts=translator.assembler.finalize())
        out.usage = translator.usage
        out.finish_reason = translator.finish_reason
        _logger.debug(
            "OpenAI stream done: %d part(s), finish=%s",
            len(out.content.parts), out.finish_reason.value,
        )
