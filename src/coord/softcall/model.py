"""Tool calling for upstream models that only produce text.

:class:`YAMLSoftCallModel` wraps any :class:`~coord.llm.base.Model`.  When
the caller declares tools, the conversation is rewritten into the
plain-text protocol from :mod:`coord.softcall.prompt` and the upstream's
text stream is parsed back into canonical segments by a
:class:`~coord.softcall.scanner.SoftCallScanner`.  Without tools the call
goes straight to the upstream.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from coord.llm.base import Model
from coord.llm.callid import openai_call_id
from coord.llm.normalize import drop_blank_texts, normalize
from coord.llm.stream import StreamContent, StreamWriter, start_stream
from coord.types import ChatContext, Content, FinishReason, FunctionCall, Role, Text

from .prompt import convert_to_yaml_content, few_shot_dialogue, render_tool_declarations
from .scanner import SoftCallScanner

_logger = logging.getLogger(__name__)


@dataclass
class SoftCallConfig:
    """Emulator options.

    ``preserve_reasoning`` keeps ``<reasoning>`` blocks as thinking
    segments instead of discarding them.
    """

    preserve_reasoning: bool = False


class YAMLSoftCallModel:
    """Adds tool calling to *upstream* through a YAML-in-tags text protocol."""

    def __init__(
        self,
        upstream: Model,
        config: SoftCallConfig | None = None,
        new_call_id: Callable[[], str] = openai_call_id,
    ) -> None:
        self._upstream = upstream
        self._config = config or SoftCallConfig()
        self._new_call_id = new_call_id

    @property
    def config(self) -> SoftCallConfig:
        return self._config

    def name(self) -> str:
        return self._upstream.name()

    async def close(self) -> None:
        await self._upstream.close()

    # ------------------------------------------------------------------
    # Request side
    # ------------------------------------------------------------------

    def rewrite_request(
        self, chat: ChatContext, input: Content,
    ) -> tuple[ChatContext, Content]:
        """Return the tool-free context and input sent to the upstream."""
        tools_block = render_tool_declarations(chat.tools)

        contents = few_shot_dialogue(tools_block)
        for content in chat.contents:
            converted = convert_to_yaml_content(content)
            contents.append(Content(role=converted.role, parts=normalize(converted.parts)))

        rewritten = ChatContext(
            contents=contents,
            system_instruction=chat.system_instruction,
        )
        return rewritten, convert_to_yaml_content(input)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_stream(
        self,
        chat: ChatContext | None,
        input: Content,
        *,
        cancel: asyncio.Event | None = None,
    ) -> StreamContent:
        if chat is None or not chat.tools:
            return self._upstream.generate_stream(chat, input, cancel=cancel)

        upstream_chat, upstream_input = self.rewrite_request(chat, input)
        _logger.debug(
            "Emulating %d tool(s) for %s over %d message(s)",
            len(chat.tools), self.name(), len(upstream_chat.contents),
        )

        async def _worker(out: StreamWriter) -> None:
            out.content = Content(role=Role.MODEL)
            try:
                await self._relay(out, upstream_chat, upstream_input, cancel)
            finally:
                self._finalize(out)

        return start_stream(_worker, cancel)

    async def _relay(
        self,
        out: StreamWriter,
        chat: ChatContext,
        input: Content,
        cancel: asyncio.Event | None,
    ) -> None:
        scanner = SoftCallScanner(
            preserve_reasoning=self._config.preserve_reasoning,
            new_call_id=self._new_call_id,
        )
        upstream = self._upstream.generate_stream(chat, input, cancel=cancel)
        try:
            async for segment in upstream:
                if not isinstance(segment, Text):
                    _logger.debug("Ignoring upstream %s segment", segment.type.value)
                    continue
                for produced in scanner.feed(segment.text):
                    out.content.parts.append(produced)
                    await out.send(produced)
        finally:
            await upstream.aclose()

        for produced in scanner.finish():
            out.content.parts.append(produced)
            await out.send(produced)

        out.error = upstream.error
        out.usage = upstream.usage
        out.finish_reason = upstream.finish_reason

    @staticmethod
    def _finalize(out: StreamWriter) -> None:
        parts = normalize(out.content.parts)
        if out.finish_reason is FinishReason.STOP and any(
            isinstance(p, FunctionCall) for p in parts
        ):
            out.finish_reason = FinishReason.TOOL_USE
        out.content.parts = drop_blank_texts(parts)
