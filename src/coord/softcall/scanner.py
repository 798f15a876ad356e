"""Single-pass scanner that turns raw model text into segments.

States:
  PASS_THROUGH  - forwarding ordinary text
  HOLDING       - buffer starts with ``<``; waiting to see whether an
                  opening delimiter follows
  IN_REASONING  - inside ``<reasoning>``, buffering until the close tag
  IN_TOOL_CALL  - inside ``<tool_call>``, buffering until the close tag

Text never crosses a ``<`` before the scanner has decided what the
``<`` starts, so ordinary prose is forwarded with no added delay.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Iterator

from coord.llm.callid import openai_call_id
from coord.types import FunctionCall, Segment, Text, ThinkingBlock

from .prompt import (
    REASONING_CLOSE,
    REASONING_OPEN,
    TOOL_CALL_CLOSE,
    TOOL_CALL_OPEN,
    parse_tool_call,
)

_logger = logging.getLogger(__name__)


class ScanState(enum.Enum):
    PASS_THROUGH = "pass_through"
    HOLDING = "holding"
    IN_REASONING = "in_reasoning"
    IN_TOOL_CALL = "in_tool_call"


_OPENERS: dict[str, ScanState] = {
    REASONING_OPEN: ScanState.IN_REASONING,
    TOOL_CALL_OPEN: ScanState.IN_TOOL_CALL,
}

_CLOSERS: dict[ScanState, tuple[str, str]] = {
    ScanState.IN_REASONING: (REASONING_OPEN, REASONING_CLOSE),
    ScanState.IN_TOOL_CALL: (TOOL_CALL_OPEN, TOOL_CALL_CLOSE),
}


class SoftCallScanner:
    """Incremental parser for the ``<reasoning>`` / ``<tool_call>`` protocol.

    Parameters
    ----------
    preserve_reasoning:
        Emit closed reasoning blocks as :class:`ThinkingBlock` segments
        instead of discarding them.
    new_call_id:
        Id generator for synthesized tool calls.
    """

    def __init__(
        self,
        preserve_reasoning: bool = False,
        new_call_id: Callable[[], str] = openai_call_id,
    ) -> None:
        self.state = ScanState.PASS_THROUGH
        self._preserve_reasoning = preserve_reasoning
        self._new_call_id = new_call_id
        # Unflushed text.  In HOLDING it starts with "<"; in a block state
        # it is the body read so far, without the opening delimiter.
        self._buffer = ""

    def feed(self, chunk: str) -> Iterator[Segment]:
        """Consume *chunk* and yield every segment it completes."""
        self._buffer += chunk

        while True:
            if self.state is ScanState.PASS_THROUGH:
                idx = self._buffer.find("<")
                if idx < 0:
                    if self._buffer:
                        yield Text(self._buffer)
                        self._buffer = ""
                    return
                if idx > 0:
                    yield Text(self._buffer[:idx])
                    self._buffer = self._buffer[idx:]
                self.state = ScanState.HOLDING

            elif self.state is ScanState.HOLDING:
                matched = self._match_opener()
                if matched is None:
                    return
                if matched:
                    self._buffer = self._buffer[len(matched):]
                    self.state = _OPENERS[matched]
                    continue
                # Not a delimiter: the "<" is literal text.  Flush it with
                # the prose that follows, up to the next candidate.
                nxt = self._buffer.find("<", 1)
                end = len(self._buffer) if nxt < 0 else nxt
                yield Text(self._buffer[:end])
                self._buffer = self._buffer[end:]
                self.state = ScanState.PASS_THROUGH

            else:
                _, closer = _CLOSERS[self.state]
                idx = self._buffer.find(closer)
                if idx < 0:
                    return
                body = self._buffer[:idx]
                self._buffer = self._buffer[idx + len(closer):]
                state = self.state
                self.state = ScanState.PASS_THROUGH
                segment = self._close_block(state, body)
                if segment is not None:
                    yield segment

    def finish(self) -> list[Segment]:
        """Flush whatever is still buffered as literal text.

        An unterminated block is returned with its opening delimiter, as
        the model most likely did not mean it as structured output.
        """
        residue = self._buffer
        if self.state in _CLOSERS:
            opener, _ = _CLOSERS[self.state]
            _logger.debug("Stream ended inside %s; flushing as text", opener)
            residue = opener + residue
        self._buffer = ""
        self.state = ScanState.PASS_THROUGH
        return [Text(residue)] if residue else []

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _match_opener(self) -> str | None:
        """Compare the held buffer with the opening delimiters.

        Returns the delimiter on a full match, ``None`` while the buffer
        is still a proper prefix of some delimiter, and ``""`` when it
        can no longer match any.
        """
        pending = False
        for opener in _OPENERS:
            if self._buffer.startswith(opener):
                return opener
            if opener.startswith(self._buffer):
                pending = True
        return None if pending else ""

    def _close_block(self, state: ScanState, body: str) -> Segment | None:
        if state is ScanState.IN_REASONING:
            if self._preserve_reasoning:
                return ThinkingBlock(data=body)
            return None

        parsed = parse_tool_call(body)
        if parsed is None:
            _logger.warning("Could not parse tool call block; passing it through as text")
            return Text(TOOL_CALL_OPEN + body + TOOL_CALL_CLOSE)
        name, parameters = parsed
        return FunctionCall(name=name, id=self._new_call_id(), args=parameters)
