"""Incremental assembly of a response from indexed block events.

Vendors that stream content as numbered blocks (start / delta / stop)
all share the same reassembly rules:

- a block start must carry the next index in sequence,
- deltas and stops must name an existing, still-open block,
- text deltas are forwarded to the caller as soon as they arrive,
- tool-call arguments arrive as JSON fragments and are only decoded,
  and only forwarded, when their block stops.

Each adapter translates its wire events into the event types below and
feeds them to a :class:`ResponseAssembler`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Union

from coord.errors import InvalidResponseError, ResponseDecodeError
from coord.llm.normalize import normalize
from coord.types import FunctionCall, Segment, SegmentType, Text, ThinkingBlock

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BlockStart:
    index: int
    segment: Segment


@dataclass(frozen=True)
class TextDelta:
    index: int
    text: str


@dataclass(frozen=True)
class JSONDelta:
    """Fragment of a tool call's JSON argument object."""

    index: int
    partial_json: str


@dataclass(frozen=True)
class ThinkingDelta:
    index: int
    thinking: str


@dataclass(frozen=True)
class SignatureDelta:
    index: int
    signature: str


@dataclass(frozen=True)
class BlockStop:
    index: int


BlockEvent = Union[BlockStart, TextDelta, JSONDelta, ThinkingDelta, SignatureDelta, BlockStop]


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------

@dataclass
class _Block:
    segment: Segment
    text: str = ""
    raw_json: list[str] = field(default_factory=list)
    args: dict[str, Any] = field(default_factory=dict)
    thinking: str = ""
    signature: str = ""
    stopped: bool = False

    @classmethod
    def start(cls, segment: Segment) -> _Block:
        block = cls(segment=segment)
        if isinstance(segment, Text):
            block.text = segment.text
        elif isinstance(segment, FunctionCall):
            block.args = dict(segment.args)
        elif isinstance(segment, ThinkingBlock):
            block.thinking = segment.data
            block.signature = segment.signature
        return block

    @property
    def kind(self) -> SegmentType:
        return self.segment.type

    def to_segment(self) -> Segment:
        if isinstance(self.segment, Text):
            return Text(self.text)
        if isinstance(self.segment, FunctionCall):
            return replace(self.segment, args=self.args)
        if isinstance(self.segment, ThinkingBlock):
            return replace(self.segment, data=self.thinking, signature=self.signature)
        return self.segment


class ResponseAssembler:
    """Folds block events into canonical segments.

    :meth:`feed` returns the segments that should be forwarded to the
    live stream right away; :meth:`finalize` returns the complete,
    normalized part list.
    """

    def __init__(self) -> None:
        self._blocks: list[_Block] = []

    def __len__(self) -> int:
        return len(self._blocks)

    def feed(self, event: BlockEvent) -> list[Segment]:
        if isinstance(event, BlockStart):
            return self._start(event)

        block = self._block(event.index)

        if isinstance(event, TextDelta):
            self._expect(block, event, SegmentType.TEXT)
            if not event.text:
                return []
            block.text += event.text
            return [Text(event.text)]

        if isinstance(event, JSONDelta):
            self._expect(block, event, SegmentType.FUNCTION_CALL)
            if event.partial_json:
                block.raw_json.append(event.partial_json)
            return []

        if isinstance(event, ThinkingDelta):
            self._expect(block, event, SegmentType.THINKING)
            block.thinking += event.thinking
            return []

        if isinstance(event, SignatureDelta):
            self._expect(block, event, SegmentType.THINKING)
            block.signature += event.signature
            return []

        if isinstance(event, BlockStop):
            return self._stop(event.index, block)

        raise TypeError(f"unsupported block event: {event!r}")

    def open_indices(self) -> list[int]:
        """Indices of blocks that have started but not stopped."""
        return [i for i, b in enumerate(self._blocks) if not b.stopped]

    def finalize(self) -> list[Segment]:
        return normalize([b.to_segment() for b in self._blocks])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start(self, event: BlockStart) -> list[Segment]:
        if event.index != len(self._blocks):
            raise InvalidResponseError(
                f"block start index {event.index} out of sequence "
                f"(expected {len(self._blocks)})"
            )
        block = _Block.start(event.segment)
        self._blocks.append(block)
        if isinstance(event.segment, Text) and event.segment.text:
            return [event.segment]
        return []

    def _block(self, index: int) -> _Block:
        if index < 0 or index >= len(self._blocks):
            raise InvalidResponseError(
                f"block index {index} does not name a started block "
                f"({len(self._blocks)} started)"
            )
        block = self._blocks[index]
        if block.stopped:
            raise InvalidResponseError(f"block {index} received an event after it stopped")
        return block

    @staticmethod
    def _expect(block: _Block, event: BlockEvent, kind: SegmentType) -> None:
        if block.kind is not kind:
            raise InvalidResponseError(
                f"{type(event).__name__} sent to a {block.kind.value} block "
                f"at index {event.index}"
            )

    def _stop(self, index: int, block: _Block) -> list[Segment]:
        block.stopped = True

        if block.kind is SegmentType.FUNCTION_CALL:
            raw = "".join(block.raw_json)
            if raw.strip():
                try:
                    args = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise ResponseDecodeError(
                        f"tool call arguments at block {index} are not valid JSON: {e}"
                    ) from e
                if not isinstance(args, dict):
                    raise ResponseDecodeError(
                        f"tool call arguments at block {index} are not a JSON object"
                    )
                block.args = args
            _logger.debug("Tool call block %d complete: %s", index, block.segment)
            return [block.to_segment()]

        if block.kind is SegmentType.THINKING:
            return [block.to_segment()]

        return []
