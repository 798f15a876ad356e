"""Generation contract, streaming and response assembly."""

from coord.llm.assembler import (
    BlockStart,
    BlockStop,
    JSONDelta,
    ResponseAssembler,
    SignatureDelta,
    TextDelta,
    ThinkingDelta,
)
from coord.llm.base import Model
from coord.llm.callid import anthropic_call_id, openai_call_id
from coord.llm.normalize import merge_texts, normalize
from coord.llm.stream import STREAM_BUFFER_SIZE, StreamContent, StreamWriter, start_stream

__all__ = [
    "BlockStart",
    "BlockStop",
    "JSONDelta",
    "Model",
    "ResponseAssembler",
    "STREAM_BUFFER_SIZE",
    "SignatureDelta",
    "StreamContent",
    "StreamWriter",
    "TextDelta",
    "ThinkingDelta",
    "anthropic_call_id",
    "merge_texts",
    "normalize",
    "openai_call_id",
    "start_stream",
]
