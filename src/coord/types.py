"""Canonical conversation types shared by every provider and wrapper.

A ``Content`` is one turn of a conversation: a role plus an ordered list
of segments.  ``Segment`` is a closed union; code that dispatches on it
should handle every member listed in ``SEGMENT_TYPES``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------

class SegmentType(enum.Enum):
    """Tag carried by every segment class."""

    UNKNOWN = "unknown"
    TEXT = "text"
    INLINE_DATA = "inline_data"
    FILE_DATA = "file_data"
    FUNCTION_CALL = "function_call"
    FUNCTION_RESPONSE = "function_response"
    THINKING = "thinking"


@dataclass(frozen=True)
class Text:
    """Plain text."""

    text: str
    type = SegmentType.TEXT

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class InlineData:
    """Binary attachment embedded in the conversation."""

    mime_type: str
    data: bytes
    type = SegmentType.INLINE_DATA


@dataclass(frozen=True)
class FileData:
    """Attachment referenced by URI instead of embedded bytes."""

    mime_type: str
    file_uri: str
    type = SegmentType.FILE_DATA


@dataclass(frozen=True)
class FunctionCall:
    """A tool invocation requested by the model."""

    name: str
    id: str = ""
    args: dict[str, Any] = field(default_factory=dict)
    type = SegmentType.FUNCTION_CALL


@dataclass(frozen=True)
class FunctionResponse:
    """Result of a tool invocation, correlated to a call by ``id``."""

    name: str = ""
    id: str = ""
    content: Any = None
    is_error: bool = False
    type = SegmentType.FUNCTION_RESPONSE


@dataclass(frozen=True)
class ThinkingBlock:
    """Provider reasoning trace.  Opaque; passed through as received."""

    data: str = ""
    signature: str = ""
    redacted: bool = False
    type = SegmentType.THINKING


Segment = Union[Text, InlineData, FileData, FunctionCall, FunctionResponse, ThinkingBlock]

SEGMENT_TYPES: tuple[type, ...] = (
    Text,
    InlineData,
    FileData,
    FunctionCall,
    FunctionResponse,
    ThinkingBlock,
)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class Role(enum.Enum):
    USER = "user"
    MODEL = "model"
    FUNCTION = "function"


@dataclass
class Content:
    """One conversation turn.  Part order is significant."""

    role: Role
    parts: list[Segment] = field(default_factory=list)


class SchemaType(enum.Enum):
    """OpenAPI 3 data types accepted in tool parameter schemas."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


@dataclass
class Schema:
    """Subset of an OpenAPI schema object used for tool parameters."""

    type: SchemaType
    title: str = ""
    description: str = ""
    properties: dict[str, Schema] = field(default_factory=dict)
    items: Schema | None = None
    required: list[str] = field(default_factory=list)
    nullable: bool = False
    format: str = ""
    enum: list[Any] = field(default_factory=list)
    default: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form with empty fields omitted, keys in field order."""
        out: dict[str, Any] = {"type": self.type.value}
        if self.title:
            out["title"] = self.title
        if self.description:
            out["description"] = self.description
        if self.properties:
            out["properties"] = {
                name: prop.to_dict() for name, prop in self.properties.items()
            }
        if self.items is not None:
            out["items"] = self.items.to_dict()
        if self.required:
            out["required"] = list(self.required)
        if self.nullable:
            out["nullable"] = True
        if self.format:
            out["format"] = self.format
        if self.enum:
            out["enum"] = list(self.enum)
        if self.default is not None:
            out["default"] = self.default
        return out


@dataclass
class FunctionDeclaration:
    """A tool the model may call.  ``name`` is unique within a context."""

    name: str
    description: str = ""
    schema: Schema | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "schema": self.schema.to_dict() if self.schema else None,
        }


@dataclass
class ChatContext:
    """Conversation history plus the tools declared for the next turn."""

    contents: list[Content] = field(default_factory=list)
    tools: list[FunctionDeclaration] = field(default_factory=list)
    system_instruction: str = ""


# ---------------------------------------------------------------------------
# Generation results
# ---------------------------------------------------------------------------

class FinishReason(enum.Enum):
    UNKNOWN = "unknown"
    ERROR = "error"
    SAFETY = "safety"
    RECITATION = "recitation"
    STOP = "stop"
    MAX_TOKENS = "max_tokens"
    TOOL_USE = "tool_use"


@dataclass
class UsageData:
    """Token accounting.  Not every provider reports it."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def text_content(role: Role, text: str) -> Content:
    """Build a single-text ``Content``."""
    return Content(role=role, parts=[Text(text)])


def text_from_content(content: Content | None) -> str:
    """Concatenate the text parts of *content*, ignoring everything else."""
    if content is None:
        return ""
    return "".join(p.text for p in content.parts if isinstance(p, Text))
