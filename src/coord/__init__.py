"""coord: provider-agnostic streaming LLM models.

Typical use::

    from coord import build_model, load_config, text_content, Role

    model = build_model(load_config().active_profile)
    stream = model.generate_stream(None, text_content(Role.USER, "hello"))
    async for segment in stream:
        print(segment)
"""

from coord.config import CoordConfig, GenerationConfig, ProfileSpec, load_config
from coord.errors import (
    InvalidRequestError,
    InvalidResponseError,
    LLMError,
    ProviderNotFoundError,
    StreamCancelledError,
    StreamNotFinishedError,
)
from coord.llm import Model, StreamContent, normalize
from coord.registry import ProviderRegistry, build_model, default_registry
from coord.softcall import SoftCallConfig, YAMLSoftCallModel
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
    Schema,
    SchemaType,
    Segment,
    Text,
    ThinkingBlock,
    UsageData,
    text_content,
    text_from_content,
)

__version__ = "0.1.0"

__all__ = [
    "ChatContext",
    "Content",
    "CoordConfig",
    "FileData",
    "FinishReason",
    "FunctionCall",
    "FunctionDeclaration",
    "FunctionResponse",
    "GenerationConfig",
    "InlineData",
    "InvalidRequestError",
    "InvalidResponseError",
    "LLMError",
    "Model",
    "ProfileSpec",
    "ProviderNotFoundError",
    "ProviderRegistry",
    "Role",
    "Schema",
    "SchemaType",
    "Segment",
    "SoftCallConfig",
    "StreamCancelledError",
    "StreamContent",
    "StreamNotFinishedError",
    "Text",
    "ThinkingBlock",
    "UsageData",
    "YAMLSoftCallModel",
    "build_model",
    "default_registry",
    "load_config",
    "normalize",
    "text_content",
    "text_from_content",
]
