"""HTTP adapters for vendor chat APIs."""

from coord.providers.anthropic import AnthropicModel
from coord.providers.openai import OpenAIModel

__all__ = ["AnthropicModel", "OpenAIModel"]
