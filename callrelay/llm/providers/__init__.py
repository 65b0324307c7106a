"""LLM provider implementations"""

from callrelay.llm.providers.base import BaseLLMProvider
from callrelay.llm.providers.openai import OpenAIProvider
from callrelay.llm.providers.anthropic import AnthropicProvider

__all__ = [
    "BaseLLMProvider",
    "OpenAIProvider",
    "AnthropicProvider",
]
