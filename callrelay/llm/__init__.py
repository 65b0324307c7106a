"""LLM adapter module"""

from callrelay.llm.adapter import LLMAdapter, get_llm_adapter
from callrelay.llm.suggestions import SuggestionGenerator

__all__ = ["LLMAdapter", "get_llm_adapter", "SuggestionGenerator"]
