"""Base LLM provider interface"""

from abc import ABC, abstractmethod
from typing import List

from callrelay.schemas.llm import LLMMessage, LLMGenerateResponse


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers"""

    name = "base"

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: int = 100,
    ) -> LLMGenerateResponse:
        """Generate a text completion"""
        pass
