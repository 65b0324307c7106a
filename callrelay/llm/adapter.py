"""Unified LLM adapter interface"""

from typing import Dict, List, Optional, Type
import structlog

from callrelay.schemas.llm import LLMMessage, LLMGenerateResponse
from callrelay.llm.providers.base import BaseLLMProvider
from callrelay.llm.providers.openai import OpenAIProvider
from callrelay.llm.providers.anthropic import AnthropicProvider

logger = structlog.get_logger()

PROVIDERS: Dict[str, Type[BaseLLMProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}


class LLMAdapter:
    """
    Unified LLM adapter that routes to a configured provider.
    Falls back to a second provider when the primary one fails.
    """

    def __init__(
        self,
        provider: str,
        model: str,
        fallback_provider: Optional[str] = None,
        fallback_model: Optional[str] = None,
    ):
        self.provider = provider
        self.model = model
        self.fallback_provider = fallback_provider
        self.fallback_model = fallback_model

    def _get_provider_instance(self, provider: str, model: str) -> BaseLLMProvider:
        """Get the appropriate provider instance"""
        provider_class = PROVIDERS.get(provider)
        if not provider_class:
            raise ValueError(f"Unknown provider: {provider}")

        return provider_class(model=model)

    async def generate(
        self,
        system_prompt: str,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: int = 100,
    ) -> LLMGenerateResponse:
        """
        Generate a response from the LLM.
        Attempts fallback if primary provider fails.
        """
        try:
            provider_instance = self._get_provider_instance(self.provider, self.model)
            return await provider_instance.generate(
                system_prompt=system_prompt,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )

        except Exception as e:
            if not (self.fallback_provider and self.fallback_model):
                raise

            logger.warning(
                "Primary LLM provider failed, attempting fallback",
                provider=self.provider,
                model=self.model,
                error=str(e),
            )

            try:
                fallback_instance = self._get_provider_instance(
                    self.fallback_provider,
                    self.fallback_model,
                )
                return await fallback_instance.generate(
                    system_prompt=system_prompt,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )

            except Exception as fallback_error:
                logger.error(
                    "Fallback LLM provider also failed",
                    fallback_provider=self.fallback_provider,
                    fallback_model=self.fallback_model,
                    error=str(fallback_error),
                )
                raise


def _default_model(provider: Optional[str], settings) -> Optional[str]:
    models = {
        "openai": settings.openai_suggestion_model,
        "anthropic": settings.anthropic_suggestion_model,
    }
    return models.get(provider) if provider else None


def get_llm_adapter(settings) -> LLMAdapter:
    """Factory function to create the suggestion LLM adapter from settings"""
    fallback_provider = settings.suggestion_fallback_provider or None
    return LLMAdapter(
        provider=settings.suggestion_provider,
        model=_default_model(settings.suggestion_provider, settings),
        fallback_provider=fallback_provider,
        fallback_model=_default_model(fallback_provider, settings),
    )
