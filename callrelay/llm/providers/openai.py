"""OpenAI LLM provider"""

from typing import List
from openai import AsyncOpenAI
import structlog

from callrelay.config import settings
from callrelay.schemas.llm import LLMMessage, LLMGenerateResponse, UsageStats
from callrelay.llm.providers.base import BaseLLMProvider

logger = structlog.get_logger()


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completions provider"""

    name = "openai"

    def __init__(self, model: str = "gpt-4o-mini", client: AsyncOpenAI = None):
        super().__init__(model)
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    async def generate(
        self,
        system_prompt: str,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: int = 100,
    ) -> LLMGenerateResponse:
        """Generate response using OpenAI API"""

        openai_messages = [
            {"role": "system", "content": system_prompt}
        ]
        for msg in messages:
            openai_messages.append({
                "role": msg.role,
                "content": msg.content,
            })

        logger.debug(
            "OpenAI request",
            model=self.model,
            message_count=len(openai_messages),
        )

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=openai_messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        result = LLMGenerateResponse(
            content=response.choices[0].message.content,
            provider=self.name,
            model=self.model,
            usage=UsageStats(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            ) if response.usage else None,
        )

        logger.debug(
            "OpenAI response",
            content_length=len(result.content) if result.content else 0,
        )

        return result
