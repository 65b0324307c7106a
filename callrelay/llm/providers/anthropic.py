"""Anthropic Claude LLM provider"""

from typing import List
from anthropic import AsyncAnthropic
import structlog

from callrelay.config import settings
from callrelay.schemas.llm import LLMMessage, LLMGenerateResponse, UsageStats
from callrelay.llm.providers.base import BaseLLMProvider

logger = structlog.get_logger()


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude provider"""

    name = "anthropic"

    def __init__(self, model: str = "claude-3-5-haiku-latest", client: AsyncAnthropic = None):
        super().__init__(model)
        self.client = client or AsyncAnthropic(api_key=settings.anthropic_api_key)

    async def generate(
        self,
        system_prompt: str,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: int = 100,
    ) -> LLMGenerateResponse:
        """Generate response using Anthropic API"""

        # Anthropic takes the system prompt separately and needs alternating roles
        processed_messages = []
        last_role = None
        for msg in messages:
            role = msg.role if msg.role != "system" else "user"
            if role == last_role:
                processed_messages[-1]["content"] += "\n" + msg.content
            else:
                processed_messages.append({"role": role, "content": msg.content})
                last_role = role

        if not processed_messages:
            processed_messages = [{"role": "user", "content": "Suggest the agent's next reply."}]

        logger.debug(
            "Anthropic request",
            model=self.model,
            message_count=len(processed_messages),
        )

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=processed_messages,
        )

        content = "".join(
            block.text for block in response.content if block.type == "text"
        )
        result = LLMGenerateResponse(
            content=content or None,
            provider=self.name,
            model=self.model,
            usage=UsageStats(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            ),
        )

        logger.debug(
            "Anthropic response",
            content_length=len(result.content) if result.content else 0,
        )

        return result
