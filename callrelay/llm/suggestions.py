"""Agent reply suggestions generated from the live conversation"""

from typing import List
from uuid import UUID

import structlog

from callrelay.llm.adapter import LLMAdapter, get_llm_adapter
from callrelay.schemas.llm import LLMMessage

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are an AI assistant helping customer service agents resolve customer issues. Based on the customer's message and the conversation history, provide a helpful, concise suggestion for how the agent should respond.

Keep suggestions under 50 words and focus on being helpful, professional, and specific to the customer's issue."""


def build_prompt(transcripts: List, customer_message: str) -> str:
    """Conversation context followed by the message the agent must answer"""
    conversation = "\n".join(f"{t.role}: {t.text}" for t in transcripts)
    return (
        f"Recent Conversation:\n{conversation or '(no earlier conversation)'}\n\n"
        f"Latest Customer Message: {customer_message}\n\n"
        "Provide a brief, actionable suggestion for the agent based on the available information:"
    )


class SuggestionGenerator:
    """Produces advisory text for the agent from a call's recent transcripts"""

    def __init__(
        self,
        store,
        adapter: LLMAdapter,
        history_size: int = 10,
        max_tokens: int = 100,
        temperature: float = 0.7,
    ):
        self.store = store
        self.adapter = adapter
        self.history_size = history_size
        self.max_tokens = max_tokens
        self.temperature = temperature

    @classmethod
    def from_settings(cls, store, settings) -> "SuggestionGenerator":
        return cls(
            store,
            get_llm_adapter(settings),
            history_size=settings.suggestion_history_size,
            max_tokens=settings.suggestion_max_tokens,
            temperature=settings.suggestion_temperature,
        )

    async def generate(self, call_id: UUID, customer_message: str) -> str:
        """Return suggestion text; raises ValueError when the model returns nothing"""
        if not customer_message or not customer_message.strip():
            raise ValueError("customer_message is required")

        transcripts = await self.store.recent_transcripts(call_id, limit=self.history_size)
        response = await self.adapter.generate(
            system_prompt=SYSTEM_PROMPT,
            messages=[LLMMessage(role="user", content=build_prompt(transcripts, customer_message))],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        suggestion = (response.content or "").strip()
        if not suggestion:
            raise ValueError("LLM returned an empty suggestion")

        logger.info(
            "Suggestion generated",
            call_id=str(call_id),
            provider=response.provider,
            model=response.model,
            length=len(suggestion),
        )
        return suggestion
