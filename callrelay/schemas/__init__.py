"""Pydantic schemas for request/response validation"""

from callrelay.schemas.call import (
    CallListResponse,
    CallResponse,
    TranscriptResponse,
    TranscriptListResponse,
    SuggestionResponse,
    SuggestionListResponse,
    GenerateSuggestionRequest,
    GenerateSuggestionResponse,
)
from callrelay.schemas.llm import (
    LLMGenerateResponse,
    LLMMessage,
    UsageStats,
)
from callrelay.schemas.stream import (
    StreamEvent,
    StreamMedia,
    StreamStart,
)

__all__ = [
    "CallListResponse",
    "CallResponse",
    "TranscriptResponse",
    "TranscriptListResponse",
    "SuggestionResponse",
    "SuggestionListResponse",
    "GenerateSuggestionRequest",
    "GenerateSuggestionResponse",
    "LLMGenerateResponse",
    "LLMMessage",
    "UsageStats",
    "StreamEvent",
    "StreamMedia",
    "StreamStart",
]
