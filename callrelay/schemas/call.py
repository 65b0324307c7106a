"""Call schemas"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, ConfigDict


class TranscriptResponse(BaseModel):
    """Transcript response"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    call_id: UUID
    role: str  # customer, agent
    text: str
    created_at: datetime


class SuggestionResponse(BaseModel):
    """Suggestion response"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    call_id: UUID
    text: str
    created_at: datetime


class CallResponse(BaseModel):
    """Call detail response"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    call_sid: str
    customer_number: Optional[str]
    direction: Optional[str]
    status: Optional[str]
    started_at: Optional[datetime]
    ended_at: Optional[datetime]
    duration_seconds: Optional[int]
    recording_url: Optional[str]
    created_at: datetime


class TranscriptListResponse(BaseModel):
    """Ordered transcripts of a call"""
    call_id: UUID
    items: List[TranscriptResponse]


class SuggestionListResponse(BaseModel):
    """Most recent suggestions of a call, newest first"""
    call_id: UUID
    items: List[SuggestionResponse]


class GenerateSuggestionRequest(BaseModel):
    """Suggestion generation request"""
    call_id: UUID
    customer_message: str


class GenerateSuggestionResponse(BaseModel):
    """Suggestion generation response"""
    suggestion: str


class CallListResponse(BaseModel):
    """Paginated call list response"""
    items: List[CallResponse]
    total: int
    page: int
    page_size: int
    pages: int
