"""Twilio Media Streams message schemas"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict


class StreamStart(BaseModel):
    """Metadata carried by the start message"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    call_sid: str = Field(alias="callSid")
    stream_sid: Optional[str] = Field(default=None, alias="streamSid")
    account_sid: Optional[str] = Field(default=None, alias="accountSid")
    tracks: List[str] = []
    custom_parameters: Dict[str, Any] = Field(default_factory=dict, alias="customParameters")


class StreamMedia(BaseModel):
    """One audio frame"""
    model_config = ConfigDict(extra="ignore")

    track: Optional[str] = None  # inbound, outbound
    chunk: Optional[str] = None
    timestamp: Optional[str] = None
    payload: str = ""


class StreamEvent(BaseModel):
    """Envelope shared by all Media Streams messages"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event: str  # connected, start, media, stop, mark, dtmf
    sequence_number: Optional[str] = Field(default=None, alias="sequenceNumber")
    stream_sid: Optional[str] = Field(default=None, alias="streamSid")
    start: Optional[StreamStart] = None
    media: Optional[StreamMedia] = None
