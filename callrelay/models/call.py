"""Call-related models"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Integer, Uuid
from sqlalchemy.orm import relationship

from callrelay.database import Base

# Statuses after which a call record is no longer mutated
TERMINAL_STATUSES = ("completed", "failed", "canceled")

# Statuses that mark the end of the conversation
ENDED_STATUSES = TERMINAL_STATUSES + ("busy", "no-answer")


class Call(Base):
    """Call records"""
    __tablename__ = "calls"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Twilio identifiers
    call_sid = Column(String(64), unique=True, nullable=False, index=True)

    # Call details
    customer_number = Column(String(20))
    direction = Column(String(20), default="inbound")  # inbound/outbound

    # Timing
    started_at = Column(DateTime, default=datetime.utcnow)
    ended_at = Column(DateTime)
    duration_seconds = Column(Integer)

    # ringing, in-progress, completed, failed, canceled, busy, no-answer
    status = Column(String(20), default="ringing")

    # Recording
    recording_url = Column(String(500))
    recording_duration_seconds = Column(Integer)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    transcripts = relationship(
        "Transcript", back_populates="call", order_by="Transcript.created_at"
    )
    suggestions = relationship(
        "Suggestion", back_populates="call", order_by="Suggestion.created_at"
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class Transcript(Base):
    """One attributed utterance of a call"""
    __tablename__ = "transcripts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    call_id = Column(Uuid(as_uuid=True), ForeignKey("calls.id"), nullable=False, index=True)

    role = Column(String(20), nullable=False)  # customer, agent
    text = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    call = relationship("Call", back_populates="transcripts")


class Suggestion(Base):
    """Advisory text generated for the agent"""
    __tablename__ = "suggestions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    call_id = Column(Uuid(as_uuid=True), ForeignKey("calls.id"), nullable=False, index=True)

    text = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    call = relationship("Call", back_populates="suggestions")
