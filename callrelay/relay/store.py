"""Durable-store operations used by the relay"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
import structlog

from callrelay.models.call import Call, Transcript, Suggestion
from callrelay.relay.errors import PersistenceError

logger = structlog.get_logger()


class CallStore:
    """
    Point lookups and single-row inserts scoped to one call id.
    Every SQLAlchemy failure surfaces as PersistenceError.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from callrelay.database import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory

    async def find_call_id(self, call_sid: str) -> Optional[UUID]:
        """Resolve a provider call id to the internal call id"""
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(Call.id).where(Call.call_sid == call_sid))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Call lookup failed for {call_sid}: {e}") from e

    async def add_transcript(self, call_id: UUID, role: str, text: str) -> Transcript:
        """Insert one transcript row"""
        transcript = Transcript(call_id=call_id, role=role, text=text)
        await self._insert(transcript)
        return transcript

    async def add_suggestion(self, call_id: UUID, text: str) -> Suggestion:
        """Insert one suggestion row"""
        suggestion = Suggestion(call_id=call_id, text=text)
        await self._insert(suggestion)
        return suggestion

    async def recent_transcripts(
        self,
        call_id: UUID,
        role: Optional[str] = None,
        limit: int = 10,
    ) -> List[Transcript]:
        """Most recent transcripts of a call, oldest first"""
        query = select(Transcript).where(Transcript.call_id == call_id)
        if role:
            query = query.where(Transcript.role == role)
        query = query.order_by(Transcript.created_at.desc()).limit(limit)

        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Transcript lookup failed for {call_id}: {e}") from e

        rows.reverse()
        return rows

    async def recent_suggestions(self, call_id: UUID, limit: int = 3) -> List[Suggestion]:
        """Most recent suggestions of a call, newest first"""
        query = (
            select(Suggestion)
            .where(Suggestion.call_id == call_id)
            .order_by(Suggestion.created_at.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Suggestion lookup failed for {call_id}: {e}") from e

    async def latest_suggestion(self, call_id: UUID) -> Optional[Suggestion]:
        suggestions = await self.recent_suggestions(call_id, limit=1)
        return suggestions[0] if suggestions else None

    async def _insert(self, row) -> None:
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            logger.debug("Insert failed", table=row.__tablename__, error=str(e))
            raise PersistenceError(f"Insert into {row.__tablename__} failed: {e}") from e
