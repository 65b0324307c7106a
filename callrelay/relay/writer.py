"""Filtered, ordered transcript persistence"""

import time
from typing import Callable, List, Optional
from uuid import UUID

import structlog

from callrelay.models.call import Transcript
from callrelay.relay.errors import PersistenceError
from callrelay.relay.filters import FilterVerdict, TranscriptFilter
from callrelay.relay.registry import StreamingSession
from callrelay.relay.store import CallStore

logger = structlog.get_logger()


class TranscriptWriter:
    """
    Filters candidate transcripts and writes accepted ones.

    Writes for one session are serialized by the session's lock, so rows
    land in the order their final events were received, including rows
    that were buffered while the call id was still unknown.
    """

    def __init__(
        self,
        store: CallStore,
        transcript_filter: Optional[TranscriptFilter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.filter = transcript_filter or TranscriptFilter()
        self.clock = clock

    async def submit(self, session: StreamingSession, role: str, text: str) -> Optional[Transcript]:
        """
        Filter and persist one final transcript.

        Returns the written row, or None when the text was rejected,
        buffered, dropped or the write failed.
        """
        log = logger.bind(call_sid=session.call_sid, role=role)
        text = text.strip()
        now = self.clock()

        history = session.history_for(role)
        verdict = self.filter.evaluate(text, history, now)
        if verdict is not FilterVerdict.ACCEPTED:
            log.debug("Transcript rejected", verdict=verdict.value, text=text)
            return None

        async with session.write_lock:
            if session.resolution_failed:
                log.warning("Transcript dropped, call never resolved", text=text)
                return None

            if not session.is_resolved:
                if not session.buffer(role, text):
                    log.warning(
                        "Pending transcript buffer full, dropped oldest",
                        dropped_total=session.dropped_pending,
                    )
                log.info("Transcript buffered until call resolves", pending=len(session.pending))
                self.filter.remember(history, text, now)
                return None

            row = await self._write(session.call_id, role, text, log)
            if row is not None:
                self.filter.remember(history, text, now)
            return row

    async def attach(self, session: StreamingSession, call_id: UUID) -> List[Transcript]:
        """Set the resolved call id and flush buffered transcripts in order"""
        written = []
        async with session.write_lock:
            session.call_id = call_id
            pending = session.take_pending()
            if pending:
                logger.info(
                    "Flushing buffered transcripts",
                    call_sid=session.call_sid,
                    call_id=str(call_id),
                    count=len(pending),
                    dropped=session.dropped_pending,
                )

            for item in pending:
                log = logger.bind(call_sid=session.call_sid, role=item.role)
                row = await self._write(call_id, item.role, item.text, log)
                if row is not None:
                    written.append(row)

        return written

    async def discard_pending(self, session: StreamingSession) -> int:
        """Give up on an unresolved call; returns the number of dropped transcripts"""
        async with session.write_lock:
            session.resolution_failed = True
            dropped = len(session.pending) + session.dropped_pending
            session.pending.clear()

        if dropped:
            logger.warning(
                "Dropped buffered transcripts for unresolved call",
                call_sid=session.call_sid,
                count=dropped,
            )
        return dropped

    async def _write(self, call_id: UUID, role: str, text: str, log) -> Optional[Transcript]:
        try:
            row = await self.store.add_transcript(call_id, role, text)
        except PersistenceError as e:
            log.error("Failed to save transcript", call_id=str(call_id), error=str(e))
            return None

        log.info("Transcript saved", call_id=str(call_id), transcript_id=str(row.id))
        return row
