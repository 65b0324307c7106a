"""Per-call streaming session state and call id resolution"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

import structlog

from callrelay.relay.errors import PersistenceError, ResolutionError
from callrelay.relay.filters import normalize
from callrelay.relay.store import CallStore

logger = structlog.get_logger()


@dataclass
class PendingTranscript:
    """Transcript accepted before the call id was known"""
    role: str
    text: str


@dataclass
class StreamingSession:
    """Live state of one relay connection"""
    call_sid: str
    stream_sid: Optional[str] = None
    call_id: Optional[UUID] = None
    last_track: Optional[str] = None
    last_partial_at: Optional[float] = None
    last_suggestion_at: Optional[float] = None
    resolution_failed: bool = False
    history_size: int = 10
    pending_limit: int = 50
    dropped_pending: int = 0
    history: Dict[str, Deque[Tuple[str, float]]] = field(default_factory=dict)
    pending: Deque[PendingTranscript] = field(default_factory=deque)
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def is_resolved(self) -> bool:
        return self.call_id is not None

    def role_for(self, track_roles: Mapping[str, str]) -> str:
        """Speaker role of the most recent audio track"""
        default = track_roles.get("inbound", "customer")
        if self.last_track is None:
            return default
        return track_roles.get(self.last_track, default)

    def history_for(self, role: str) -> Deque[Tuple[str, float]]:
        if role not in self.history:
            self.history[role] = deque(maxlen=self.history_size)
        return self.history[role]

    def buffer(self, role: str, text: str) -> bool:
        """
        Queue a transcript until the call id resolves.
        Returns False when the oldest entry had to be dropped.
        """
        dropped = False
        if len(self.pending) >= self.pending_limit:
            self.pending.popleft()
            self.dropped_pending += 1
            dropped = True
        self.pending.append(PendingTranscript(role=role, text=text))
        return not dropped

    def take_pending(self) -> List[PendingTranscript]:
        items = list(self.pending)
        self.pending.clear()
        return items

    def seed_history(self, role: str, entries: List[Tuple[str, float]]) -> None:
        history = self.history_for(role)
        for text, seen_at in entries:
            history.append((normalize(text), seen_at))


class SessionRegistry:
    """
    Owns the lifecycle of streaming sessions: created on the Media Streams
    start message, destroyed on stop or socket close. Entries are keyed by
    provider call id and never shared between calls.
    """

    def __init__(
        self,
        store: CallStore,
        resolution_attempts: int = 20,
        resolution_interval: float = 0.5,
        history_size: int = 10,
        pending_limit: int = 50,
        roles: Tuple[str, ...] = ("customer", "agent"),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.roles = roles
        self.resolution_attempts = resolution_attempts
        self.resolution_interval = resolution_interval
        self.history_size = history_size
        self.pending_limit = pending_limit
        self.clock = clock
        self._sessions: Dict[str, StreamingSession] = {}

    @classmethod
    def from_settings(cls, store: CallStore, settings) -> "SessionRegistry":
        return cls(
            store,
            resolution_attempts=settings.resolution_attempts,
            resolution_interval=settings.resolution_interval,
            history_size=settings.duplicate_history_size,
            pending_limit=settings.pending_transcript_limit,
            roles=tuple(sorted(set(settings.track_roles.values()))),
        )

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def open(self, call_sid: str, stream_sid: Optional[str] = None) -> StreamingSession:
        """Create the session for a newly started media stream"""
        if call_sid in self._sessions:
            logger.warning("Replacing existing streaming session", call_sid=call_sid)

        session = StreamingSession(
            call_sid=call_sid,
            stream_sid=stream_sid,
            history_size=self.history_size,
            pending_limit=self.pending_limit,
        )
        self._sessions[call_sid] = session
        logger.info("Streaming session opened", call_sid=call_sid, stream_sid=stream_sid)
        return session

    def get(self, call_sid: str) -> Optional[StreamingSession]:
        return self._sessions.get(call_sid)

    def close(self, session: StreamingSession) -> None:
        """Forget a session; a newer session for the same call is left alone"""
        if self._sessions.get(session.call_sid) is session:
            del self._sessions[session.call_sid]
            logger.info("Streaming session closed", call_sid=session.call_sid)

    async def resolve(self, session: StreamingSession) -> UUID:
        """
        Look up the internal call id with bounded retries.

        Media can arrive before the voice webhook has created the call row,
        so a miss is retried every `resolution_interval` seconds. Lookup
        errors count as misses.
        """
        log = logger.bind(call_sid=session.call_sid)

        for attempt in range(1, self.resolution_attempts + 1):
            try:
                call_id = await self.store.find_call_id(session.call_sid)
            except PersistenceError as e:
                log.warning("Call lookup failed", attempt=attempt, error=str(e))
                call_id = None

            if call_id is not None:
                log.info("Call resolved", call_id=str(call_id), attempt=attempt)
                await self._seed(session, call_id)
                return call_id

            if attempt < self.resolution_attempts:
                await asyncio.sleep(self.resolution_interval)

        raise ResolutionError(session.call_sid, self.resolution_attempts)

    async def _seed(self, session: StreamingSession, call_id: UUID) -> None:
        """Load recent history so dedup and cool-down survive a reconnect"""
        now = self.clock()
        utcnow = datetime.utcnow()

        def as_clock(created_at: Optional[datetime]) -> float:
            if created_at is None:
                return now
            return now - max((utcnow - created_at).total_seconds(), 0.0)

        try:
            for role in self.roles:
                rows = await self.store.recent_transcripts(call_id, role=role, limit=self.history_size)
                session.seed_history(role, [(row.text, as_clock(row.created_at)) for row in rows])

            latest = await self.store.latest_suggestion(call_id)
            if latest is not None:
                session.last_suggestion_at = as_clock(latest.created_at)
        except PersistenceError as e:
            logger.warning("Could not load call history", call_id=str(call_id), error=str(e))
