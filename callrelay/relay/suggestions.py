"""Cool-down gated, fire-and-forget suggestion generation"""

import asyncio
import time
from typing import Callable, Protocol, Set
from uuid import UUID

import structlog

from callrelay.relay.errors import PersistenceError
from callrelay.relay.registry import StreamingSession
from callrelay.relay.store import CallStore

logger = structlog.get_logger()


class AdvisoryGenerator(Protocol):
    """Black-box collaborator returning a short advisory text"""

    async def generate(self, call_id: UUID, customer_message: str) -> str:
        ...


class SuggestionTrigger:
    """
    Requests a suggestion for accepted customer transcripts, at most once
    per cool-down period per call. Generation runs in background tasks so
    the audio path never waits on it.
    """

    def __init__(
        self,
        generator: AdvisoryGenerator,
        store: CallStore,
        cooldown: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.generator = generator
        self.store = store
        self.cooldown = cooldown
        self.clock = clock
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def maybe_trigger(self, session: StreamingSession, text: str) -> bool:
        """Schedule generation if the call is resolved and out of cool-down"""
        if session.call_id is None:
            return False

        now = self.clock()
        if session.last_suggestion_at is not None and now - session.last_suggestion_at < self.cooldown:
            logger.debug(
                "Suggestion skipped, cooling down",
                call_sid=session.call_sid,
                elapsed=round(now - session.last_suggestion_at, 1),
            )
            return False

        session.last_suggestion_at = now
        task = asyncio.create_task(self._generate(session.call_id, text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _generate(self, call_id: UUID, text: str) -> None:
        log = logger.bind(call_id=str(call_id))
        try:
            suggestion = await self.generator.generate(call_id, text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("Suggestion generation failed", error=str(e))
            return

        suggestion = (suggestion or "").strip()
        if not suggestion:
            log.warning("Empty suggestion discarded")
            return

        try:
            row = await self.store.add_suggestion(call_id, suggestion)
        except PersistenceError as e:
            log.error("Failed to save suggestion", error=str(e))
            return

        log.info("Suggestion saved", suggestion_id=str(row.id))

    async def drain(self) -> None:
        """Wait for in-flight generations"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight generations"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
