"""Tests for streaming sessions and call id resolution"""

from uuid import uuid4

import pytest

from callrelay.relay.errors import PersistenceError, ResolutionError
from callrelay.relay.registry import SessionRegistry, StreamingSession

TRACK_ROLES = {"inbound": "customer", "outbound": "agent"}


class ScriptedStore:
    """Answers call lookups from a script of results"""

    def __init__(self, *results):
        self.results = list(results)
        self.lookups = 0

    async def find_call_id(self, call_sid):
        self.lookups += 1
        result = self.results.pop(0) if self.results else None
        if isinstance(result, Exception):
            raise result
        return result

    async def recent_transcripts(self, call_id, role=None, limit=10):
        return []

    async def latest_suggestion(self, call_id):
        return None


def test_open_get_close(store):
    registry = SessionRegistry(store)

    session = registry.open("CA123", "MZ1")

    assert registry.get("CA123") is session
    assert registry.active_count == 1

    registry.close(session)
    assert registry.get("CA123") is None
    assert registry.active_count == 0


def test_closing_stale_session_keeps_replacement(store):
    registry = SessionRegistry(store)
    stale = registry.open("CA123", "MZ1")
    current = registry.open("CA123", "MZ2")

    registry.close(stale)

    assert registry.get("CA123") is current


def test_role_for_track():
    session = StreamingSession(call_sid="CA123")
    assert session.role_for(TRACK_ROLES) == "customer"

    session.last_track = "outbound"
    assert session.role_for(TRACK_ROLES) == "agent"

    session.last_track = "inbound"
    assert session.role_for(TRACK_ROLES) == "customer"

    session.last_track = "outbound"
    assert session.role_for({"inbound": "agent", "outbound": "customer"}) == "customer"


def test_buffer_reports_dropped_oldest():
    session = StreamingSession(call_sid="CA123", pending_limit=1)

    assert session.buffer("customer", "first message here")
    assert not session.buffer("customer", "second message here")

    assert [item.text for item in session.take_pending()] == ["second message here"]
    assert session.dropped_pending == 1


@pytest.mark.asyncio
async def test_resolve_existing_call(store, test_call):
    registry = SessionRegistry(store, resolution_interval=0)
    session = registry.open("CA123")

    call_id = await registry.resolve(session)

    assert call_id == test_call.id


@pytest.mark.asyncio
async def test_resolve_retries_until_found():
    call_id = uuid4()
    scripted = ScriptedStore(None, PersistenceError("connection reset"), call_id)
    registry = SessionRegistry(scripted, resolution_attempts=5, resolution_interval=0)

    assert await registry.resolve(registry.open("CA123")) == call_id
    assert scripted.lookups == 3


@pytest.mark.asyncio
async def test_resolve_gives_up_after_bounded_attempts():
    scripted = ScriptedStore()
    registry = SessionRegistry(scripted, resolution_attempts=3, resolution_interval=0)

    with pytest.raises(ResolutionError) as exc_info:
        await registry.resolve(registry.open("CA404"))

    assert exc_info.value.attempts == 3
    assert exc_info.value.call_sid == "CA404"
    assert scripted.lookups == 3


@pytest.mark.asyncio
async def test_resolve_seeds_history_and_cooldown(store, test_call, clock):
    await store.add_transcript(test_call.id, "customer", "My Package Never Arrived")
    await store.add_transcript(test_call.id, "agent", "Let me look into that")
    await store.add_suggestion(test_call.id, "Offer to resend the package.")
    registry = SessionRegistry(store, resolution_interval=0, clock=clock)
    session = registry.open("CA123")

    await registry.resolve(session)

    customer_history = [text for text, _ in session.history_for("customer")]
    agent_history = [text for text, _ in session.history_for("agent")]
    assert customer_history == ["my package never arrived"]
    assert agent_history == ["let me look into that"]
    assert session.last_suggestion_at is not None
    assert session.last_suggestion_at <= clock()


def test_from_settings_uses_track_roles(store):
    class StubSettings:
        resolution_attempts = 4
        resolution_interval = 0.1
        duplicate_history_size = 5
        pending_transcript_limit = 7
        track_roles = {"inbound": "customer", "outbound": "agent"}

    registry = SessionRegistry.from_settings(store, StubSettings())

    assert registry.resolution_attempts == 4
    assert registry.pending_limit == 7
    assert set(registry.roles) == {"customer", "agent"}
