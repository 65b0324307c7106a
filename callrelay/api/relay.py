"""Twilio Media Streams WebSocket endpoint"""

from fastapi import APIRouter, WebSocket

from callrelay.config import get_settings
from callrelay.relay.filters import TranscriptFilter
from callrelay.relay.orchestrator import RelayOrchestrator
from callrelay.relay.suggestions import SuggestionTrigger
from callrelay.relay.upstream import get_transcription_client
from callrelay.relay.writer import TranscriptWriter

router = APIRouter()


def build_orchestrator(websocket: WebSocket) -> RelayOrchestrator:
    """Wire one relay connection to the application's shared services"""
    state = websocket.app.state
    settings = getattr(state, "settings", None) or get_settings()

    writer = TranscriptWriter(
        state.store,
        TranscriptFilter(
            min_length=settings.min_transcript_length,
            duplicate_window=settings.duplicate_window_seconds,
        ),
    )
    trigger = SuggestionTrigger(
        state.generator,
        state.store,
        cooldown=settings.suggestion_cooldown_seconds,
    )

    return RelayOrchestrator(
        websocket,
        state.registry,
        writer,
        trigger,
        client_factory=lambda handler: get_transcription_client(handler, settings),
        track_roles=settings.track_roles,
    )


@router.websocket("/media-stream")
async def media_stream(websocket: WebSocket):
    """Relay call audio to the speech service for the duration of the stream"""
    await websocket.accept()
    orchestrator = build_orchestrator(websocket)
    await orchestrator.run()
