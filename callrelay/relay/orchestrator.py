"""
Relay orchestrator: one instance per inbound Media Streams WebSocket.

    AWAITING_START --start--> STREAMING --stop/close--> CLOSING --> CLOSED

Call id resolution and the upstream speech connection run as background
tasks started on the start message, so the frame loop never waits on
either of them. Failures in those tasks leave the relay in a degraded mode
where audio is accepted and dropped; the phone call itself is never
affected.
"""

import asyncio
import json
import time
from contextlib import suppress
from enum import Enum
from typing import Callable, Dict, Optional

import structlog
from fastapi import WebSocket
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from callrelay.relay.decoder import decode_frame
from callrelay.relay.errors import ConnectError, CredentialError, DecodeError, ResolutionError
from callrelay.relay.registry import SessionRegistry, StreamingSession
from callrelay.relay.suggestions import SuggestionTrigger
from callrelay.relay.upstream.base import (
    BaseTranscriptionClient,
    ConnectionState,
    TranscriptEvent,
    TranscriptHandler,
)
from callrelay.relay.writer import TranscriptWriter
from callrelay.schemas.stream import StreamEvent

logger = structlog.get_logger()

CUSTOMER_ROLE = "customer"

DEFAULT_TRACK_ROLES = {"inbound": "customer", "outbound": "agent"}

ClientFactory = Callable[[TranscriptHandler], BaseTranscriptionClient]


class RelayState(str, Enum):
    """Relay connection states"""
    AWAITING_START = "awaiting_start"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


class RelayOrchestrator:
    """Drives one call's audio from Twilio to the speech service and back into the store"""

    def __init__(
        self,
        websocket: WebSocket,
        registry: SessionRegistry,
        writer: TranscriptWriter,
        trigger: SuggestionTrigger,
        client_factory: ClientFactory,
        track_roles: Optional[Dict[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.websocket = websocket
        self.registry = registry
        self.writer = writer
        self.trigger = trigger
        self.client_factory = client_factory
        self.track_roles = track_roles or DEFAULT_TRACK_ROLES
        self.clock = clock

        self.state = RelayState.AWAITING_START
        self.session: Optional[StreamingSession] = None
        self.client: Optional[BaseTranscriptionClient] = None
        self.upstream_task: Optional[asyncio.Task] = None
        self.resolution_task: Optional[asyncio.Task] = None

        self.frames_received = 0
        self.frames_rejected = 0
        self.log = logger.bind(component="relay")

    @property
    def released(self) -> bool:
        """True once neither the inbound nor the upstream socket is held open"""
        upstream_released = self.client is None or self.client.state in (
            ConnectionState.CLOSED,
            ConnectionState.FAILED,
            ConnectionState.IDLE,
        )
        inbound_released = self.websocket.client_state is not WebSocketState.CONNECTED or (
            self.websocket.application_state is not WebSocketState.CONNECTED
        )
        return upstream_released and inbound_released

    async def run(self) -> None:
        """Receive Media Streams messages until stop or disconnect"""
        self.log.info("Media stream connected")
        try:
            while self.state in (RelayState.AWAITING_START, RelayState.STREAMING):
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    self.log.info("Media stream disconnected", code=message.get("code"))
                    break

                raw = message.get("text")
                if raw is None:
                    self.log.warning("Non-text media stream message dropped")
                    continue
                await self.handle_message(raw)
        except Exception:
            self.log.exception("Media stream failed")
        finally:
            await self.close()

    async def handle_message(self, raw: str) -> None:
        """Parse and dispatch one Media Streams message"""
        if self.state in (RelayState.CLOSING, RelayState.CLOSED):
            return

        try:
            message = StreamEvent.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            self.log.warning("Malformed media stream message dropped", error=str(e))
            return

        if message.event == "connected":
            self.log.info("Twilio connected")
        elif message.event == "start":
            await self._on_start(message)
        elif message.event == "media":
            await self._on_media(message)
        elif message.event == "stop":
            self.log.info("Twilio stop received")
            await self.close()
        else:
            self.log.debug("Unhandled media stream event", media_event=message.event)

    async def handle_transcript(self, event: TranscriptEvent) -> None:
        """Upstream transcript handler; called sequentially by the client's reader"""
        if self.session is None or self.state not in (RelayState.STREAMING, RelayState.CLOSING):
            return

        if not event.is_final:
            self.session.last_partial_at = self.clock()
            return

        role = self.session.role_for(self.track_roles)
        row = await self.writer.submit(self.session, role, event.text)
        if row is not None and role == CUSTOMER_ROLE:
            self.trigger.maybe_trigger(self.session, row.text)

    async def close(self) -> None:
        """Tear down both sides of the relay; safe to call repeatedly"""
        if self.state in (RelayState.CLOSING, RelayState.CLOSED):
            return

        self.state = RelayState.CLOSING
        self.log.info("Closing relay session")

        await self._cancel(self.upstream_task)

        if self.client is not None:
            try:
                await self.client.close()
            except Exception:
                self.log.exception("Error closing speech service client")

        await self._cancel(self.resolution_task)
        if self.session is not None and not self.session.is_resolved:
            await self.writer.discard_pending(self.session)

        await self.trigger.aclose()
        await self._close_inbound()

        if self.session is not None:
            self.registry.close(self.session)

        self.state = RelayState.CLOSED
        self.log.info(
            "Relay session closed",
            frames_received=self.frames_received,
            frames_rejected=self.frames_rejected,
            released=self.released,
        )

    # Event handlers

    async def _on_start(self, message: StreamEvent) -> None:
        if self.state is not RelayState.AWAITING_START:
            self.log.warning("Duplicate start message ignored")
            return

        if message.start is None:
            self.log.warning("Start message without call metadata ignored")
            return

        start = message.start
        stream_sid = start.stream_sid or message.stream_sid
        self.session = self.registry.open(start.call_sid, stream_sid)
        self.log = self.log.bind(call_sid=start.call_sid, stream_sid=stream_sid)
        self.log.info("Media stream started", tracks=start.tracks)

        self.client = self.client_factory(self.handle_transcript)
        self.resolution_task = asyncio.create_task(self._resolve_call())
        self.upstream_task = asyncio.create_task(self._connect_upstream())
        self.state = RelayState.STREAMING

    async def _on_media(self, message: StreamEvent) -> None:
        if self.state is RelayState.AWAITING_START:
            self.log.warning("Media received before start, dropping frame")
            return

        media = message.media
        if media is None:
            return

        self.frames_received += 1
        if media.track:
            self.session.last_track = media.track

        try:
            pcm = decode_frame(media.payload)
        except DecodeError as e:
            self.frames_rejected += 1
            self.log.warning("Audio frame dropped", error=str(e), chunk=media.chunk)
            return

        await self.client.send_audio(pcm)

    # Background tasks

    async def _connect_upstream(self) -> None:
        try:
            await self.client.connect()
        except (CredentialError, ConnectError) as e:
            self.log.error(
                "Speech service unavailable, continuing without transcription",
                error_type=type(e).__name__,
                error=str(e),
            )

    async def _resolve_call(self) -> None:
        try:
            call_id = await self.registry.resolve(self.session)
        except ResolutionError as e:
            self.log.error("Call could not be resolved", error=str(e), attempts=e.attempts)
            await self.writer.discard_pending(self.session)
            return

        self.log = self.log.bind(call_id=str(call_id))
        flushed = await self.writer.attach(self.session, call_id)

        customer_rows = [row for row in flushed if row.role == CUSTOMER_ROLE]
        if customer_rows:
            self.trigger.maybe_trigger(self.session, customer_rows[-1].text)

    async def _close_inbound(self) -> None:
        if self.released:
            return
        try:
            await self.websocket.close()
        except (RuntimeError, OSError) as e:
            self.log.debug("Inbound socket already closed", error=str(e))

    @staticmethod
    async def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
