"""Base realtime speech-recognition client"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import suppress
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx
import structlog
from pydantic import BaseModel
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from callrelay.relay.errors import ConnectError, CredentialError

logger = structlog.get_logger()


class ConnectionState(str, Enum):
    """Upstream socket lifecycle"""
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


class TranscriptEvent(BaseModel):
    """Transcript result received from the speech service"""
    text: str
    is_final: bool
    confidence: Optional[float] = None


TranscriptHandler = Callable[[TranscriptEvent], Awaitable[None]]


class BaseTranscriptionClient(ABC):
    """
    One connection to a realtime speech API for the duration of a call.

    Subclasses supply the provider specifics: how to obtain a short-lived
    credential, the socket URL and headers, the audio and terminate message
    encodings, and how to parse incoming events. Events are handed to the
    transcript handler one at a time from a single reader task.

    Audio is batched into chunks of at least `min_chunk_ms` before it is
    transmitted (0 sends every frame as it arrives). Opening the socket is
    retried up to `connect_attempts` times, and an abnormal close from the
    service triggers the same bounded reconnect, unless `close()` has run.
    """

    provider = "base"

    # Log the first dropped frame and then every Nth
    DROP_LOG_EVERY = 500

    # PCM16 mono
    BYTES_PER_SAMPLE = 2

    NORMAL_CLOSURE = 1000

    def __init__(
        self,
        handler: TranscriptHandler,
        api_key: str,
        sample_rate: int = 8000,
        min_confidence: float = 0.7,
        credential_timeout: float = 10.0,
        connect_timeout: float = 10.0,
        drain_timeout: float = 2.0,
        min_chunk_ms: int = 0,
        max_chunk_ms: int = 1000,
        connect_attempts: int = 3,
        reconnect_delay: float = 2.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.handler = handler
        self.api_key = api_key
        self.sample_rate = sample_rate
        self.min_confidence = min_confidence
        self.credential_timeout = credential_timeout
        self.connect_timeout = connect_timeout
        self.drain_timeout = drain_timeout
        self.min_chunk_bytes = self._ms_to_bytes(min_chunk_ms)
        self.max_chunk_bytes = max(self._ms_to_bytes(max_chunk_ms), self.min_chunk_bytes, 1)
        self.connect_attempts = max(connect_attempts, 1)
        self.reconnect_delay = reconnect_delay
        self.http_client = http_client

        self.state = ConnectionState.IDLE
        self.frames_sent = 0
        self.frames_dropped = 0
        self.chunks_sent = 0
        self.reconnects = 0
        self._audio = bytearray()
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._closed = False
        self.log = logger.bind(provider=self.provider)

    @classmethod
    def settings_kwargs(cls, settings) -> Dict[str, Any]:
        """Constructor arguments shared by every provider"""
        return {
            "sample_rate": settings.audio_sample_rate,
            "min_confidence": settings.min_confidence,
            "credential_timeout": settings.credential_timeout,
            "connect_timeout": settings.connect_timeout,
            "drain_timeout": settings.upstream_drain_timeout,
            "connect_attempts": settings.upstream_connect_attempts,
            "reconnect_delay": settings.upstream_reconnect_delay,
        }

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.OPEN and self._ws is not None

    @property
    def buffered_ms(self) -> float:
        """Duration of audio waiting for the next chunk"""
        return len(self._audio) * 1000 / (self.sample_rate * self.BYTES_PER_SAMPLE)

    def _ms_to_bytes(self, ms: int) -> int:
        return self.sample_rate * self.BYTES_PER_SAMPLE * ms // 1000

    # Provider specifics

    @abstractmethod
    async def fetch_credential(self) -> str:
        """Obtain a short-lived credential for the streaming socket"""

    @abstractmethod
    def build_url(self, token: str) -> str:
        """Streaming socket URL"""

    def build_headers(self, token: str) -> Dict[str, str]:
        return {}

    @abstractmethod
    def encode_audio(self, pcm: bytes) -> Union[str, bytes]:
        """Wrap PCM16 audio in the provider's wire format"""

    @abstractmethod
    def terminate_message(self) -> Union[str, bytes]:
        """Control message that ends the provider session"""

    @abstractmethod
    def parse_event(self, raw: Union[str, bytes]) -> Optional[TranscriptEvent]:
        """Parse one incoming message; None for non-transcript messages"""

    # Lifecycle

    async def connect(self) -> None:
        """
        Fetch a credential and open the streaming socket.

        Raises CredentialError or ConnectError once `connect_attempts`
        attempts have failed. Each step of an attempt is bounded by its own
        timeout.
        """
        if self.state is not ConnectionState.IDLE:
            raise ConnectError(f"{self.provider} client cannot connect from state {self.state.value}")

        await self._connect_with_retry()

    async def send_audio(self, pcm: bytes) -> bool:
        """
        Accept PCM audio while the socket is open, otherwise drop it.

        Audio is transmitted once at least `min_chunk_bytes` have been
        accepted. Returns False when the frame was dropped.
        """
        if not pcm:
            return False

        if not self.is_connected:
            self._record_drop()
            return False

        self._audio.extend(pcm)
        self.frames_sent += 1

        if len(self._audio) >= self.min_chunk_bytes:
            return await self._flush_audio()
        return True

    async def _flush_audio(self) -> bool:
        """Send the accumulated audio in chunks of at most `max_chunk_bytes`"""
        ws = self._ws
        audio = bytes(self._audio)
        self._audio.clear()

        for start in range(0, len(audio), self.max_chunk_bytes):
            try:
                await ws.send(self.encode_audio(audio[start:start + self.max_chunk_bytes]))
            except (ConnectionClosed, OSError) as e:
                self.log.warning("Audio send failed", error=str(e))
                self._record_drop()
                return False
            self.chunks_sent += 1

        return True

    async def handle_message(self, raw: Union[str, bytes]) -> None:
        """Parse one upstream message and hand transcripts to the handler"""
        try:
            event = self.parse_event(raw)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            self.log.warning("Unparseable speech service message", error=str(e))
            return

        if event is None:
            return

        if event.is_final:
            if not event.text.strip():
                return
            confidence = event.confidence or 0.0
            if confidence < self.min_confidence:
                self.log.info(
                    "Low confidence transcript ignored",
                    confidence=confidence,
                    text=event.text,
                )
                return

        try:
            await self.handler(event)
        except Exception:
            self.log.exception("Transcript handler failed")

    async def close(self) -> None:
        """Terminate the provider session and close the socket; safe to repeat"""
        if self._closed:
            return
        self._closed = True

        was_open = self.state is ConnectionState.OPEN
        self.state = ConnectionState.CLOSING
        ws, reader = self._ws, self._reader

        if ws is not None:
            if was_open:
                if self._audio:
                    await self._flush_audio()
                try:
                    await ws.send(self.terminate_message())
                    self.log.info("Sent session termination")
                except (ConnectionClosed, OSError) as e:
                    self.log.warning("Could not send session termination", error=str(e))

                # Let the reader pick up final results before the socket goes away
                if reader is not None and not reader.done() and self.drain_timeout > 0:
                    await asyncio.wait({reader}, timeout=self.drain_timeout)

            await self._close_socket(ws)

        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader

        self._ws = None
        self._audio.clear()
        self.state = ConnectionState.CLOSED
        self.log.info(
            "Speech service connection closed",
            frames_sent=self.frames_sent,
            chunks_sent=self.chunks_sent,
            frames_dropped=self.frames_dropped,
            reconnects=self.reconnects,
        )

    # Internals

    async def _connect_with_retry(self) -> None:
        attempt = 0
        while True:
            attempt += 1
            try:
                await self._open()
                return
            except (CredentialError, ConnectError) as e:
                if self._closed:
                    raise
                if attempt >= self.connect_attempts:
                    self.state = ConnectionState.FAILED
                    raise
                self.log.warning(
                    "Speech service connection attempt failed, retrying",
                    attempt=attempt,
                    max_attempts=self.connect_attempts,
                    error=str(e),
                )
                self.state = ConnectionState.RECONNECTING
                await asyncio.sleep(self.reconnect_delay)
                if self._closed:
                    raise ConnectError(f"{self.provider} client closed while connecting") from e

    async def _open(self) -> None:
        self.state = ConnectionState.CONNECTING
        self.log.info("Requesting speech service credential")

        try:
            token = await asyncio.wait_for(self.fetch_credential(), self.credential_timeout)
        except asyncio.TimeoutError as e:
            raise CredentialError(
                f"{self.provider} credential request timed out after {self.credential_timeout}s"
            ) from e

        if self._closed:
            raise ConnectError(f"{self.provider} client closed while connecting")

        self.log.info("Connecting to speech service", sample_rate=self.sample_rate)

        try:
            ws = await asyncio.wait_for(
                self._open_socket(self.build_url(token), self.build_headers(token)),
                self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectError(
                f"{self.provider} socket did not open within {self.connect_timeout}s"
            ) from e
        except (OSError, WebSocketException) as e:
            raise ConnectError(f"{self.provider} socket failed to open: {e}") from e

        if self._closed:
            await self._close_socket(ws)
            raise ConnectError(f"{self.provider} client closed while connecting")

        self._ws = ws
        self.state = ConnectionState.OPEN
        self._reader = asyncio.create_task(self._read_loop(ws))
        self.log.info("Speech service connected")

    async def _open_socket(self, url: str, headers: Dict[str, str]):
        return await connect(url, additional_headers=headers, open_timeout=None)

    async def _close_socket(self, ws) -> None:
        try:
            await ws.close()
        except (ConnectionClosed, OSError) as e:
            self.log.warning("Error closing speech service socket", error=str(e))

    async def _read_loop(self, ws) -> None:
        lost = False
        try:
            async for message in ws:
                await self.handle_message(message)
        except ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd is not None else None
            lost = code != self.NORMAL_CLOSURE
            self.log.warning("Speech service connection lost", code=code, reason=str(e))
        finally:
            if self._ws is ws and self.state is ConnectionState.OPEN:
                self._ws = None
                self._audio.clear()
                self.state = ConnectionState.CLOSED
                self.log.info("Speech service closed the connection")

        if lost and not self._closed:
            await self._reconnect()

    async def _reconnect(self) -> None:
        self.state = ConnectionState.RECONNECTING
        self.log.warning("Reconnecting to speech service", delay=self.reconnect_delay)
        await asyncio.sleep(self.reconnect_delay)
        if self._closed:
            return

        try:
            await self._connect_with_retry()
        except (CredentialError, ConnectError) as e:
            self.log.error("Speech service reconnect failed", error_type=type(e).__name__, error=str(e))
            return

        self.reconnects += 1
        self.log.info("Speech service reconnected", reconnects=self.reconnects)

    async def _request_credential(
        self,
        url: str,
        headers: Dict[str, str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """POST to a credential endpoint and return its JSON body"""
        try:
            if self.http_client is not None:
                response = await self.http_client.post(url, headers=headers, json=payload or {})
            else:
                async with httpx.AsyncClient(timeout=self.credential_timeout) as client:
                    response = await client.post(url, headers=headers, json=payload or {})
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise CredentialError(
                f"{self.provider} credential request failed: {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise CredentialError(f"{self.provider} credential request failed: {e}") from e

    def _record_drop(self) -> None:
        self.frames_dropped += 1
        if self.frames_dropped == 1 or self.frames_dropped % self.DROP_LOG_EVERY == 0:
            self.log.info(
                "Dropping audio, speech service not connected",
                state=self.state.value,
                frames_dropped=self.frames_dropped,
            )
