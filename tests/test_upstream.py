"""Tests for the realtime speech clients"""

import asyncio
import base64
import json

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from callrelay.config import Settings
from callrelay.relay.errors import ConnectError, CredentialError
from callrelay.relay.upstream import (
    AssemblyAIClient,
    ConnectionState,
    DeepgramClient,
    get_transcription_client,
)


class FakeUpstreamSocket:
    """In-memory stand-in for a websockets client connection"""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._incoming = asyncio.Queue()

    def feed(self, message):
        self._incoming.put_nowait(message)

    async def send(self, message):
        self.sent.append(message)
        if "terminate_session" in str(message):
            # Server answers with a final result and then closes
            self.feed(json.dumps({"message_type": "SessionTerminated"}))
            self.feed(None)

    async def close(self):
        self.closed = True
        self.feed(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        if isinstance(message, Exception):
            raise message
        return message

    def audio_sent(self):
        return [
            base64.b64decode(json.loads(m)["audio_data"])
            for m in self.sent
            if "audio_data" in m
        ]


class ScriptedAssemblyAIClient(AssemblyAIClient):
    """Opens the given sockets in turn; an exception in the list fails that attempt"""

    def __init__(self, handler, socket=None, sockets=None, open_gate=None, **kwargs):
        kwargs.setdefault("drain_timeout", 0.5)
        kwargs.setdefault("reconnect_delay", 0)
        super().__init__(handler, "test-key", **kwargs)
        self.socket = socket or FakeUpstreamSocket()
        self.sockets = list(sockets) if sockets is not None else None
        self.open_gate = open_gate
        self.opened_url = None
        self.opens = 0

    async def fetch_credential(self):
        return "temp-token"

    async def _open_socket(self, url, headers):
        if self.open_gate is not None:
            await self.open_gate.wait()
        self.opens += 1
        if self.sockets is not None:
            if not self.sockets:
                raise OSError("connection refused")
            socket = self.sockets.pop(0)
            if isinstance(socket, Exception):
                raise socket
            self.socket = socket
        self.opened_url = url
        return self.socket


@pytest.fixture
def received():
    return []


@pytest.fixture
def handler(received):
    async def on_transcript(event):
        received.append(event)
    return on_transcript


def final(text, confidence):
    return json.dumps({"message_type": "FinalTranscript", "text": text, "confidence": confidence})


def test_assemblyai_parses_transcripts(handler):
    client = AssemblyAIClient(handler, "test-key")

    partial = client.parse_event(json.dumps({"message_type": "PartialTranscript", "text": "my pack"}))
    complete = client.parse_event(final("My package never arrived.", 0.93))

    assert not partial.is_final
    assert partial.text == "my pack"
    assert complete.is_final
    assert complete.confidence == 0.93


def test_assemblyai_control_messages(handler):
    client = AssemblyAIClient(handler, "test-key")

    assert client.parse_event(json.dumps({"message_type": "SessionBegins", "session_id": "s-1"})) is None
    assert client.session_id == "s-1"
    assert client.parse_event(json.dumps({"error": "Invalid token"})) is None


def test_assemblyai_wire_format(handler):
    client = AssemblyAIClient(handler, "test-key", realtime_url="wss://speech.test/ws")

    assert client.build_url("abc") == "wss://speech.test/ws?sample_rate=8000&token=abc"
    assert json.loads(client.encode_audio(b"\x00\x01")) == {"audio_data": "AAE="}
    assert json.loads(client.terminate_message()) == {"terminate_session": True}


@pytest.mark.asyncio
async def test_final_below_confidence_is_discarded(handler, received):
    client = AssemblyAIClient(handler, "test-key")

    await client.handle_message(final("My package never arrived", 0.69))
    await client.handle_message(final("My package never arrived", 0.7))

    assert len(received) == 1
    assert received[0].confidence == 0.7


@pytest.mark.asyncio
async def test_empty_final_and_garbage_are_discarded(handler, received):
    client = AssemblyAIClient(handler, "test-key")

    await client.handle_message(final("   ", 0.99))
    await client.handle_message("{not json")
    await client.handle_message(json.dumps({"message_type": "PartialTranscript", "text": "hel"}))

    assert [event.is_final for event in received] == [False]


@pytest.mark.asyncio
async def test_handler_failure_does_not_escape(received):
    async def broken_handler(event):
        raise RuntimeError("boom")

    client = AssemblyAIClient(broken_handler, "test-key")

    await client.handle_message(final("My package never arrived", 0.9))


@pytest.mark.asyncio
async def test_credential_failure_raises_after_attempts(handler):
    requests = []

    def respond(request):
        requests.append(request)
        return httpx.Response(401, json={"error": "bad key"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(respond)) as http_client:
        client = AssemblyAIClient(handler, "bad-key", http_client=http_client, reconnect_delay=0)

        with pytest.raises(CredentialError):
            await client.connect()

    assert client.state is ConnectionState.FAILED
    assert len(requests) == 3


@pytest.mark.asyncio
async def test_credential_request_sends_api_key(handler):
    requests = []

    def respond(request):
        requests.append(request)
        return httpx.Response(200, json={"token": "temp-token"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(respond)) as http_client:
        client = AssemblyAIClient(handler, "test-key", http_client=http_client)
        token = await client.fetch_credential()

    assert token == "temp-token"
    assert requests[0].headers["authorization"] == "test-key"
    assert json.loads(requests[0].content) == {"expires_in": 3600}


@pytest.mark.asyncio
async def test_connect_send_and_close(handler, received):
    client = ScriptedAssemblyAIClient(handler)

    assert not await client.send_audio(b"\x00\x00")
    assert client.frames_dropped == 1

    await client.connect()
    assert client.state is ConnectionState.OPEN
    assert "token=temp-token" in client.opened_url

    assert await client.send_audio(b"\x00\x00")
    client.socket.feed(final("My package never arrived", 0.95))

    await client.close()
    await client.close()

    assert client.state is ConnectionState.CLOSED
    assert client.socket.closed
    terminations = [m for m in client.socket.sent if "terminate_session" in m]
    assert len(terminations) == 1
    assert [event.text for event in received] == ["My package never arrived"]


@pytest.mark.asyncio
async def test_connect_timeout_raises_connect_error(handler):
    client = ScriptedAssemblyAIClient(
        handler, open_gate=asyncio.Event(), connect_timeout=0.05, connect_attempts=1
    )

    with pytest.raises(ConnectError):
        await client.connect()

    assert client.state is ConnectionState.FAILED


@pytest.mark.asyncio
async def test_close_while_connecting_closes_new_socket(handler):
    gate = asyncio.Event()
    client = ScriptedAssemblyAIClient(handler, open_gate=gate)

    connecting = asyncio.create_task(client.connect())
    await asyncio.sleep(0.01)
    assert client.state is ConnectionState.CONNECTING

    await client.close()
    gate.set()

    with pytest.raises(ConnectError):
        await connecting

    assert client.socket.closed
    assert client.state is ConnectionState.CLOSED


# 20 ms of 8 kHz PCM16
FRAME_20MS = b"\x01\x00" * 160


async def wait_until(predicate):
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


async def wait_for_state(client, *states):
    await wait_until(lambda: client.state in states)


def abnormal_close():
    return ConnectionClosedError(Close(1011, "internal error"), None)


@pytest.mark.asyncio
async def test_assemblyai_batches_audio_into_100ms_chunks(handler):
    client = ScriptedAssemblyAIClient(handler)
    await client.connect()

    for _ in range(4):
        assert await client.send_audio(FRAME_20MS)
    assert client.socket.audio_sent() == []

    assert await client.send_audio(FRAME_20MS)
    assert [len(chunk) for chunk in client.socket.audio_sent()] == [1600]

    await client.send_audio(FRAME_20MS)
    await client.send_audio(FRAME_20MS)
    assert client.buffered_ms == 40

    await client.close()

    # The partial chunk goes out before the session is terminated
    assert [len(chunk) for chunk in client.socket.audio_sent()] == [1600, 640]
    assert "terminate_session" in client.socket.sent[-1]
    assert client.frames_sent == 7
    assert client.chunks_sent == 2


@pytest.mark.asyncio
async def test_oversized_audio_is_split_at_max_chunk(handler):
    client = ScriptedAssemblyAIClient(handler, max_chunk_ms=200)
    await client.connect()

    await client.send_audio(FRAME_20MS * 25)

    assert [len(chunk) for chunk in client.socket.audio_sent()] == [3200, 3200, 1600]

    await client.close()


def test_chunk_sizes_follow_sample_rate(handler):
    assert AssemblyAIClient(handler, "test-key").min_chunk_bytes == 1600
    assert AssemblyAIClient(handler, "test-key", sample_rate=16000).min_chunk_bytes == 3200
    assert DeepgramClient(handler, "test-key").min_chunk_bytes == 0


@pytest.mark.asyncio
async def test_connect_retries_failed_attempt(handler):
    socket = FakeUpstreamSocket()
    client = ScriptedAssemblyAIClient(handler, sockets=[OSError("connection refused"), socket])

    await client.connect()

    assert client.opens == 2
    assert client.state is ConnectionState.OPEN
    assert client.socket is socket

    await client.close()


@pytest.mark.asyncio
async def test_reconnects_after_abnormal_close(handler, received):
    first, second = FakeUpstreamSocket(), FakeUpstreamSocket()
    client = ScriptedAssemblyAIClient(handler, sockets=[first, second])
    await client.connect()

    await client.send_audio(FRAME_20MS)
    first.feed(abnormal_close())
    await wait_until(lambda: client.reconnects == 1)

    assert client.opens == 2
    assert client.reconnects == 1
    assert client.socket is second

    for _ in range(5):
        await client.send_audio(FRAME_20MS)
    second.feed(final("My package never arrived", 0.95))

    await client.close()

    # Audio buffered for the lost socket is not replayed
    assert first.audio_sent() == []
    assert [len(chunk) for chunk in second.audio_sent()] == [1600]
    assert [event.text for event in received] == ["My package never arrived"]
    assert client.state is ConnectionState.CLOSED


@pytest.mark.asyncio
async def test_reconnect_gives_up_after_attempts(handler):
    first = FakeUpstreamSocket()
    client = ScriptedAssemblyAIClient(handler, sockets=[first], connect_attempts=2)
    await client.connect()

    first.feed(abnormal_close())
    await wait_for_state(client, ConnectionState.FAILED)

    assert client.opens == 3
    assert client.reconnects == 0
    assert not await client.send_audio(FRAME_20MS)
    assert client.frames_dropped == 1

    await client.close()
    assert client.state is ConnectionState.CLOSED


@pytest.mark.asyncio
async def test_normal_close_does_not_reconnect(handler):
    first = FakeUpstreamSocket()
    client = ScriptedAssemblyAIClient(handler, sockets=[first, FakeUpstreamSocket()])
    await client.connect()

    first.feed(None)
    await wait_for_state(client, ConnectionState.CLOSED)
    await asyncio.sleep(0.05)

    assert client.opens == 1
    assert client.state is ConnectionState.CLOSED


@pytest.mark.asyncio
async def test_close_cancels_pending_reconnect(handler):
    first = FakeUpstreamSocket()
    client = ScriptedAssemblyAIClient(handler, sockets=[first, FakeUpstreamSocket()], reconnect_delay=30)
    await client.connect()

    first.feed(abnormal_close())
    await wait_for_state(client, ConnectionState.RECONNECTING)

    await client.close()
    await asyncio.sleep(0.05)

    assert client.opens == 1
    assert client.state is ConnectionState.CLOSED


def test_deepgram_wire_format(handler):
    client = DeepgramClient(handler, "test-key", listen_url="wss://speech.test/listen")

    url = client.build_url("temp-token")

    assert url.startswith("wss://speech.test/listen?encoding=linear16&sample_rate=8000&channels=1")
    assert "interim_results=true" in url
    assert client.build_headers("temp-token") == {"Authorization": "Bearer temp-token"}
    assert client.encode_audio(b"\x01\x02") == b"\x01\x02"


def test_deepgram_parses_results(handler):
    client = DeepgramClient(handler, "test-key")
    message = {
        "type": "Results",
        "is_final": True,
        "channel": {"alternatives": [{"transcript": "Where is my order", "confidence": 0.88}]},
    }

    event = client.parse_event(json.dumps(message))

    assert event.is_final
    assert event.text == "Where is my order"
    assert event.confidence == 0.88
    assert client.parse_event(json.dumps({"type": "Metadata", "request_id": "r-1"})) is None


def test_factory_selects_provider(handler):
    settings = Settings(speech_provider="deepgram", deepgram_api_key="dg-key")

    client = get_transcription_client(handler, settings)

    assert isinstance(client, DeepgramClient)
    assert client.api_key == "dg-key"

    with pytest.raises(ValueError):
        get_transcription_client(handler, settings, provider="whisper")


def test_factory_applies_chunk_and_retry_settings(handler):
    settings = Settings(
        assemblyai_api_key="aai-key",
        assemblyai_min_chunk_ms=200,
        upstream_connect_attempts=5,
        upstream_reconnect_delay=0.5,
    )

    client = get_transcription_client(handler, settings)

    assert isinstance(client, AssemblyAIClient)
    assert client.min_chunk_bytes == 3200
    assert client.connect_attempts == 5
    assert client.reconnect_delay == 0.5
