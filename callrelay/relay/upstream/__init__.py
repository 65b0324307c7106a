"""Realtime speech-recognition clients"""

from typing import Optional

from callrelay.relay.upstream.base import (
    BaseTranscriptionClient,
    ConnectionState,
    TranscriptEvent,
    TranscriptHandler,
)
from callrelay.relay.upstream.assemblyai import AssemblyAIClient
from callrelay.relay.upstream.deepgram import DeepgramClient

PROVIDERS = {
    "assemblyai": AssemblyAIClient,
    "deepgram": DeepgramClient,
}


def get_transcription_client(
    handler: TranscriptHandler,
    settings,
    provider: Optional[str] = None,
) -> BaseTranscriptionClient:
    """Factory function to create the configured speech client"""
    provider = provider or settings.speech_provider
    client_class = PROVIDERS.get(provider)
    if not client_class:
        raise ValueError(f"Unknown speech provider: {provider}")

    return client_class.from_settings(handler, settings)


__all__ = [
    "BaseTranscriptionClient",
    "ConnectionState",
    "TranscriptEvent",
    "TranscriptHandler",
    "AssemblyAIClient",
    "DeepgramClient",
    "PROVIDERS",
    "get_transcription_client",
]
