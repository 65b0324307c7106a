"""Tests for settings validation"""

import pytest

from callrelay.config import Settings
from callrelay.relay.errors import ConfigurationError


def test_missing_speech_key_is_fatal():
    settings = Settings(speech_provider="assemblyai", assemblyai_api_key="")

    with pytest.raises(ConfigurationError) as exc_info:
        settings.validate_relay()

    assert "ASSEMBLYAI_API_KEY" in str(exc_info.value)


def test_valid_configuration_passes():
    settings = Settings(speech_provider="deepgram", deepgram_api_key="dg-key")

    settings.validate_relay()


def test_stream_url_uses_websocket_scheme():
    settings = Settings(relay_public_url="https://relay.example.com/")

    assert settings.relay_stream_url == "wss://relay.example.com/relay/media-stream"
