"""AssemblyAI realtime transcription client"""

import base64
import json
from typing import Optional, Union
from urllib.parse import urlencode

from callrelay.relay.errors import CredentialError
from callrelay.relay.upstream.base import BaseTranscriptionClient, TranscriptEvent


class AssemblyAIClient(BaseTranscriptionClient):
    """AssemblyAI realtime (v2) streaming provider"""

    provider = "assemblyai"

    def __init__(
        self,
        handler,
        api_key: str,
        token_url: str = "https://api.assemblyai.com/v2/realtime/token",
        realtime_url: str = "wss://api.assemblyai.com/v2/realtime/ws",
        token_expires_in: int = 3600,
        **kwargs,
    ):
        # The realtime API rejects chunks shorter than 100 ms
        kwargs.setdefault("min_chunk_ms", 100)
        super().__init__(handler, api_key, **kwargs)
        self.token_url = token_url
        self.realtime_url = realtime_url
        self.token_expires_in = token_expires_in
        self.session_id: Optional[str] = None

    @classmethod
    def from_settings(cls, handler, settings) -> "AssemblyAIClient":
        return cls(
            handler,
            settings.assemblyai_api_key,
            token_url=settings.assemblyai_token_url,
            realtime_url=settings.assemblyai_realtime_url,
            token_expires_in=settings.assemblyai_token_expires_in,
            min_chunk_ms=settings.assemblyai_min_chunk_ms,
            max_chunk_ms=settings.assemblyai_max_chunk_ms,
            **cls.settings_kwargs(settings),
        )

    async def fetch_credential(self) -> str:
        """Exchange the API key for a temporary realtime token"""
        data = await self._request_credential(
            self.token_url,
            headers={"authorization": self.api_key},
            payload={"expires_in": self.token_expires_in},
        )
        token = data.get("token")
        if not token:
            raise CredentialError("assemblyai token response did not contain a token")
        return token

    def build_url(self, token: str) -> str:
        query = urlencode({"sample_rate": self.sample_rate, "token": token})
        return f"{self.realtime_url}?{query}"

    def encode_audio(self, pcm: bytes) -> str:
        return json.dumps({"audio_data": base64.b64encode(pcm).decode("ascii")})

    def terminate_message(self) -> str:
        return json.dumps({"terminate_session": True})

    def parse_event(self, raw: Union[str, bytes]) -> Optional[TranscriptEvent]:
        message = json.loads(raw)
        message_type = message.get("message_type")

        if message_type == "PartialTranscript":
            return TranscriptEvent(
                text=message.get("text") or "",
                is_final=False,
                confidence=message.get("confidence"),
            )

        if message_type == "FinalTranscript":
            return TranscriptEvent(
                text=message.get("text") or "",
                is_final=True,
                confidence=message.get("confidence"),
            )

        if message_type == "SessionBegins":
            self.session_id = message.get("session_id")
            self.log.info("AssemblyAI session began", session_id=self.session_id)
        elif message_type == "SessionTerminated":
            self.log.info("AssemblyAI session terminated", session_id=self.session_id)
        elif "error" in message:
            self.log.error("AssemblyAI error", error=message["error"])

        return None
