"""Deepgram live transcription client"""

import json
from typing import Dict, Optional, Union
from urllib.parse import urlencode

from callrelay.relay.errors import CredentialError
from callrelay.relay.upstream.base import BaseTranscriptionClient, TranscriptEvent


class DeepgramClient(BaseTranscriptionClient):
    """Deepgram live streaming provider; audio goes out as binary frames"""

    provider = "deepgram"

    def __init__(
        self,
        handler,
        api_key: str,
        grant_url: str = "https://api.deepgram.com/v1/auth/grant",
        listen_url: str = "wss://api.deepgram.com/v1/listen",
        model: str = "nova-2-phonecall",
        token_ttl: int = 30,
        **kwargs,
    ):
        super().__init__(handler, api_key, **kwargs)
        self.grant_url = grant_url
        self.listen_url = listen_url
        self.model = model
        self.token_ttl = token_ttl

    @classmethod
    def from_settings(cls, handler, settings) -> "DeepgramClient":
        return cls(
            handler,
            settings.deepgram_api_key,
            grant_url=settings.deepgram_grant_url,
            listen_url=settings.deepgram_listen_url,
            model=settings.deepgram_model,
            **cls.settings_kwargs(settings),
        )

    async def fetch_credential(self) -> str:
        """Grant a temporary access token for the live socket"""
        data = await self._request_credential(
            self.grant_url,
            headers={"Authorization": f"Token {self.api_key}"},
            payload={"ttl_seconds": self.token_ttl},
        )
        token = data.get("access_token")
        if not token:
            raise CredentialError("deepgram grant response did not contain an access token")
        return token

    def build_url(self, token: str) -> str:
        query = urlencode({
            "encoding": "linear16",
            "sample_rate": self.sample_rate,
            "channels": 1,
            "model": self.model,
            "language": "en",
            "punctuate": "true",
            "smart_format": "true",
            "interim_results": "true",
            "endpointing": 300,
        })
        return f"{self.listen_url}?{query}"

    def build_headers(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def encode_audio(self, pcm: bytes) -> bytes:
        return pcm

    def terminate_message(self) -> str:
        return json.dumps({"type": "CloseStream"})

    def parse_event(self, raw: Union[str, bytes]) -> Optional[TranscriptEvent]:
        message = json.loads(raw)
        message_type = message.get("type")

        if message_type == "Results":
            alternative = message["channel"]["alternatives"][0]
            return TranscriptEvent(
                text=alternative.get("transcript") or "",
                is_final=bool(message.get("is_final")),
                confidence=alternative.get("confidence"),
            )

        if message_type == "Metadata":
            self.log.debug("Deepgram metadata", request_id=message.get("request_id"))
        elif message_type == "Error" or "err_code" in message:
            self.log.error("Deepgram error", error=message.get("description") or message.get("err_msg"))

        return None
