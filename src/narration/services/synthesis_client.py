import logging
from typing import Any, Optional, Tuple

import httpx
from fastapi import status

from narration.config import Settings, get_settings
from narration.errors import SynthesisError
from narration.services.tts.audio_resource import AudioResource
from narration.services.tts.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class SpeechSynthesisClient:
    """
    Client for the ElevenLabs text-to-speech endpoint.

    One call to synthesize() issues exactly one POST for one paragraph and
    hands back an AudioResource whose bytes are already fully downloaded.
    Nothing is retried: a failed request surfaces as SynthesisError and the
    playback controller decides what happens to the session.

    Uses a singleton httpx.AsyncClient for connection pooling across
    requests unless a client is injected.
    """

    # Singleton HTTP client for connection pooling
    _http_client: Optional[httpx.AsyncClient] = None

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings()
        self._injected_client = http_client

        self.api_key = (
            self._settings.elevenlabs_api_key.get_secret_value()
            if self._settings.elevenlabs_api_key else None
        )
        self.base_url = str(self._settings.elevenlabs_base_url).rstrip("/")
        self.voice_id = self._settings.voice_id

        if not self.api_key:
            logger.warning("No ElevenLabs API key configured. Narration will not be available.")
        else:
            logger.info(f"Narration voice: {self.voice_id} ({self._settings.model_id})")

    @classmethod
    def get_http_client(cls, timeout: float = 30.0) -> httpx.AsyncClient:
        """Get singleton HTTP client for connection pooling."""
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(timeout=timeout)
            logger.info("Created singleton httpx.AsyncClient for narration")
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """Close the singleton HTTP client. Call on app shutdown."""
        if cls._http_client is not None:
            await cls._http_client.aclose()
            cls._http_client = None
            logger.info("Closed narration HTTP client")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.voice_id}/stream"

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        if self._injected_client is not None:
            return self._injected_client
        return self.get_http_client(self._settings.request_timeout)

    def _headers(self) -> dict[str, str]:
        return {
            "xi-api-key": self.api_key or "",
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }

    def build_payload(self, text: str) -> dict[str, Any]:
        return {
            "text": text,
            "model_id": self._settings.model_id,
            "voice_settings": {
                "stability": self._settings.stability,
                "similarity_boost": self._settings.similarity_boost,
            },
        }

    async def synthesize(
        self,
        text: str,
        token: CancellationToken,
        *,
        paragraph_index: int = 0,
    ) -> AudioResource:
        """
        Synthesize one paragraph.

        Raises SynthesisCancelled if the token fires before the audio is
        downloaded (the request is cancelled, not left running) and
        SynthesisError for any other failure.
        """
        token.raise_if_cancelled()

        if not self.api_key:
            raise SynthesisError(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                "ElevenLabs API key not configured",
            )

        audio_data, content_type = await token.guard(self._request_audio(text))
        return AudioResource(
            audio_data,
            content_type=content_type,
            paragraph_index=paragraph_index,
            text=text,
        )

    async def _request_audio(self, text: str) -> Tuple[bytes, str]:
        client = self._client()
        try:
            response = await client.post(
                self.endpoint,
                headers=self._headers(),
                json=self.build_payload(text),
                timeout=self._settings.request_timeout,
            )
        except httpx.HTTPError as exc:
            logger.error(f"ElevenLabs TTS transport error: {exc}")
            raise SynthesisError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.is_error:
            detail = self._error_detail(response)
            logger.error(f"ElevenLabs TTS HTTP Error: {response.status_code} - {detail}")
            raise SynthesisError(response.status_code, detail)

        audio_data = response.content
        if not audio_data:
            raise SynthesisError(status.HTTP_502_BAD_GATEWAY, "Empty audio payload")

        content_type = response.headers.get("content-type", "audio/mpeg").split(";")[0].strip()
        logger.info(f"ElevenLabs TTS synthesized {len(audio_data)} bytes for text: {text[:50]}...")
        return audio_data, content_type or "audio/mpeg"

    @staticmethod
    def _error_detail(response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict) and "detail" in body:
            return body["detail"]
        return body


__all__ = ["SpeechSynthesisClient"]
