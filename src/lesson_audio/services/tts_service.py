import json
import logging
from typing import AsyncIterator, Optional

import httpx

from lesson_audio.config import SUPPORTED_SAMPLE_RATES, Settings, get_settings
from lesson_audio.services.tts.errors import TTSServiceError

logger = logging.getLogger(__name__)

AUDIO_PRECISIONS = ("MULAW", "PCM_16", "PCM_32")


class TTSService:
    """
    Client for the Resemble AI streaming synthesis endpoint.

    Uses a singleton httpx.AsyncClient for connection pooling across requests.

    - stream_synthesize() yields WAV bytes as they arrive from the provider
    - synthesize() buffers the whole response for callers that need one blob
    """

    # Singleton HTTP client for connection pooling
    _http_client: Optional[httpx.AsyncClient] = None

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._injected_client = http_client

        self.api_key = (
            self.settings.resemble_api_key.get_secret_value()
            if self.settings.resemble_api_key
            else None
        )
        self.stream_url = str(self.settings.resemble_stream_endpoint)
        self.voice_uuid = self.settings.resemble_voice_uuid
        self.project_uuid = self.settings.resemble_project_uuid

        if not self.settings.tts_configured:
            logger.warning("Resemble AI is not fully configured. TTS will not be available.")
        else:
            logger.info(f"TTS provider available: resemble ({self.stream_url})")

    @classmethod
    def get_http_client(cls, timeout: float = 60.0) -> httpx.AsyncClient:
        """Get singleton HTTP client for connection pooling."""
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(timeout=timeout)
            logger.info("Created singleton httpx.AsyncClient for TTS")
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """Close the singleton HTTP client. Call on app shutdown."""
        if cls._http_client is not None:
            await cls._http_client.aclose()
            cls._http_client = None
            logger.info("Closed TTS HTTP client")

    def _client(self) -> httpx.AsyncClient:
        if self._injected_client is not None:
            return self._injected_client
        return self.get_http_client(self.settings.tts_timeout)

    def _build_payload(
        self, text: str, sample_rate: Optional[int], precision: Optional[str]
    ) -> dict:
        if not self.api_key or not self.voice_uuid or not self.project_uuid:
            raise TTSServiceError(
                500, "Missing Resemble AI configuration", retryable=False
            )
        if not text or not text.strip():
            raise TTSServiceError(400, "Invalid request body", "text is empty", False)

        rate = sample_rate or self.settings.tts_sample_rate
        if rate not in SUPPORTED_SAMPLE_RATES:
            raise TTSServiceError(
                400, "Invalid request body", f"unsupported sample rate {rate}", False
            )
        chosen_precision = precision or self.settings.tts_precision
        if chosen_precision not in AUDIO_PRECISIONS:
            raise TTSServiceError(
                400,
                "Invalid request body",
                f"unsupported precision {chosen_precision}",
                False,
            )

        return {
            "project_uuid": self.project_uuid,
            "voice_uuid": self.voice_uuid,
            "data": text,
            "sample_rate": rate,
            "precision": chosen_precision,
        }

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "audio/wav",
        }

    async def stream_synthesize(
        self,
        text: str,
        *,
        sample_rate: Optional[int] = None,
        precision: Optional[str] = None,
    ) -> AsyncIterator[bytes]:
        """
        Stream synthesized WAV audio for `text`.

        Raises:
            TTSServiceError: configuration, validation, transport or provider failure
        """
        payload = self._build_payload(text, sample_rate, precision)
        client = self._client()

        try:
            async with client.stream(
                "POST", self.stream_url, headers=self._headers, json=payload
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise self._error_from_response(response.status_code, body)

                async for chunk in response.aiter_bytes():
                    if chunk:
                        yield chunk
        except httpx.TimeoutException as exc:
            logger.error(f"TTS request timed out: {exc}")
            raise TTSServiceError(504, "TTS request timed out", str(exc), True) from exc
        except httpx.RequestError as exc:
            logger.error(f"Network error contacting TTS provider: {exc}")
            raise TTSServiceError(
                502, "Network error contacting TTS provider", str(exc), True
            ) from exc

    async def synthesize(
        self,
        text: str,
        *,
        sample_rate: Optional[int] = None,
        precision: Optional[str] = None,
    ) -> bytes:
        """Synthesize `text` and return the complete WAV payload."""
        buffer = bytearray()
        async for chunk in self.stream_synthesize(
            text, sample_rate=sample_rate, precision=precision
        ):
            buffer.extend(chunk)
        if not buffer:
            raise TTSServiceError(502, "TTS provider returned empty audio", retryable=True)
        return bytes(buffer)

    @staticmethod
    def _error_from_response(status_code: int, body: bytes) -> TTSServiceError:
        error = f"TTS request failed ({status_code})"
        details: Optional[str] = None
        retryable: Optional[bool] = None
        try:
            data = json.loads(body.decode("utf-8")) if body else None
        except (UnicodeDecodeError, ValueError):
            data = None
            details = body.decode("utf-8", errors="replace")[:500] or None

        if isinstance(data, dict):
            error = str(data.get("error") or data.get("message") or error)
            raw_details = data.get("details") or data.get("detail")
            if raw_details is not None:
                details = str(raw_details)
            if isinstance(data.get("retryable"), bool):
                retryable = data["retryable"]

        logger.error(f"TTS provider error {status_code}: {error}" + (f" ({details})" if details else ""))
        return TTSServiceError(status_code, error, details, retryable)


__all__ = ["AUDIO_PRECISIONS", "TTSService"]
