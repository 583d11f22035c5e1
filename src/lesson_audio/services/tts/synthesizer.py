"""
Single-paragraph synthesis.

Turns one paragraph of lesson text into a playable AudioHandle by issuing one
request to the TTS provider and buffering the complete WAV payload. This is the
unit of failure and retry for the progressive pipeline; it never retries on
its own.

Usage:
    synthesizer = ParagraphSynthesizer(tts_service, sample_rate=22050)
    handle = await synthesizer.synthesize(0, "Hello world.", measure_latency=True)
    wav_bytes = handle.data
    ...
    handle.release()
"""

import logging
import time
from typing import TYPE_CHECKING, Callable, Optional

from lesson_audio.config import DEFAULT_SAMPLE_RATE, SUPPORTED_SAMPLE_RATES
from lesson_audio.services.tts.errors import AudioHandleReleased, SynthesisFailed, TTSServiceError

if TYPE_CHECKING:
    from lesson_audio.services.tts_service import TTSService

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 10000


class AudioHandle:
    """
    Playable audio for one paragraph.

    The handle owns its buffered bytes until `release()` is called. Release
    is idempotent: the bytes are dropped and the release hook fires exactly
    once, no matter how many owners ask.

    Attributes:
        sample_rate: Sample rate the audio was synthesized at
        media_type: MIME type of the payload
        time_to_first_sound_ms: Latency to the first audio byte, recorded only
            for the first paragraph of a session
    """

    def __init__(
        self,
        data: bytes,
        *,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        media_type: str = "audio/wav",
        time_to_first_sound_ms: Optional[float] = None,
        on_release: Optional[Callable[["AudioHandle"], None]] = None,
    ):
        self._data: Optional[bytes] = data
        self._size = len(data)
        self.sample_rate = sample_rate
        self.media_type = media_type
        self.time_to_first_sound_ms = time_to_first_sound_ms
        self._on_release = on_release

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise AudioHandleReleased("Audio handle has been released")
        return self._data

    @property
    def size(self) -> int:
        return self._size

    @property
    def released(self) -> bool:
        return self._data is None

    def release(self) -> None:
        """Free the audio bytes and notify the release hook once."""
        if self._data is None:
            return
        self._data = None
        hook, self._on_release = self._on_release, None
        if hook is not None:
            hook(self)

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self._size} bytes"
        return f"<AudioHandle {state} @{self.sample_rate}Hz>"


class ParagraphSynthesizer:
    """Produce one AudioHandle per paragraph from the TTS provider."""

    def __init__(
        self,
        tts_service: "TTSService",
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        precision: str = "PCM_16",
        on_release: Optional[Callable[[AudioHandle], None]] = None,
    ):
        if sample_rate not in SUPPORTED_SAMPLE_RATES:
            raise ValueError(
                f"Unsupported sample rate {sample_rate}; expected one of {SUPPORTED_SAMPLE_RATES}"
            )
        self.tts_service = tts_service
        self.sample_rate = sample_rate
        self.precision = precision
        self._on_release = on_release

    def with_sample_rate(self, sample_rate: int) -> "ParagraphSynthesizer":
        """Return a synthesizer sharing this TTS service at another sample rate."""
        if sample_rate == self.sample_rate:
            return self
        return ParagraphSynthesizer(
            self.tts_service,
            sample_rate=sample_rate,
            precision=self.precision,
            on_release=self._on_release,
        )

    async def synthesize(
        self,
        index: int,
        text: str,
        *,
        measure_latency: bool = False,
    ) -> AudioHandle:
        """
        Synthesize a single paragraph and buffer the full response.

        Args:
            index: Paragraph position, used for error reporting
            text: Paragraph text (1-10000 characters)
            measure_latency: Record time-to-first-sound on the handle

        Raises:
            SynthesisFailed: transport error, provider error or empty audio
        """
        text = text.strip()
        if not text:
            raise SynthesisFailed(index, "paragraph text is empty", retryable=False)
        if len(text) > MAX_TEXT_LENGTH:
            raise SynthesisFailed(
                index,
                f"paragraph text exceeds {MAX_TEXT_LENGTH} characters",
                retryable=False,
            )

        start_time = time.monotonic()
        first_chunk_ms: Optional[float] = None
        buffer = bytearray()

        try:
            async for chunk in self.tts_service.stream_synthesize(
                text,
                sample_rate=self.sample_rate,
                precision=self.precision,
            ):
                if not chunk:
                    continue
                if first_chunk_ms is None and measure_latency:
                    first_chunk_ms = (time.monotonic() - start_time) * 1000
                    logger.info(f"🎵 First audio chunk in {first_chunk_ms:.0f}ms")
                buffer.extend(chunk)
        except TTSServiceError as exc:
            raise SynthesisFailed(index, exc, retryable=exc.retryable) from exc
        except Exception as exc:
            raise SynthesisFailed(index, exc) from exc

        if not buffer:
            raise SynthesisFailed(index, "TTS provider returned an empty audio payload")

        elapsed = (time.monotonic() - start_time) * 1000
        logger.debug(
            f"Paragraph {index} synthesized: {len(buffer)} bytes in {elapsed:.0f}ms"
        )
        return AudioHandle(
            bytes(buffer),
            sample_rate=self.sample_rate,
            time_to_first_sound_ms=first_chunk_ms,
            on_release=self._on_release,
        )


__all__ = ["AudioHandle", "MAX_TEXT_LENGTH", "ParagraphSynthesizer"]
