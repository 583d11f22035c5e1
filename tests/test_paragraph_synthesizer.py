"""Tests for single-paragraph synthesis and audio handles."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest

from lesson_audio.services.tts.errors import AudioHandleReleased, SynthesisFailed
from lesson_audio.services.tts.synthesizer import AudioHandle, ParagraphSynthesizer


@pytest.mark.asyncio
async def test_synthesize_buffers_the_whole_stream(fake_tts):
    fake_tts.chunks_per_call = 3
    synthesizer = ParagraphSynthesizer(fake_tts)

    handle = await synthesizer.synthesize(0, "Hello world.")

    assert handle.data == b"RIFF:Hello world.:0RIFF:Hello world.:1RIFF:Hello world.:2"
    assert handle.sample_rate == 22050
    assert handle.media_type == "audio/wav"
    assert fake_tts.calls == ["Hello world."]


@pytest.mark.asyncio
async def test_latency_is_recorded_only_when_requested(fake_tts):
    synthesizer = ParagraphSynthesizer(fake_tts)

    measured = await synthesizer.synthesize(0, "first", measure_latency=True)
    unmeasured = await synthesizer.synthesize(1, "second")

    assert measured.time_to_first_sound_ms is not None
    assert measured.time_to_first_sound_ms >= 0
    assert unmeasured.time_to_first_sound_ms is None


@pytest.mark.asyncio
async def test_provider_error_becomes_synthesis_failed(fake_tts):
    fake_tts.fail("broken", status_code=503)
    synthesizer = ParagraphSynthesizer(fake_tts)

    with pytest.raises(SynthesisFailed) as excinfo:
        await synthesizer.synthesize(4, "broken")

    assert excinfo.value.index == 4
    assert excinfo.value.retryable is True
    assert "Service Unavailable" in excinfo.value.details


@pytest.mark.asyncio
async def test_empty_payload_is_a_failure(fake_tts):
    fake_tts.empty_on.add("silence")
    synthesizer = ParagraphSynthesizer(fake_tts)

    with pytest.raises(SynthesisFailed) as excinfo:
        await synthesizer.synthesize(2, "silence")

    assert excinfo.value.index == 2
    assert "empty" in excinfo.value.details


@pytest.mark.asyncio
async def test_transport_error_becomes_synthesis_failed():
    async def _broken_stream(text, *, sample_rate=None, precision=None):
        raise httpx.ConnectError("connection refused")
        yield b""  # pragma: no cover

    tts = MagicMock()
    tts.stream_synthesize = _broken_stream
    synthesizer = ParagraphSynthesizer(tts)

    with pytest.raises(SynthesisFailed) as excinfo:
        await synthesizer.synthesize(1, "hello")

    assert isinstance(excinfo.value.cause, httpx.ConnectError)
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_blank_or_oversized_text_fails_without_calling_provider(fake_tts):
    synthesizer = ParagraphSynthesizer(fake_tts)

    with pytest.raises(SynthesisFailed) as blank:
        await synthesizer.synthesize(0, "   ")
    with pytest.raises(SynthesisFailed) as oversized:
        await synthesizer.synthesize(0, "x" * 10001)

    assert blank.value.retryable is False
    assert oversized.value.retryable is False
    assert fake_tts.calls == []


def test_unsupported_sample_rate_is_rejected(fake_tts):
    with pytest.raises(ValueError):
        ParagraphSynthesizer(fake_tts, sample_rate=12345)


def test_with_sample_rate_shares_the_service(fake_tts):
    synthesizer = ParagraphSynthesizer(fake_tts)

    assert synthesizer.with_sample_rate(22050) is synthesizer
    other = synthesizer.with_sample_rate(44100)
    assert other.sample_rate == 44100
    assert other.tts_service is fake_tts


def test_release_is_idempotent_and_fires_hook_once():
    calls = []
    handle = AudioHandle(b"wav", on_release=calls.append)

    handle.release()
    handle.release()

    assert calls == [handle]
    assert handle.released
    assert handle.size == 3
    with pytest.raises(AudioHandleReleased):
        _ = handle.data


@pytest.mark.asyncio
async def test_synthesizer_release_hook_is_attached_to_handles(fake_tts):
    released = []
    synthesizer = ParagraphSynthesizer(fake_tts, on_release=released.append)

    handle = await synthesizer.synthesize(0, "hello")
    handle.release()

    assert released == [handle]
