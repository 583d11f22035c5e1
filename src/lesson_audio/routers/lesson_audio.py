"""Lesson audio routes: one-shot synthesis and the progressive audio session."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from sse_starlette.sse import EventSourceResponse

from ..schemas.audio import (
    GenerateAudioRequest,
    PlaybackModel,
    SegmentEndedRequest,
    SessionModel,
    StartSessionRequest,
)
from ..services.tts.errors import (
    NoActiveSession,
    SegmentationEmpty,
    SynthesisFailed,
    TTSServiceError,
)
from ..services.tts.progressive import ProgressiveAudioSession, SessionSnapshot
from ..services.tts_service import TTSService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["lesson-audio"])

# Pending snapshots per SSE client; older ones are dropped for a slow reader.
SSE_QUEUE_SIZE = 16


def get_tts_service(request: Request) -> TTSService:
    service = getattr(request.app.state, "tts_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="TTS service is not available")
    return service


def get_audio_session(request: Request) -> ProgressiveAudioSession:
    session = getattr(request.app.state, "audio_session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Audio pipeline is not available")
    return session


def latest_snapshot_listener(
    queue: "asyncio.Queue[SessionSnapshot]",
) -> Callable[[SessionSnapshot], None]:
    """Feed snapshots into a bounded queue, evicting the oldest when full."""

    def listener(snapshot: SessionSnapshot) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(snapshot)

    return listener


def _session_payload(snapshot: SessionSnapshot) -> dict[str, Any]:
    return SessionModel.from_snapshot(snapshot).to_payload()


def _synthesis_error_response(
    exc: SynthesisFailed, session: ProgressiveAudioSession
) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={
            "error": f"Failed to generate audio for paragraph {exc.index}",
            "details": exc.details,
            "retryable": exc.retryable,
            "session": _session_payload(session.snapshot()),
        },
    )


@router.post("/generate-lesson-audio", response_model=None)
async def generate_lesson_audio(
    payload: GenerateAudioRequest,
    tts_service: TTSService = Depends(get_tts_service),
) -> Response:
    """Stream WAV audio for one block of text."""

    stream = tts_service.stream_synthesize(
        payload.text,
        sample_rate=payload.sample_rate,
        precision=payload.precision,
    )

    # Pull the first chunk before committing to a 200 so errors keep their status.
    try:
        first_chunk = await stream.__anext__()
    except StopAsyncIteration:
        exc = TTSServiceError(502, "TTS provider returned empty audio", retryable=True)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    except TTSServiceError as exc:
        logger.error(f"Audio generation error: {exc}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    async def audio_body():
        try:
            yield first_chunk
            async for chunk in stream:
                yield chunk
        except TTSServiceError as exc:
            logger.error(f"Audio stream aborted mid-response: {exc}")
        finally:
            await stream.aclose()

    return StreamingResponse(audio_body(), media_type="audio/wav")


@router.post("/lesson-audio/session", response_model=SessionModel)
async def start_session(
    payload: StartSessionRequest,
    session: ProgressiveAudioSession = Depends(get_audio_session),
) -> Any:
    try:
        snapshot = await session.start_session(
            payload.lesson, payload.content, sample_rate=payload.sample_rate
        )
    except SegmentationEmpty as exc:
        return JSONResponse(
            status_code=422,
            content={"error": "no content", "details": str(exc), "retryable": False},
        )
    except SynthesisFailed as exc:
        return _synthesis_error_response(exc, session)
    return SessionModel.from_snapshot(snapshot)


@router.get("/lesson-audio/session", response_model=SessionModel)
async def get_session(
    session: ProgressiveAudioSession = Depends(get_audio_session),
) -> SessionModel:
    if session.lesson is None:
        raise HTTPException(status_code=404, detail="No lesson audio session")
    return SessionModel.from_snapshot(session.snapshot())


@router.get("/lesson-audio/session/events", response_model=None)
async def stream_session_events(
    session: ProgressiveAudioSession = Depends(get_audio_session),
) -> EventSourceResponse:
    """Push a session snapshot every time a status, count or playback state changes."""

    queue: asyncio.Queue[SessionSnapshot] = asyncio.Queue(maxsize=SSE_QUEUE_SIZE)
    listener = latest_snapshot_listener(queue)

    async def event_publisher():
        session.add_listener(listener)
        try:
            yield {"event": "session", "data": json.dumps(_session_payload(session.snapshot()))}
            while True:
                snapshot = await queue.get()
                yield {"event": "session", "data": json.dumps(_session_payload(snapshot))}
        finally:
            session.remove_listener(listener)

    return EventSourceResponse(event_publisher())


@router.post("/lesson-audio/session/paragraphs/{index}/retry", response_model=SessionModel)
async def retry_paragraph(
    index: int,
    session: ProgressiveAudioSession = Depends(get_audio_session),
) -> Any:
    try:
        await session.retry_paragraph(index)
    except NoActiveSession as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SynthesisFailed as exc:
        return _synthesis_error_response(exc, session)
    return SessionModel.from_snapshot(session.snapshot())


@router.get("/lesson-audio/session/paragraphs/{index}/audio", response_model=None)
async def get_paragraph_audio(
    index: int,
    session: ProgressiveAudioSession = Depends(get_audio_session),
) -> Response:
    try:
        handle = session.audio_for(index)
    except NoActiveSession as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if handle is None:
        raise HTTPException(status_code=409, detail=f"Paragraph {index} audio is not ready")
    return Response(content=handle.data, media_type=handle.media_type)


@router.post("/lesson-audio/session/play-pause", response_model=PlaybackModel)
async def play_pause(
    session: ProgressiveAudioSession = Depends(get_audio_session),
) -> PlaybackModel:
    try:
        snapshot = session.play_pause()
    except NoActiveSession as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return PlaybackModel.from_snapshot(snapshot)


@router.post("/lesson-audio/session/segment-ended", response_model=PlaybackModel)
async def segment_ended(
    payload: SegmentEndedRequest,
    session: ProgressiveAudioSession = Depends(get_audio_session),
) -> PlaybackModel:
    try:
        snapshot = session.segment_ended(payload.index)
    except NoActiveSession as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return PlaybackModel.from_snapshot(snapshot)


@router.delete("/lesson-audio/session", status_code=204)
async def teardown_session(
    session: ProgressiveAudioSession = Depends(get_audio_session),
) -> Response:
    session.teardown_session()
    return Response(status_code=204)


__all__ = [
    "get_audio_session",
    "get_tts_service",
    "latest_snapshot_listener",
    "router",
]
