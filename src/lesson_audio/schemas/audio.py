"""Pydantic models for lesson audio requests and session state."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lesson_audio.config import SUPPORTED_SAMPLE_RATES
from lesson_audio.schemas.lessons import Lesson
from lesson_audio.services.tts.progressive import SessionSnapshot
from lesson_audio.services.tts.playback import PlaybackSnapshot


def _check_sample_rate(value: Optional[int]) -> Optional[int]:
    if value is not None and value not in SUPPORTED_SAMPLE_RATES:
        raise ValueError(f"sampleRate must be one of {list(SUPPORTED_SAMPLE_RATES)}")
    return value


class GenerateAudioRequest(BaseModel):
    """Single-shot synthesis request, streamed back as WAV."""

    text: str = Field(..., min_length=1, max_length=10000)
    sample_rate: Optional[int] = Field(default=None, alias="sampleRate")
    precision: Optional[Literal["MULAW", "PCM_16", "PCM_32"]] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, value: Optional[int]) -> Optional[int]:
        return _check_sample_rate(value)


class StartSessionRequest(BaseModel):
    lesson: Lesson
    content: str
    sample_rate: Optional[int] = Field(default=None, alias="sampleRate")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, value: Optional[int]) -> Optional[int]:
        return _check_sample_rate(value)


class SegmentEndedRequest(BaseModel):
    index: int = Field(..., ge=0)


class ErrorBody(BaseModel):
    error: str
    details: Optional[str] = None
    retryable: Optional[bool] = None


class ParagraphStatusModel(BaseModel):
    index: int
    status: Literal["pending", "generating", "completed", "error"]
    error: Optional[str] = None
    retryable: Optional[bool] = None


class PlaybackModel(BaseModel):
    state: Literal["idle", "playing", "paused", "exhausted"]
    current_index: int = Field(..., alias="currentIndex")
    is_playing: bool = Field(..., alias="isPlaying")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_snapshot(cls, snapshot: PlaybackSnapshot) -> "PlaybackModel":
        return cls(
            state=snapshot.state.value,
            current_index=snapshot.current_index,
            is_playing=snapshot.is_playing,
        )


class SessionModel(BaseModel):
    lesson_id: Optional[str] = Field(default=None, alias="lessonId")
    active: bool
    state: Literal["initializing", "first_ready", "background_running", "background_complete"]
    paragraph_count: int = Field(..., alias="paragraphCount")
    ready_count: int = Field(..., alias="readyCount")
    paragraphs: List[ParagraphStatusModel]
    playback: Optional[PlaybackModel] = None
    time_to_first_sound_ms: Optional[float] = Field(
        default=None, alias="timeToFirstSoundMs"
    )

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> "SessionModel":
        return cls(
            lesson_id=snapshot.lesson_id,
            active=snapshot.active,
            state=snapshot.state.value,
            paragraph_count=snapshot.paragraph_count,
            ready_count=snapshot.ready_count,
            paragraphs=[
                ParagraphStatusModel(
                    index=slot.index,
                    status=slot.status.value,
                    error=slot.error,
                    retryable=slot.retryable,
                )
                for slot in snapshot.paragraphs
            ],
            playback=(
                PlaybackModel.from_snapshot(snapshot.playback)
                if snapshot.playback is not None
                else None
            ),
            time_to_first_sound_ms=snapshot.time_to_first_sound_ms,
        )

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


__all__ = [
    "ErrorBody",
    "GenerateAudioRequest",
    "ParagraphStatusModel",
    "PlaybackModel",
    "SegmentEndedRequest",
    "SessionModel",
    "StartSessionRequest",
]
