"""Error taxonomy for the paragraph audio pipeline."""

from __future__ import annotations

from typing import Optional


class SegmentationEmpty(Exception):
    """Lesson text produced no paragraphs; nothing to show or play."""

    def __init__(self, lesson_id: str):
        super().__init__(f"Lesson {lesson_id!r} has no content")
        self.lesson_id = lesson_id


class SynthesisFailed(Exception):
    """Audio for a single paragraph could not be produced.

    Always recoverable: the caller may retry the paragraph explicitly.
    """

    def __init__(
        self,
        index: int,
        cause: BaseException | str,
        *,
        retryable: bool = True,
    ):
        super().__init__(f"Synthesis failed for paragraph {index}: {cause}")
        self.index = index
        self.cause = cause
        self.retryable = retryable

    @property
    def details(self) -> str:
        return str(self.cause)


class CacheDisposalRace(Warning):
    """Two different handles were stored under the same cache key."""


class AudioHandleReleased(RuntimeError):
    """The audio behind a handle has already been freed."""


class NoActiveSession(RuntimeError):
    """An operation needs a lesson-view session but none is running."""


class InvalidStatusTransition(RuntimeError):
    def __init__(self, index: int, current: str, target: str):
        super().__init__(
            f"Paragraph {index}: illegal status transition {current} -> {target}"
        )
        self.index = index
        self.current = current
        self.target = target


class TTSServiceError(Exception):
    """Wrap transport or API failures when talking to the TTS provider."""

    def __init__(
        self,
        status_code: int,
        error: str,
        details: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(error if not details else f"{error}: {details}")
        self.status_code = status_code
        self.error = error
        self.details = details
        if retryable is None:
            retryable = status_code == 429 or status_code >= 500
        self.retryable = retryable

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": self.error, "retryable": self.retryable}
        if self.details:
            payload["details"] = self.details
        return payload


__all__ = [
    "AudioHandleReleased",
    "CacheDisposalRace",
    "InvalidStatusTransition",
    "NoActiveSession",
    "SegmentationEmpty",
    "SynthesisFailed",
    "TTSServiceError",
]
