"""
Progressive paragraph audio generation.

One ProgressiveAudioSession drives the audio for the lesson currently on
screen:

    start_session(lesson, text)
        │
        ├─ split text into paragraphs
        ├─ synthesize paragraph 0 and wait for it        (INITIALIZING)
        ├─ enable playback                               (FIRST_READY)
        └─ background task: paragraphs 1..N-1, in order  (BACKGROUND_RUNNING)
                                                         (BACKGROUND_COMPLETE)

Paragraph 0 is on the latency-critical path, so nothing else is requested
until it resolves. The background task issues one request at a time in index
order; a failure marks only that paragraph and the loop moves on. Failed
paragraphs are retried only when the caller asks for it.

Everything runs on one event loop. The only suspension points are the
synthesizer calls, so statuses are re-read after every await and every
mutation is guarded by the session's cancellation token. Tearing a session
down never aborts in-flight requests; their results are released on arrival.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from lesson_audio.schemas.lessons import Lesson
from lesson_audio.services.tts.audio_cache import ParagraphAudioCache, cache_key
from lesson_audio.services.tts.errors import (
    InvalidStatusTransition,
    NoActiveSession,
    SegmentationEmpty,
    SynthesisFailed,
)
from lesson_audio.services.tts.playback import PlaybackSequencer, PlaybackSnapshot
from lesson_audio.services.tts.synthesizer import AudioHandle, ParagraphSynthesizer
from lesson_audio.services.tts.text_segmenter import Paragraph, build_paragraphs

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    INITIALIZING = "initializing"
    FIRST_READY = "first_ready"
    BACKGROUND_RUNNING = "background_running"
    BACKGROUND_COMPLETE = "background_complete"


class ParagraphStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


_TRANSITIONS: Dict[ParagraphStatus, Tuple[ParagraphStatus, ...]] = {
    ParagraphStatus.PENDING: (ParagraphStatus.GENERATING,),
    ParagraphStatus.GENERATING: (ParagraphStatus.COMPLETED, ParagraphStatus.ERROR),
    ParagraphStatus.ERROR: (ParagraphStatus.GENERATING,),
    ParagraphStatus.COMPLETED: (),
}


@dataclass(frozen=True)
class ParagraphState:
    """Status slot for one paragraph; replaced whole on every transition."""

    index: int
    status: ParagraphStatus = ParagraphStatus.PENDING
    attempt: int = 0
    error: Optional[str] = None
    retryable: Optional[bool] = None


@dataclass(frozen=True)
class SessionSnapshot:
    lesson_id: Optional[str]
    active: bool
    state: SessionState
    paragraph_count: int
    ready_count: int
    paragraphs: Tuple[ParagraphState, ...]
    playback: Optional[PlaybackSnapshot]
    time_to_first_sound_ms: Optional[float]


class CancellationToken:
    """Liveness flag for one lesson-view session."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass
class _InFlight:
    text: str
    sample_rate: int
    task: "asyncio.Task[AudioHandle]"


SnapshotListener = Callable[[SessionSnapshot], None]


class ProgressiveAudioSession:
    """
    Orchestrates paragraph audio for the lesson currently being viewed.

    Attributes:
        synthesizer: Produces one AudioHandle per paragraph
        cache: Paragraph audio cache; the single disposal path for handles
    """

    def __init__(
        self,
        synthesizer: ParagraphSynthesizer,
        cache: Optional[ParagraphAudioCache] = None,
    ):
        self.synthesizer = synthesizer
        self._base_synthesizer = synthesizer
        self.cache = cache if cache is not None else ParagraphAudioCache()
        self._lesson: Optional[Lesson] = None
        self._paragraphs: List[Paragraph] = []
        self._statuses: List[ParagraphState] = []
        self._state = SessionState.INITIALIZING
        self._token: Optional[CancellationToken] = None
        self._sequencer: Optional[PlaybackSequencer] = None
        self._background: Optional[asyncio.Task] = None
        self._in_flight: Dict[str, _InFlight] = {}
        self._listeners: List[SnapshotListener] = []
        self._time_to_first_sound_ms: Optional[float] = None

    # Observable state

    @property
    def lesson(self) -> Optional[Lesson]:
        return self._lesson

    @property
    def paragraphs(self) -> List[Paragraph]:
        return list(self._paragraphs)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def statuses(self) -> Tuple[ParagraphState, ...]:
        return tuple(self._statuses)

    @property
    def ready_count(self) -> int:
        return sum(1 for slot in self._statuses if slot.status is ParagraphStatus.COMPLETED)

    @property
    def active(self) -> bool:
        return self._token is not None and not self._token.cancelled

    @property
    def sequencer(self) -> Optional[PlaybackSequencer]:
        return self._sequencer

    @property
    def time_to_first_sound_ms(self) -> Optional[float]:
        return self._time_to_first_sound_ms

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            lesson_id=self._lesson.id if self._lesson is not None else None,
            active=self.active,
            state=self._state,
            paragraph_count=len(self._paragraphs),
            ready_count=self.ready_count,
            paragraphs=tuple(self._statuses),
            playback=self._sequencer.snapshot() if self._sequencer is not None else None,
            time_to_first_sound_ms=self._time_to_first_sound_ms,
        )

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # Session lifecycle

    async def start_session(
        self,
        lesson: Lesson,
        text: str,
        *,
        sample_rate: Optional[int] = None,
    ) -> SessionSnapshot:
        """
        Begin a lesson-view session and wait for paragraph 0.

        Any previous session is torn down first. Returns once paragraph 0 is
        playable; the remaining paragraphs continue in the background.

        Raises:
            SegmentationEmpty: the text has no paragraphs
            SynthesisFailed: paragraph 0 failed; retry it with retry_paragraph(0)
        """
        self.teardown_session()

        paragraphs = build_paragraphs(lesson.id, text)
        if not paragraphs:
            raise SegmentationEmpty(lesson.id)
        # Every session starts from the configured rate unless it asks otherwise.
        if sample_rate is not None:
            self.synthesizer = self._base_synthesizer.with_sample_rate(sample_rate)
        else:
            self.synthesizer = self._base_synthesizer

        token = CancellationToken()
        self._lesson = lesson
        self._paragraphs = paragraphs
        self._statuses = [ParagraphState(index=i) for i in range(len(paragraphs))]
        self._state = SessionState.INITIALIZING
        self._time_to_first_sound_ms = None
        self._background = None
        self._sequencer = PlaybackSequencer(
            len(paragraphs), on_change=lambda _snapshot: self._notify()
        )
        self._token = token

        logger.info(
            f"Starting audio session for lesson {lesson.id} ({len(paragraphs)} paragraphs)"
        )
        self._notify()

        await self._start_first(token)
        return self.snapshot()

    def teardown_session(self) -> None:
        """
        End the current session.

        Late results from in-flight requests are discarded and their handles
        released; no status, ready count or playback state changes afterwards.
        """
        token = self._token
        if token is None or token.cancelled:
            return
        token.cancel()

        if self._sequencer is not None:
            self._sequencer.detach()
        lesson_id = self._lesson.id if self._lesson is not None else None
        released = self.cache.clear(lesson_id) if lesson_id is not None else 0
        logger.info(
            f"Audio session for lesson {lesson_id} torn down; released {released} handle(s)"
        )
        self._notify()

    async def wait_background(self) -> None:
        """Wait for the background task and any in-flight requests to settle."""
        pending = [entry.task for entry in self._in_flight.values()]
        if self._background is not None:
            pending.append(self._background)
        if pending:
            await asyncio.wait(pending)

    async def aclose(self) -> None:
        self.teardown_session()
        await self.wait_background()
        self.cache.clear()

    # Operations

    async def retry_paragraph(self, index: int) -> AudioHandle:
        """
        Explicitly (re)generate one paragraph.

        Completed paragraphs are served from the cache. Retrying paragraph 0
        before the session is ready resumes the normal start sequence.

        Raises:
            NoActiveSession: no session, or it was torn down meanwhile
            IndexError: index outside the paragraph list
            SynthesisFailed: the attempt failed
        """
        token = self._require_session()
        if not 0 <= index < len(self._paragraphs):
            raise IndexError(f"Paragraph index {index} out of range")

        logger.info(f"Retry requested for paragraph {index}")
        if index == 0 and self._state is SessionState.INITIALIZING:
            handle = await self._start_first(token)
        else:
            handle = await self._generate(index, token)
        if handle is None:
            raise NoActiveSession("Session ended before the retry finished")
        return handle

    def play_pause(self) -> PlaybackSnapshot:
        """Toggle playback of the active paragraph."""
        sequencer = self._require_sequencer()
        sequencer.play_pause()
        return sequencer.snapshot()

    def segment_ended(self, index: int) -> PlaybackSnapshot:
        """Report the natural end of a paragraph's audio."""
        sequencer = self._require_sequencer()
        sequencer.segment_ended(index)
        return sequencer.snapshot()

    def audio_for(self, index: int) -> Optional[AudioHandle]:
        """Return the playable handle for a completed paragraph, else None."""
        lesson = self._require_lesson()
        if not 0 <= index < len(self._paragraphs):
            raise IndexError(f"Paragraph index {index} out of range")
        if self._statuses[index].status is not ParagraphStatus.COMPLETED:
            return None
        return self.cache.get(lesson.id, index)

    # Pipeline

    async def _start_first(self, token: CancellationToken) -> Optional[AudioHandle]:
        try:
            handle = await self._generate(0, token)
        except SynthesisFailed as exc:
            logger.warning(f"First paragraph failed; waiting for retry: {exc.details}")
            raise
        if handle is None or token.cancelled:
            return None
        if self._state is not SessionState.INITIALIZING:
            # A concurrent start attempt already moved on.
            return handle

        self._set_state(SessionState.FIRST_READY)
        if len(self._paragraphs) == 1:
            self._set_state(SessionState.BACKGROUND_COMPLETE)
        else:
            self._background = asyncio.create_task(self._run_background(token))
        return handle

    async def _run_background(self, token: CancellationToken) -> None:
        if token.cancelled:
            return
        self._set_state(SessionState.BACKGROUND_RUNNING)

        for index in range(1, len(self._paragraphs)):
            if token.cancelled:
                logger.info(f"Background generation stopped before paragraph {index}")
                return
            try:
                await self._generate(index, token)
            except SynthesisFailed as exc:
                logger.warning(f"Paragraph {index} failed, continuing: {exc.details}")

        if token.cancelled:
            return
        self._set_state(SessionState.BACKGROUND_COMPLETE)
        logger.info(
            f"Background generation complete: {self.ready_count}/{len(self._paragraphs)} ready"
        )

    async def _generate(
        self, index: int, token: CancellationToken
    ) -> Optional[AudioHandle]:
        """Bring one paragraph to COMPLETED; None when the session went away."""
        if token.cancelled or self._lesson is None:
            return None
        lesson_id = self._lesson.id

        slot = self._statuses[index]
        cached = self.cache.get(lesson_id, index)
        if slot.status is ParagraphStatus.COMPLETED:
            if cached is not None:
                return cached
            return await self._refill(lesson_id, index, token)
        if slot.status is not ParagraphStatus.GENERATING:
            slot = self._set_status(index, ParagraphStatus.GENERATING)
        attempt = slot.attempt

        if cached is not None:
            self._mark_completed(index, cached)
            return cached

        task = self._request(lesson_id, index, measure_latency=index == 0)
        try:
            handle = await asyncio.shield(task)
        except SynthesisFailed as exc:
            if token.cancelled:
                return None
            self._mark_failed(index, attempt, exc)
            raise

        if token.cancelled:
            return None
        self._mark_completed(index, handle)
        return handle

    async def _refill(
        self, lesson_id: str, index: int, token: CancellationToken
    ) -> Optional[AudioHandle]:
        """
        Re-synthesize a completed paragraph whose audio was released elsewhere.

        The status stays COMPLETED throughout, so the ready count never drops.
        """
        logger.info(f"Paragraph {index} audio was released; synthesizing it again")
        try:
            handle = await asyncio.shield(
                self._request(lesson_id, index, measure_latency=False)
            )
        except SynthesisFailed:
            if token.cancelled:
                return None
            raise
        if token.cancelled:
            return None
        if self._sequencer is not None:
            self._sequencer.segment_became_ready(index, handle)
        return handle

    def _request(
        self, lesson_id: str, index: int, *, measure_latency: bool
    ) -> "asyncio.Task[AudioHandle]":
        """Return the in-flight request for this paragraph, issuing one if needed."""
        text = self._paragraphs[index].text
        key = cache_key(lesson_id, index)

        current = self._in_flight.get(key)
        if (
            current is not None
            and current.text == text
            and current.sample_rate == self.synthesizer.sample_rate
        ):
            logger.debug(f"Joining in-flight request for {key}")
            return current.task

        previous = current.task if current is not None else None
        task = asyncio.create_task(
            self._run_synthesis(lesson_id, index, text, measure_latency, previous)
        )
        entry = _InFlight(
            text=text, sample_rate=self.synthesizer.sample_rate, task=task
        )
        self._in_flight[key] = entry
        task.add_done_callback(lambda _task: self._forget(key, entry))
        return task

    def _forget(self, key: str, entry: _InFlight) -> None:
        if self._in_flight.get(key) is entry:
            del self._in_flight[key]

    async def _run_synthesis(
        self,
        lesson_id: str,
        index: int,
        text: str,
        measure_latency: bool,
        previous: Optional["asyncio.Task[AudioHandle]"],
    ) -> AudioHandle:
        if previous is not None:
            # Same key, different text: never overlap two requests for one key.
            await asyncio.wait([previous])

        logger.debug(f"Synthesizing paragraph {index} of lesson {lesson_id}")
        handle = await self.synthesizer.synthesize(
            index, text, measure_latency=measure_latency
        )

        if not self._accepts(lesson_id, index, text, handle):
            logger.debug(f"Discarding late audio for {cache_key(lesson_id, index)}")
            handle.release()
            raise SynthesisFailed(index, "session closed before audio arrived")

        self.cache.put(lesson_id, index, handle)
        return handle

    def _accepts(
        self, lesson_id: str, index: int, text: str, handle: AudioHandle
    ) -> bool:
        return (
            self.active
            and handle.sample_rate == self.synthesizer.sample_rate
            and self._lesson is not None
            and self._lesson.id == lesson_id
            and index < len(self._paragraphs)
            and self._paragraphs[index].text == text
        )

    def _mark_completed(self, index: int, handle: AudioHandle) -> None:
        slot = self._statuses[index]
        if slot.status is not ParagraphStatus.GENERATING:
            return
        if index == 0 and handle.time_to_first_sound_ms is not None:
            self._time_to_first_sound_ms = handle.time_to_first_sound_ms
        if self._sequencer is not None:
            self._sequencer.segment_became_ready(index, handle)
        self._set_status(index, ParagraphStatus.COMPLETED)
        logger.debug(f"Paragraph {index} ready ({self.ready_count}/{len(self._paragraphs)})")

    def _mark_failed(self, index: int, attempt: int, exc: SynthesisFailed) -> None:
        slot = self._statuses[index]
        if slot.status is not ParagraphStatus.GENERATING or slot.attempt != attempt:
            # A newer attempt owns this slot now.
            return
        self._set_status(
            index,
            ParagraphStatus.ERROR,
            error=exc.details,
            retryable=exc.retryable,
        )

    def _set_status(
        self,
        index: int,
        status: ParagraphStatus,
        *,
        error: Optional[str] = None,
        retryable: Optional[bool] = None,
    ) -> ParagraphState:
        current = self._statuses[index]
        if status not in _TRANSITIONS[current.status]:
            raise InvalidStatusTransition(index, current.status.value, status.value)
        attempt = current.attempt + 1 if status is ParagraphStatus.GENERATING else current.attempt
        slot = ParagraphState(
            index=index,
            status=status,
            attempt=attempt,
            error=error,
            retryable=retryable,
        )
        self._statuses[index] = slot
        self._notify()
        return slot

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.info(f"Audio session {self._state.value} -> {state.value}")
        self._state = state
        self._notify()

    def _require_session(self) -> CancellationToken:
        token = self._token
        if token is None or token.cancelled:
            raise NoActiveSession("No lesson audio session is active")
        return token

    def _require_sequencer(self) -> PlaybackSequencer:
        self._require_session()
        if self._sequencer is None:
            raise NoActiveSession("No lesson audio session is active")
        return self._sequencer

    def _require_lesson(self) -> Lesson:
        self._require_session()
        if self._lesson is None:
            raise NoActiveSession("No lesson audio session is active")
        return self._lesson

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Audio session listener failed: {e}", exc_info=True)


__all__ = [
    "CancellationToken",
    "ParagraphState",
    "ParagraphStatus",
    "ProgressiveAudioSession",
    "SessionSnapshot",
    "SessionState",
]
