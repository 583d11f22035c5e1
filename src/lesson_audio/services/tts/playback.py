"""
Playback sequencing across paragraph audio segments.

The sequencer is an explicit state machine driven by discrete events:

    IDLE ──user_play──▶ PLAYING(0)
    PLAYING(i) ──user_pause──▶ PAUSED(i) ──user_play──▶ PLAYING(i)
    PLAYING(i) ──segment_ended──▶ PLAYING(i+1)   if paragraph i+1 is ready
                                 EXHAUSTED(i)    otherwise

Playback never skips ahead and never resumes by itself when a lagging
paragraph becomes ready; the listener has to press play again.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from lesson_audio.services.tts.synthesizer import AudioHandle

logger = logging.getLogger(__name__)


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class PlaybackSnapshot:
    state: PlaybackState
    current_index: int
    is_playing: bool


class PlaybackSequencer:
    """
    Plays ready paragraph handles back-to-back in index order.

    Holds non-owning references to handles; the cache releases them.
    Only one handle is active at a time.
    """

    def __init__(
        self,
        paragraph_count: int,
        on_change: Optional[Callable[[PlaybackSnapshot], None]] = None,
    ):
        if paragraph_count < 1:
            raise ValueError("paragraph_count must be at least 1")
        self.paragraph_count = paragraph_count
        self._on_change = on_change
        self._ready: Dict[int, AudioHandle] = {}
        self._state = PlaybackState.IDLE
        self._current_index = 0
        self._active: Optional[AudioHandle] = None

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def is_playing(self) -> bool:
        return self._state is PlaybackState.PLAYING

    @property
    def active_handle(self) -> Optional[AudioHandle]:
        return self._active

    def is_ready(self, index: int) -> bool:
        handle = self._ready.get(index)
        return handle is not None and not handle.released

    def snapshot(self) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            state=self._state,
            current_index=self._current_index,
            is_playing=self.is_playing,
        )

    # Events

    def segment_became_ready(self, index: int, handle: AudioHandle) -> None:
        """Record that a paragraph can be played. Does not start playback."""
        if not 0 <= index < self.paragraph_count:
            raise IndexError(f"Paragraph index {index} out of range")
        self._ready[index] = handle

    def user_play(self) -> bool:
        """Start or resume playback. Returns False when nothing is playable."""
        if self._state is PlaybackState.PLAYING:
            return True

        if self._state is PlaybackState.PAUSED:
            if not self.is_ready(self._current_index):
                return False
            self._set_state(PlaybackState.PLAYING)
            return True

        if self._state is PlaybackState.IDLE:
            target = 0
        else:
            # EXHAUSTED: continue after the last played paragraph, or start
            # over when the lesson has been played to the end.
            target = self._current_index + 1
            if target >= self.paragraph_count:
                target = 0

        if not self.is_ready(target):
            logger.debug(f"Paragraph {target} is not ready; staying {self._state.value}")
            return False
        self._activate(target)
        return True

    def user_pause(self) -> None:
        if self._state is PlaybackState.PLAYING:
            self._set_state(PlaybackState.PAUSED)

    def play_pause(self) -> bool:
        """Toggle playback; returns the resulting `is_playing`."""
        if self.is_playing:
            self.user_pause()
        else:
            self.user_play()
        return self.is_playing

    def segment_ended(self, index: int) -> None:
        """Natural end of the active segment; advance if the next one is ready."""
        if self._state is not PlaybackState.PLAYING or index != self._current_index:
            logger.debug(
                f"Ignoring end of paragraph {index} "
                f"(state={self._state.value}, current={self._current_index})"
            )
            return

        next_index = index + 1
        if next_index < self.paragraph_count and self.is_ready(next_index):
            self._activate(next_index)
            return

        if next_index < self.paragraph_count:
            logger.info(f"Playback stalled after paragraph {index}; {next_index} not ready")
        self._active = None
        self._set_state(PlaybackState.EXHAUSTED)

    def detach(self) -> None:
        """Drop every handle reference and return to IDLE."""
        self._ready.clear()
        self._active = None
        self._current_index = 0
        self._set_state(PlaybackState.IDLE)

    def _activate(self, index: int) -> None:
        # Switching handles drops the previous one; no two play at once.
        self._active = self._ready[index]
        self._current_index = index
        self._set_state(PlaybackState.PLAYING, force=True)

    def _set_state(self, state: PlaybackState, *, force: bool = False) -> None:
        if state is self._state and not force:
            return
        self._state = state
        if self._on_change is not None:
            self._on_change(self.snapshot())


__all__ = ["PlaybackSequencer", "PlaybackSnapshot", "PlaybackState"]
