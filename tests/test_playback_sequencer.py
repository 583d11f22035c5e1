"""Tests for the playback sequencer state machine."""

import pytest

from lesson_audio.services.tts.playback import PlaybackSequencer, PlaybackState
from lesson_audio.services.tts.synthesizer import AudioHandle


def _ready(sequencer: PlaybackSequencer, *indices: int) -> dict[int, AudioHandle]:
    handles = {}
    for index in indices:
        handles[index] = AudioHandle(f"wav-{index}".encode())
        sequencer.segment_became_ready(index, handles[index])
    return handles


def test_starts_idle_and_cannot_play_before_first_paragraph():
    sequencer = PlaybackSequencer(3)

    assert sequencer.state is PlaybackState.IDLE
    assert sequencer.user_play() is False
    assert sequencer.is_playing is False
    assert sequencer.current_index == 0


def test_plays_first_paragraph_once_ready():
    sequencer = PlaybackSequencer(3)
    handles = _ready(sequencer, 0)

    assert sequencer.user_play() is True
    assert sequencer.state is PlaybackState.PLAYING
    assert sequencer.current_index == 0
    assert sequencer.active_handle is handles[0]


def test_play_pause_toggles_active_paragraph():
    sequencer = PlaybackSequencer(2)
    _ready(sequencer, 0)

    assert sequencer.play_pause() is True
    assert sequencer.play_pause() is False
    assert sequencer.state is PlaybackState.PAUSED
    assert sequencer.current_index == 0
    assert sequencer.play_pause() is True
    assert sequencer.state is PlaybackState.PLAYING


def test_segment_end_advances_to_next_ready_paragraph():
    sequencer = PlaybackSequencer(3)
    handles = _ready(sequencer, 0, 1)
    sequencer.user_play()

    sequencer.segment_ended(0)

    assert sequencer.state is PlaybackState.PLAYING
    assert sequencer.current_index == 1
    assert sequencer.active_handle is handles[1]


def test_stalls_when_next_paragraph_is_not_ready_and_does_not_resume_on_its_own():
    sequencer = PlaybackSequencer(3)
    _ready(sequencer, 0)
    sequencer.user_play()

    sequencer.segment_ended(0)

    assert sequencer.state is PlaybackState.EXHAUSTED
    assert sequencer.current_index == 0
    assert sequencer.is_playing is False
    assert sequencer.active_handle is None

    handles = _ready(sequencer, 1)
    assert sequencer.state is PlaybackState.EXHAUSTED

    assert sequencer.user_play() is True
    assert sequencer.current_index == 1
    assert sequencer.active_handle is handles[1]


def test_never_skips_over_a_missing_paragraph():
    sequencer = PlaybackSequencer(3)
    _ready(sequencer, 0, 2)
    sequencer.user_play()

    sequencer.segment_ended(0)

    assert sequencer.state is PlaybackState.EXHAUSTED
    assert sequencer.user_play() is False
    assert sequencer.current_index == 0


def test_end_of_last_paragraph_exhausts_and_play_restarts_from_the_top():
    sequencer = PlaybackSequencer(2)
    _ready(sequencer, 0, 1)
    sequencer.user_play()
    sequencer.segment_ended(0)

    sequencer.segment_ended(1)

    assert sequencer.state is PlaybackState.EXHAUSTED
    assert sequencer.current_index == 1
    assert sequencer.user_play() is True
    assert sequencer.current_index == 0


def test_stale_segment_end_is_ignored():
    sequencer = PlaybackSequencer(3)
    _ready(sequencer, 0, 1, 2)
    sequencer.user_play()
    sequencer.segment_ended(0)

    sequencer.segment_ended(0)

    assert sequencer.current_index == 1
    assert sequencer.state is PlaybackState.PLAYING


def test_segment_end_while_paused_is_ignored():
    sequencer = PlaybackSequencer(2)
    _ready(sequencer, 0, 1)
    sequencer.user_play()
    sequencer.user_pause()

    sequencer.segment_ended(0)

    assert sequencer.state is PlaybackState.PAUSED
    assert sequencer.current_index == 0


def test_released_handles_are_not_playable():
    sequencer = PlaybackSequencer(1)
    handles = _ready(sequencer, 0)
    handles[0].release()

    assert sequencer.is_ready(0) is False
    assert sequencer.user_play() is False


def test_detach_drops_references_and_returns_to_idle():
    changes = []
    sequencer = PlaybackSequencer(2, on_change=changes.append)
    _ready(sequencer, 0)
    sequencer.user_play()

    sequencer.detach()

    assert sequencer.state is PlaybackState.IDLE
    assert sequencer.active_handle is None
    assert sequencer.is_ready(0) is False
    assert [snapshot.state for snapshot in changes] == [
        PlaybackState.PLAYING,
        PlaybackState.IDLE,
    ]


def test_rejects_out_of_range_paragraphs():
    sequencer = PlaybackSequencer(2)

    with pytest.raises(IndexError):
        sequencer.segment_became_ready(2, AudioHandle(b"wav"))
    with pytest.raises(ValueError):
        PlaybackSequencer(0)
