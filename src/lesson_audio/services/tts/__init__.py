"""
Paragraph Audio Services Package.

This package contains the progressive paragraph-audio pipeline:

- text_segmenter: Splits a lesson script into blank-line delimited paragraphs
- synthesizer: Synthesizes one paragraph into a buffered AudioHandle
- audio_cache: Caches handles per (lesson, paragraph) and releases them
- progressive: Orchestrates paragraph 0 first, then the rest in the background
- playback: Plays ready paragraphs back-to-back in index order

Architecture Overview:

    ┌─────────────┐     ┌───────────────┐     ┌──────────────────────┐
    │ Lesson text │────▶│ TextSegmenter │────▶│ ProgressiveAudio     │
    └─────────────┘     └───────────────┘     │ Session              │
                                              └──────────────────────┘
                                                 │        │        │
                                                 ▼        ▼        ▼
                                        ┌─────────────┐ ┌──────┐ ┌───────────┐
                                        │ Synthesizer │ │Cache │ │ Playback  │
                                        └─────────────┘ └──────┘ │ Sequencer │
                                                                 └───────────┘

The pipeline is designed for minimal time-to-first-sound:
1. Paragraph 0 is synthesized before anything else and unblocks playback
2. Paragraphs 1..N-1 follow one at a time in a background task
3. A failed paragraph is isolated; the listener can retry it explicitly
"""

from .audio_cache import ParagraphAudioCache
from .errors import SegmentationEmpty, SynthesisFailed
from .playback import PlaybackSequencer, PlaybackState
from .progressive import ParagraphStatus, ProgressiveAudioSession, SessionState
from .synthesizer import AudioHandle, ParagraphSynthesizer
from .text_segmenter import split_paragraphs

__all__ = [
    "AudioHandle",
    "ParagraphAudioCache",
    "ParagraphStatus",
    "ParagraphSynthesizer",
    "PlaybackSequencer",
    "PlaybackState",
    "ProgressiveAudioSession",
    "SegmentationEmpty",
    "SessionState",
    "SynthesisFailed",
    "split_paragraphs",
]
