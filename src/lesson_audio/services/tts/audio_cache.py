"""Per-paragraph audio cache scoped to lesson-view sessions."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from lesson_audio.services.tts.synthesizer import AudioHandle

logger = logging.getLogger(__name__)


def cache_key(lesson_id: str, index: int) -> str:
    return f"{lesson_id}-{index}"


class ParagraphAudioCache:
    """
    Maps (lesson id, paragraph index) to a synthesized AudioHandle.

    The cache is the single disposal path for handles: whatever leaves the
    cache, by clear or by being displaced, is released right away.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, AudioHandle] = {}
        self._lessons: Dict[str, str] = {}

    def get(self, lesson_id: str, index: int) -> Optional[AudioHandle]:
        handle = self._entries.get(cache_key(lesson_id, index))
        if handle is not None and handle.released:
            # Released behind our back; treat as a miss.
            self._drop(cache_key(lesson_id, index))
            return None
        return handle

    def has(self, lesson_id: str, index: int) -> bool:
        return self.get(lesson_id, index) is not None

    def put(self, lesson_id: str, index: int, handle: AudioHandle) -> None:
        """Store a handle; a displaced handle is released immediately."""
        key = cache_key(lesson_id, index)
        previous = self._entries.get(key)
        if previous is handle:
            return
        self._entries[key] = handle
        self._lessons[key] = lesson_id
        if previous is not None:
            logger.warning(
                f"Cache disposal race on {key}: replacing {previous!r} with {handle!r}"
            )
            previous.release()

    def clear(self, lesson_id: Optional[str] = None) -> int:
        """
        Release cached handles.

        Args:
            lesson_id: Only release this lesson's entries. None releases all.

        Returns:
            Number of entries released
        """
        if lesson_id is None:
            keys = list(self._entries)
        else:
            keys = [key for key, owner in self._lessons.items() if owner == lesson_id]

        for key in keys:
            handle = self._drop(key)
            if handle is not None:
                handle.release()

        if keys:
            scope = "all lessons" if lesson_id is None else f"lesson {lesson_id}"
            logger.debug(f"Released {len(keys)} cached paragraph(s) for {scope}")
        return len(keys)

    def _drop(self, key: str) -> Optional[AudioHandle]:
        self._lessons.pop(key, None)
        return self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["ParagraphAudioCache", "cache_key"]
