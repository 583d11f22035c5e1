"""
Paragraph segmentation for lesson scripts.

A lesson script is split into blank-line delimited paragraphs. Each paragraph
is the unit of audio synthesis and playback, and its position in the list
defines playback order for the lifetime of a lesson-view session.

Usage:
    paragraphs = split_paragraphs(lesson_text)
    # ["Hello world.", "Second paragraph here.", ...]
"""

import re
from dataclasses import dataclass
from typing import List

# Any whitespace run that contains at least two line breaks
_PARAGRAPH_BREAK = re.compile(r"[ \t\f\v]*(?:\r\n|\r|\n)\s*(?:\r\n|\r|\n)\s*")


@dataclass(frozen=True)
class Paragraph:
    """One paragraph of a lesson, addressed by its position."""

    lesson_id: str
    index: int
    text: str


def split_paragraphs(text: str) -> List[str]:
    """
    Split lesson text into ordered, non-empty, stripped paragraphs.

    Args:
        text: Raw lesson script

    Returns:
        Paragraph strings in reading order. Empty or whitespace-only input
        yields an empty list; text without blank lines yields one paragraph.
    """
    if not text:
        return []
    blocks = _PARAGRAPH_BREAK.split(text)
    return [block.strip() for block in blocks if block.strip()]


def build_paragraphs(lesson_id: str, text: str) -> List[Paragraph]:
    """Segment text and attach lesson id and position to every paragraph."""
    return [
        Paragraph(lesson_id=lesson_id, index=index, text=body)
        for index, body in enumerate(split_paragraphs(text))
    ]


__all__ = ["Paragraph", "build_paragraphs", "split_paragraphs"]
