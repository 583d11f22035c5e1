"""Pydantic models for lesson plans and lesson scripts."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

Depth = Literal["simple", "normal", "advanced"]
LearningStyle = Literal["visual", "auditory", "kinesthetic", "analytical"]


class Lesson(BaseModel):
    """One lesson of a generated plan. Immutable once fetched."""

    id: str = Field(..., min_length=1)
    title: str
    description: str
    duration: int = Field(..., ge=1, description="Lesson length in minutes.")

    model_config = ConfigDict(frozen=True)


class LessonPlanRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    depth: Depth
    learning_style: LearningStyle = Field(..., alias="learningStyle")

    model_config = ConfigDict(populate_by_name=True)


class LessonPlanResponse(BaseModel):
    lessons: List[Lesson]


class LessonContentRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    depth: Depth
    learning_style: LearningStyle = Field(..., alias="learningStyle")
    lesson_title: str = Field(..., min_length=1, alias="lessonTitle")
    lesson_description: str = Field(..., min_length=1, alias="lessonDescription")
    duration: int = Field(..., ge=1)

    model_config = ConfigDict(populate_by_name=True)


class LessonContentResponse(BaseModel):
    content: str


__all__ = [
    "Depth",
    "LearningStyle",
    "Lesson",
    "LessonContentRequest",
    "LessonContentResponse",
    "LessonPlanRequest",
    "LessonPlanResponse",
]
