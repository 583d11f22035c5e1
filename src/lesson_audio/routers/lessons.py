"""Lesson plan and lesson script routes."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from ..config import Settings, get_settings
from ..schemas.lessons import (
    LessonContentRequest,
    LessonContentResponse,
    LessonPlanRequest,
    LessonPlanResponse,
)
from ..services.lesson_generator import LessonGenerationError, LessonGenerator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["lessons"])


def get_lesson_generator(
    settings: Settings = Depends(get_settings),
) -> LessonGenerator:
    return LessonGenerator(settings)


def _upstream_status(exc: LessonGenerationError) -> int:
    # Client errors from the model provider are our configuration problem.
    return exc.status_code if exc.status_code >= 500 else 502


@router.post("/generate-plan", response_model=LessonPlanResponse)
async def generate_plan(
    payload: LessonPlanRequest,
    generator: LessonGenerator = Depends(get_lesson_generator),
) -> LessonPlanResponse:
    start_time = time.monotonic()
    try:
        lessons = await generator.generate_lesson_plan(
            payload.topic, payload.depth, payload.learning_style
        )
    except LessonGenerationError as exc:
        elapsed = (time.monotonic() - start_time) * 1000
        logger.error(f"Lesson plan generation failed after {elapsed:.0f}ms: {exc.detail}")
        raise HTTPException(
            status_code=_upstream_status(exc),
            detail={"error": "Failed to generate lesson plan", "details": str(exc.detail)},
        ) from exc

    elapsed = (time.monotonic() - start_time) * 1000
    logger.info(f"Returning {len(lessons)} lessons after {elapsed:.0f}ms")
    return LessonPlanResponse(lessons=lessons)


@router.post("/generate-content", response_model=LessonContentResponse)
async def generate_content(
    payload: LessonContentRequest,
    generator: LessonGenerator = Depends(get_lesson_generator),
) -> LessonContentResponse:
    start_time = time.monotonic()
    try:
        content = await generator.generate_lesson_content(
            payload.topic,
            payload.depth,
            payload.learning_style,
            payload.lesson_title,
            payload.lesson_description,
            payload.duration,
        )
    except LessonGenerationError as exc:
        elapsed = (time.monotonic() - start_time) * 1000
        logger.error(f"Lesson content generation failed after {elapsed:.0f}ms: {exc.detail}")
        raise HTTPException(
            status_code=_upstream_status(exc),
            detail={"error": "Failed to generate lesson content", "details": str(exc.detail)},
        ) from exc

    elapsed = (time.monotonic() - start_time) * 1000
    logger.info(f"Returning {len(content)} characters of content after {elapsed:.0f}ms")
    return LessonContentResponse(content=content)


__all__ = ["get_lesson_generator", "router"]
