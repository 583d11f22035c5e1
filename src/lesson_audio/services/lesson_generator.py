"""Lesson plan and lesson script generation through a chat completions API."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, List, Optional

import httpx
from fastapi import status

from lesson_audio.config import Settings
from lesson_audio.schemas.lessons import Lesson

logger = logging.getLogger(__name__)

# Lesson generation constraints
MIN_LESSONS = 3
MAX_LESSONS = 5

# Lesson duration constraints (in seconds)
MIN_LESSON_LENGTH = 60
MAX_LESSON_LENGTH = 120

DEPTH_CONTEXT = {
    "simple": "Explain like I'm 5 years old - use very simple language, basic concepts, and relatable examples",
    "normal": "High school level - use clear explanations with some technical terms, practical examples",
    "advanced": "PhD/Researcher level - use technical language, advanced concepts, and detailed analysis",
}

LEARNING_STYLE_CONTEXT = {
    "visual": "Paint vivid mental pictures: describe shapes, diagrams, colors and spatial relationships",
    "auditory": "Use a conversational, spoken rhythm with repetition, rhetorical questions and memorable phrasing",
    "kinesthetic": "Anchor every idea in physical actions, hands-on activities and real-world experiments",
    "analytical": "Break ideas into logical steps, cause and effect, definitions and structured reasoning",
}

PLAN_SYSTEM_PROMPT = (
    "You are an expert educational content creator. Generate engaging, "
    "well-structured lesson plans that build knowledge progressively."
)
CONTENT_SYSTEM_PROMPT = (
    "You are an expert teacher writing scripts that will be read aloud by a "
    "narrator. Write plain prose only: no headings, lists or markdown."
)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


class LessonGenerationError(Exception):
    """Wrap transport or API failures when generating lessons."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


def build_plan_prompt(topic: str, depth: str, learning_style: str) -> str:
    return f"""Create a comprehensive learning plan for the topic: "{topic}"

Learning level: {DEPTH_CONTEXT[depth]}
Learning style: {LEARNING_STYLE_CONTEXT[learning_style]}

Generate between {MIN_LESSONS} and {MAX_LESSONS} lessons that build upon each other logically. Each lesson should take {MIN_LESSON_LENGTH // 60}-{MAX_LESSON_LENGTH // 60} minutes to listen to.

For each lesson, provide:
1. A clear, engaging title (max 4 words)
2. A detailed description (2-3 sentences explaining what will be covered)
3. Duration in minutes

Return the response as a JSON array with this exact structure:
[
  {{
    "id": "1",
    "title": "lesson title",
    "description": "detailed description of what this lesson covers and why it's important",
    "duration": 2
  }}
]

Make sure the lessons flow logically from basic concepts to more advanced applications. Focus on practical understanding and real-world applications."""


def build_content_prompt(
    topic: str,
    depth: str,
    learning_style: str,
    lesson_title: str,
    lesson_description: str,
    duration: int,
) -> str:
    # Roughly 150 spoken words per minute.
    word_budget = max(1, duration) * 150
    return f"""Write the narration script for one lesson of a course on "{topic}".

Lesson title: {lesson_title}
What the lesson covers: {lesson_description}
Learning level: {DEPTH_CONTEXT[depth]}
Learning style: {LEARNING_STYLE_CONTEXT[learning_style]}

The script should be about {word_budget} words ({duration} minute(s) when read aloud).
Write 3 to 8 paragraphs separated by a single blank line. Each paragraph should
make sense on its own when heard in sequence."""


def parse_lesson_plan(raw: str) -> List[Lesson]:
    """Parse the model's JSON array into lessons, tolerating code fences."""
    cleaned = _CODE_FENCE.sub("", raw.strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        detail = (
            "Failed to parse lesson plan as JSON: "
            f"{exc.msg} at line {exc.lineno} column {exc.colno}"
        )
        raise LessonGenerationError(status.HTTP_502_BAD_GATEWAY, detail) from exc

    if isinstance(data, dict) and isinstance(data.get("lessons"), list):
        data = data["lessons"]
    if not isinstance(data, list) or not data:
        raise LessonGenerationError(
            status.HTTP_502_BAD_GATEWAY, "Invalid lesson plan format"
        )

    lessons: List[Lesson] = []
    for position, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            raise LessonGenerationError(
                status.HTTP_502_BAD_GATEWAY, "Invalid lesson plan format"
            )
        try:
            lessons.append(
                Lesson(
                    id=str(item.get("id") or position),
                    title=str(item["title"]).strip(),
                    description=str(item["description"]).strip(),
                    duration=int(item.get("duration") or MIN_LESSON_LENGTH // 60),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise LessonGenerationError(
                status.HTTP_502_BAD_GATEWAY, f"Invalid lesson entry {position}: {exc}"
            ) from exc

    if len(lessons) > MAX_LESSONS:
        logger.warning(f"Plan had {len(lessons)} lessons; keeping the first {MAX_LESSONS}")
        lessons = lessons[:MAX_LESSONS]
    return lessons


class LessonGenerator:
    """Client for OpenAI-compatible chat completions."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def _base_url(self) -> str:
        return str(self._settings.openai_base_url).rstrip("/")

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=20,
                    max_keepalive_connections=10,
                )
                client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    http2=True,
                )
                self.__class__._client_pool[key] = client
        return client

    @classmethod
    async def close_http_clients(cls) -> None:
        clients = list(cls._client_pool.values())
        cls._client_pool.clear()
        for client in clients:
            await client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        api_key = self._settings.openai_api_key
        if api_key is None or not api_key.get_secret_value():
            raise LessonGenerationError(
                status.HTTP_503_SERVICE_UNAVAILABLE, "LLM API key is not configured"
            )
        return {
            "Authorization": f"Bearer {api_key.get_secret_value()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def generate_lesson_plan(
        self, topic: str, depth: str, learning_style: str
    ) -> List[Lesson]:
        """Ask the model for a lesson plan and validate its structure."""
        logger.info(f"Generating lesson plan: topic={topic!r} depth={depth} style={learning_style}")
        prompt = build_plan_prompt(topic, depth, learning_style)
        raw = await self._complete(PLAN_SYSTEM_PROMPT, prompt)
        lessons = parse_lesson_plan(raw)
        logger.info(f"Lesson plan validated: {len(lessons)} lessons")
        return lessons

    async def generate_lesson_content(
        self,
        topic: str,
        depth: str,
        learning_style: str,
        lesson_title: str,
        lesson_description: str,
        duration: int,
    ) -> str:
        """Ask the model for the narration script of one lesson."""
        logger.info(f"Generating lesson content for {lesson_title!r}")
        prompt = build_content_prompt(
            topic, depth, learning_style, lesson_title, lesson_description, duration
        )
        content = (await self._complete(CONTENT_SYSTEM_PROMPT, prompt)).strip()
        if not content:
            raise LessonGenerationError(
                status.HTTP_502_BAD_GATEWAY, "No lesson content returned"
            )
        return content

    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self._settings.openai_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self._settings.llm_temperature,
            "max_tokens": self._settings.llm_max_tokens,
        }
        headers = self._headers
        client = await self._get_http_client()

        start_time = time.monotonic()
        try:
            response = await client.post(
                f"{self._base_url}/chat/completions",
                headers=headers,
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise LessonGenerationError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            raise LessonGenerationError(
                response.status_code, self._extract_error_detail(response.content)
            )

        try:
            body = response.json()
        except ValueError as exc:  # pragma: no cover - unexpected payload
            raise LessonGenerationError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        elapsed = (time.monotonic() - start_time) * 1000
        usage = body.get("usage") or {}
        logger.info(
            f"Completion finished in {elapsed:.0f}ms "
            f"(prompt={usage.get('prompt_tokens')}, completion={usage.get('completion_tokens')})"
        )

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LessonGenerationError(
                status.HTTP_502_BAD_GATEWAY, "No response content from model"
            ) from exc
        if not isinstance(content, str) or not content.strip():
            raise LessonGenerationError(
                status.HTTP_502_BAD_GATEWAY, "No response content from model"
            )
        return content

    @staticmethod
    def _extract_error_detail(content: bytes) -> Any:
        try:
            data = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return content.decode("utf-8", errors="replace")
        if isinstance(data, dict) and "error" in data:
            error = data["error"]
            if isinstance(error, dict):
                return error.get("message") or error
            return error
        return data


__all__ = [
    "DEPTH_CONTEXT",
    "LEARNING_STYLE_CONTEXT",
    "LessonGenerationError",
    "LessonGenerator",
    "MAX_LESSONS",
    "MAX_LESSON_LENGTH",
    "MIN_LESSONS",
    "MIN_LESSON_LENGTH",
    "build_content_prompt",
    "build_plan_prompt",
    "parse_lesson_plan",
]
