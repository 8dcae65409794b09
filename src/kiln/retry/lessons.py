"""Best-effort extraction of durable lessons from the conversation behind a successful build."""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx
from pydantic import BaseModel, Field

from kiln.judges.client import JudgeClient
from kiln.judges.parsing import extract_json_array
from kiln.judges.prompts import build_lessons_prompt

logger = logging.getLogger(__name__)

LessonType = Literal["preference", "insight", "pattern"]

_LESSON_TYPES: frozenset[str] = frozenset({"preference", "insight", "pattern"})
_MAX_LESSONS = 3
_MAX_MESSAGE_CHARS = 500
_MAX_CONVERSATION_CHARS = 3_000
_MIN_CONVERSATION_CHARS = 50


class ConversationMessage(BaseModel):
    role: str
    content: str = ""


class Lesson(BaseModel):
    type: LessonType
    content: str = Field(max_length=200)
    org_id: str
    requester_id: str
    tags: list[str] = Field(default_factory=list)


class ConversationSource(Protocol):
    def messages(self, conversation_id: str) -> list[ConversationMessage]:
        ...


class LessonSink(Protocol):
    def save(self, lesson: Lesson) -> None:
        ...


class InMemoryLessonSink:
    def __init__(self) -> None:
        self.lessons: list[Lesson] = []

    def save(self, lesson: Lesson) -> None:
        self.lessons.append(lesson)


class HttpConversationSource:
    """Reads a conversation's messages from ``GET {base_url}/{conversation_id}/messages``."""

    def __init__(self, base_url: str, timeout_s: float = 10.0, client: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._client = client or httpx.Client(timeout=timeout_s)

    def messages(self, conversation_id: str) -> list[ConversationMessage]:
        response = self._client.get(f"{self.base_url}/{conversation_id}/messages", timeout=self.timeout_s)
        response.raise_for_status()
        body = response.json()
        items = body.get("messages", []) if isinstance(body, dict) else body
        if not isinstance(items, list):
            return []
        return [ConversationMessage.model_validate(item) for item in items if isinstance(item, dict)]


class HttpLessonSink:
    """Posts each lesson as JSON to the memory service."""

    def __init__(self, url: str, timeout_s: float = 10.0, client: httpx.Client | None = None) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self._client = client or httpx.Client(timeout=timeout_s)

    def save(self, lesson: Lesson) -> None:
        response = self._client.post(self.url, json=lesson.model_dump(mode="json"), timeout=self.timeout_s)
        response.raise_for_status()


def format_conversation(messages: list[ConversationMessage]) -> str:
    lines = [
        f"{'User' if message.role == 'user' else 'Assistant'}: {message.content[:_MAX_MESSAGE_CHARS]}"
        for message in messages
    ]
    return "\n".join(lines)[:_MAX_CONVERSATION_CHARS]


class LessonExtractor:
    """Asks the judge for up to three preference/insight/pattern items and saves them."""

    def __init__(self, client: JudgeClient, source: ConversationSource, sink: LessonSink) -> None:
        self._client = client
        self._source = source
        self._sink = sink

    def extract(
        self,
        conversation_id: str,
        org_id: str,
        requester_id: str,
        artifact_name: str,
    ) -> list[Lesson]:
        messages = self._source.messages(conversation_id)
        if len(messages) < 2:
            return []

        conversation_text = format_conversation(messages)
        if len(conversation_text) < _MIN_CONVERSATION_CHARS:
            return []

        response = self._client.complete(
            build_lessons_prompt(conversation_text, artifact_name),
            max_tokens=500,
        )
        items = extract_json_array(response) or []

        lessons: list[Lesson] = []
        for item in items[:_MAX_LESSONS]:
            if not isinstance(item, dict) or not str(item.get("content") or "").strip():
                continue
            lesson_type = str(item.get("type") or "")
            lesson = Lesson(
                type=lesson_type if lesson_type in _LESSON_TYPES else "insight",  # type: ignore[arg-type]
                content=str(item["content"]).strip()[:200],
                org_id=org_id,
                requester_id=requester_id,
                tags=["auto-extracted", "conversation", artifact_name],
            )
            self._sink.save(lesson)
            lessons.append(lesson)

        logger.info("Saved %d lesson(s) from conversation %s", len(lessons), conversation_id)
        return lessons
