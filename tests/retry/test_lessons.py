from __future__ import annotations

import json

import httpx
import pytest

from kiln.retry.lessons import (
    ConversationMessage,
    HttpConversationSource,
    HttpLessonSink,
    InMemoryLessonSink,
    Lesson,
    LessonExtractor,
    format_conversation,
)


class StaticConversations:
    def __init__(self, messages: list[ConversationMessage]) -> None:
        self._messages = messages

    def messages(self, conversation_id: str) -> list[ConversationMessage]:
        return self._messages


class StubJudge:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    def complete(self, prompt: str, *, max_tokens: int | None = None) -> str:
        self.prompts.append(prompt)
        return self.reply


CONVERSATION = [
    ConversationMessage(role="user", content="I need a weather tool for our field technicians."),
    ConversationMessage(role="assistant", content="Should temperatures be in Celsius or Fahrenheit?"),
    ConversationMessage(role="user", content="Always Celsius, and keep the labels short."),
]


def test_saves_up_to_three_lessons_and_coerces_types() -> None:
    reply = json.dumps(
        [
            {"type": "preference", "content": "Prefers Celsius"},
            {"type": "rule", "content": "Technicians work outdoors"},
            {"type": "pattern", "content": "Short labels"},
            {"type": "insight", "content": "A fourth item is dropped"},
        ]
    )
    sink = InMemoryLessonSink()
    judge = StubJudge(f"Here you go:\n{reply}")

    lessons = LessonExtractor(judge, StaticConversations(CONVERSATION), sink).extract(
        "conv-1", "acme", "user-7", "weather"
    )

    assert [lesson.type for lesson in lessons] == ["preference", "insight", "pattern"]
    assert sink.lessons == lessons
    assert lessons[0].tags == ["auto-extracted", "conversation", "weather"]
    assert lessons[0].org_id == "acme"
    assert "Always Celsius" in judge.prompts[0]


def test_skips_blank_items() -> None:
    sink = InMemoryLessonSink()
    judge = StubJudge('[{"type": "insight", "content": "  "}, "nonsense", {"content": "Uses metric"}]')
    lessons = LessonExtractor(judge, StaticConversations(CONVERSATION), sink).extract("c", "o", "u", "a")
    assert [lesson.content for lesson in lessons] == ["Uses metric"]


@pytest.mark.parametrize(
    "messages",
    [
        [],
        [ConversationMessage(role="user", content="Weather tool please, for all of our technicians")],
        [ConversationMessage(role="user", content="hi"), ConversationMessage(role="assistant", content="hello")],
    ],
)
def test_short_conversations_are_skipped(messages: list[ConversationMessage]) -> None:
    judge = StubJudge("[]")
    assert LessonExtractor(judge, StaticConversations(messages), InMemoryLessonSink()).extract("c", "o", "u", "a") == []
    assert judge.prompts == []


def test_no_json_saves_nothing() -> None:
    sink = InMemoryLessonSink()
    LessonExtractor(StubJudge("Nothing notable."), StaticConversations(CONVERSATION), sink).extract("c", "o", "u", "a")
    assert sink.lessons == []


def test_format_conversation_truncates() -> None:
    messages = [ConversationMessage(role="user", content="y" * 900)] * 10
    text = format_conversation(messages)
    assert len(text) == 3000
    assert text.startswith("User: " + "y" * 500 + "\n")


def test_http_conversation_source_reads_messages() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(
            200,
            json={"messages": [{"role": "user", "content": "Celsius please"}, {"role": "assistant"}]},
        )

    source = HttpConversationSource(
        "https://chat.example/conversations/",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    messages = source.messages("conv-1")

    assert seen == ["https://chat.example/conversations/conv-1/messages"]
    assert messages == [
        ConversationMessage(role="user", content="Celsius please"),
        ConversationMessage(role="assistant", content=""),
    ]


def test_http_lesson_sink_posts_lesson() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201)

    sink = HttpLessonSink(
        "https://memory.example/lessons",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    sink.save(Lesson(type="preference", content="Prefers Celsius", org_id="acme", requester_id="user-7"))

    assert bodies[0]["content"] == "Prefers Celsius"
    assert bodies[0]["org_id"] == "acme"


def test_http_lesson_sink_raises_on_error_status() -> None:
    sink = HttpLessonSink(
        "https://memory.example/lessons",
        client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503))),
    )
    with pytest.raises(httpx.HTTPStatusError):
        sink.save(Lesson(type="insight", content="x", org_id="acme", requester_id="user-7"))
