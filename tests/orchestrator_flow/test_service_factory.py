from __future__ import annotations

from kiln.orchestrator.service import build_pipeline, build_service
from kiln.retry.dispatch import HttpRebuildInvoker, UnconfiguredRebuildInvoker
from kiln.retry.lessons import HttpConversationSource, HttpLessonSink, InMemoryLessonSink
from kiln.retry.notifier import InMemoryNotifier, WebhookNotifier
from kiln.settings import KilnSettings


def test_unconfigured_collaborators_fall_back() -> None:
    service = build_service(KilnSettings())
    controller = service._controller
    assert isinstance(controller._rebuild, UnconfiguredRebuildInvoker)
    assert isinstance(controller._notifier, InMemoryNotifier)
    assert controller._lessons is None
    assert controller.max_cycles == 5


def test_configured_urls_select_http_collaborators() -> None:
    settings = KilnSettings(
        max_cycles=3,
        rebuild_url="https://gen.example/kickoff",
        notify_webhook_url="https://hooks.example/notify",
    )
    controller = build_service(settings)._controller
    assert isinstance(controller._rebuild, HttpRebuildInvoker)
    assert isinstance(controller._notifier, WebhookNotifier)
    assert controller.max_cycles == 3


def test_pipeline_uses_policy_constants_from_settings() -> None:
    settings = KilnSettings(
        ux_pass_threshold=7.0,
        numeric_relative_tolerance=0.1,
        numeric_absolute_tolerance=1.0,
        visual_probe_url="https://probe.example",
    )
    pipeline = build_pipeline(settings)
    assert pipeline._ux.threshold == 7.0
    assert pipeline._smoke.tolerance.relative == 0.1
    assert pipeline._smoke.tolerance.absolute == 1.0
    assert pipeline._visual.configured is True


def test_conversation_url_enables_lessons() -> None:
    settings = KilnSettings(
        conversation_url="https://chat.example/conversations",
        lessons_url="https://memory.example/lessons",
    )
    controller = build_service(settings)._controller
    assert controller._lessons is not None
    assert isinstance(controller._lessons._source, HttpConversationSource)
    assert isinstance(controller._lessons._sink, HttpLessonSink)
    assert controller._lesson_executor is not None


def test_conversation_url_without_lessons_url_keeps_lessons_in_memory() -> None:
    controller = build_service(KilnSettings(conversation_url="https://chat.example/conversations"))._controller
    assert isinstance(controller._lessons._sink, InMemoryLessonSink)
