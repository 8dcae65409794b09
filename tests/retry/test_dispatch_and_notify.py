from __future__ import annotations

import json

import httpx
import pytest

from kiln.pipeline.models import FailureContext
from kiln.retry.dispatch import HttpRebuildInvoker, RebuildDispatchError, UnconfiguredRebuildInvoker
from kiln.retry.models import BuildNotification, BuildStatus, NotificationType, RebuildSpec
from kiln.retry.notifier import InMemoryNotifier, WebhookNotifier

SPEC = RebuildSpec(
    original_request="Show the weather",
    failure_context=FailureContext(fidelity_gaps=["no units"]),
    cycle=2,
    parent_build_id="build-1",
    org_id="acme",
    requester_id="user-7",
)


def _http(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestHttpRebuildInvoker:
    def test_posts_start_action_and_returns_build_id(self) -> None:
        seen: dict[str, object] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return httpx.Response(202, json={"buildId": "build-2"})

        build_id = HttpRebuildInvoker("https://gen.example/kickoff", client=_http(handler)).invoke_rebuild(SPEC)

        assert build_id == "build-2"
        assert seen["action"] == "start"
        payload = seen["payload"]
        assert payload["parent_build_id"] == "build-1"
        assert payload["cycle"] == 2
        assert payload["failure_context"]["fidelity_gaps"] == ["no units"]

    @pytest.mark.parametrize(
        "response",
        [httpx.Response(500), httpx.Response(200, json={}), httpx.Response(200, text="ok")],
    )
    def test_failures_raise_dispatch_error(self, response: httpx.Response) -> None:
        invoker = HttpRebuildInvoker("https://gen.example/kickoff", client=_http(lambda request: response))
        with pytest.raises(RebuildDispatchError):
            invoker.invoke_rebuild(SPEC)


def test_unconfigured_invoker_always_raises() -> None:
    with pytest.raises(RebuildDispatchError):
        UnconfiguredRebuildInvoker().invoke_rebuild(SPEC)


NOTE = BuildNotification(
    type=NotificationType.build_retrying,
    build_id="build-1",
    status=BuildStatus.retrying,
    message="Still working on it.",
    cycle=2,
)


def test_webhook_notifier_posts_event() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(204)

    WebhookNotifier("https://hooks.example/notify", client=_http(handler)).notify("user-7", NOTE)

    assert seen["requesterId"] == "user-7"
    assert seen["event"]["type"] == "build_retrying"
    assert seen["event"]["cycle"] == 2


def test_webhook_notifier_raises_on_error_status() -> None:
    notifier = WebhookNotifier("https://hooks.example/notify", client=_http(lambda request: httpx.Response(500)))
    with pytest.raises(httpx.HTTPStatusError):
        notifier.notify("user-7", NOTE)


def test_in_memory_notifier_filters_by_build() -> None:
    notifier = InMemoryNotifier()
    notifier.notify("user-7", NOTE)
    assert notifier.for_build("build-1") == [NOTE]
    assert notifier.for_build("build-9") == []
