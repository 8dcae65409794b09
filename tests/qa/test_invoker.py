from __future__ import annotations

import json

import httpx
import pytest

from kiln.qa.invoker import ArtifactInvocationError, HttpArtifactInvoker
from kiln.qa.models import ArtifactDescriptor

ARTIFACT = ArtifactDescriptor(name="weather", endpoint="https://tools.example/weather")


def _invoker(handler) -> HttpArtifactInvoker:
    return HttpArtifactInvoker(timeout_s=5.0, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_posts_input_envelope_and_returns_body() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"output": {"temp": 18}})

    body = _invoker(handler).invoke(ARTIFACT, {"city": "Paris"})

    assert body == {"output": {"temp": 18}}
    assert seen == {"url": "https://tools.example/weather", "body": {"input": {"city": "Paris"}}}


def test_client_error_status_body_is_returned() -> None:
    invoker = _invoker(lambda request: httpx.Response(400, json={"error": "city is required"}))
    assert invoker.invoke(ARTIFACT, {}) == {"error": "city is required"}


def test_server_error_raises() -> None:
    invoker = _invoker(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(ArtifactInvocationError, match="HTTP 502"):
        invoker.invoke(ARTIFACT, {})


def test_non_json_body_raises() -> None:
    invoker = _invoker(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(ArtifactInvocationError, match="non-JSON"):
        invoker.invoke(ARTIFACT, {})


def test_non_object_body_raises() -> None:
    invoker = _invoker(lambda request: httpx.Response(200, json=[1, 2]))
    with pytest.raises(ArtifactInvocationError, match="expected an object"):
        invoker.invoke(ARTIFACT, {})


def test_transport_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ArtifactInvocationError) as exc_info:
        _invoker(handler).invoke(ARTIFACT, {})
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
