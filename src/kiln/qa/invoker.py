"""Request/response invocation of deployed artifacts."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from .models import ArtifactDescriptor

logger = logging.getLogger(__name__)

_DEFAULT_INVOKE_TIMEOUT_S = 30.0


class ArtifactInvocationError(RuntimeError):
    """The artifact could not be reached or returned an unusable response."""


class ArtifactInvoker(Protocol):
    """Calls a deployed artifact with ``{"input": ...}`` and returns its response body."""

    def invoke(self, artifact: ArtifactDescriptor, payload: dict[str, Any]) -> dict[str, Any]:
        ...


class HttpArtifactInvoker:
    """Invokes artifacts that expose a JSON endpoint at ``ArtifactDescriptor.endpoint``."""

    def __init__(
        self,
        timeout_s: float = _DEFAULT_INVOKE_TIMEOUT_S,
        client: httpx.Client | None = None,
    ) -> None:
        self.timeout_s = timeout_s
        self._client = client or httpx.Client(timeout=timeout_s)

    def invoke(self, artifact: ArtifactDescriptor, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post(
                artifact.endpoint,
                json={"input": payload},
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as err:
            raise ArtifactInvocationError(f"Invocation of '{artifact.name}' failed: {err}") from err

        if response.status_code >= 500:
            raise ArtifactInvocationError(
                f"Artifact '{artifact.name}' returned HTTP {response.status_code}: "
                f"{response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError as err:
            raise ArtifactInvocationError(
                f"Artifact '{artifact.name}' returned non-JSON body: {response.text[:200]}"
            ) from err

        if not isinstance(body, dict):
            raise ArtifactInvocationError(
                f"Artifact '{artifact.name}' returned {type(body).__name__}, expected an object"
            )
        return body

    def close(self) -> None:
        self._client.close()
