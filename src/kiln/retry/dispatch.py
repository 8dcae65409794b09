"""Re-invocation of the upstream generator for the next build cycle."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from .models import RebuildSpec

logger = logging.getLogger(__name__)


class RebuildDispatchError(RuntimeError):
    """The upstream generator could not be asked to start the next cycle."""


class RebuildInvoker(Protocol):
    def invoke_rebuild(self, spec: RebuildSpec) -> str:
        """Start the next attempt asynchronously and return its build id."""
        ...


class HttpRebuildInvoker:
    """Posts the augmented build spec to the generator kickoff endpoint."""

    def __init__(self, url: str, timeout_s: float = 15.0, client: httpx.Client | None = None) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self._client = client or httpx.Client(timeout=timeout_s)

    def invoke_rebuild(self, spec: RebuildSpec) -> str:
        try:
            response = self._client.post(
                self.url,
                json={"action": "start", "payload": spec.model_dump(mode="json")},
                timeout=self.timeout_s,
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as err:
            raise RebuildDispatchError(f"Rebuild kickoff failed: {err}") from err

        build_id = body.get("buildId") if isinstance(body, dict) else None
        if not build_id:
            raise RebuildDispatchError("Rebuild kickoff response did not include a buildId")
        logger.info("Kicked off cycle %d as build %s", spec.cycle, build_id)
        return str(build_id)


class UnconfiguredRebuildInvoker:
    """Stands in when no kickoff endpoint is configured; every dispatch escalates."""

    def invoke_rebuild(self, spec: RebuildSpec) -> str:
        raise RebuildDispatchError("No rebuild endpoint configured")
