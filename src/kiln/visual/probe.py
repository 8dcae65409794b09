"""Visual Verifier: delegate to an external headless-browser probe service."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from pydantic import ValidationError

from kiln.pipeline.policy import QaStage, run_guarded

from .models import VisualResult

logger = logging.getLogger(__name__)


class VisualProbeError(RuntimeError):
    """The probe service failed or returned something that is not a probe result."""


class VisualProbeClient(Protocol):
    def probe(self, artifact_name: str) -> VisualResult:
        ...


class HttpVisualProbeClient:
    """Posts ``{"artifactName": ...}`` to the probe service and parses its report."""

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 90.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._client = client or httpx.Client(timeout=timeout_s)

    def probe(self, artifact_name: str) -> VisualResult:
        try:
            response = self._client.post(
                f"{self.base_url}/probe",
                json={"artifactName": artifact_name},
                timeout=self.timeout_s,
            )
            response.raise_for_status()
            return VisualResult.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as err:
            raise VisualProbeError(f"Visual probe for '{artifact_name}' failed: {err}") from err


class VisualVerifier:
    """
    Returns a ``VisualResult`` or None.

    None means the probe is not configured or was unreachable; it is never a
    failure on its own. Issues in a returned result feed the UX judge and the
    failure report but do not block the build.
    """

    def __init__(self, client: VisualProbeClient | None = None, *, timeout_s: float | None = 90.0) -> None:
        self._client = client
        self.timeout_s = timeout_s

    @property
    def configured(self) -> bool:
        return self._client is not None

    def probe(self, artifact_name: str) -> VisualResult | None:
        if self._client is None:
            logger.debug("Visual probe not configured; skipping %s", artifact_name)
            return None

        client = self._client
        result = run_guarded(
            QaStage.visual,
            lambda: client.probe(artifact_name),
            lambda reason: None,
            self.timeout_s,
        )
        if result is not None and result.issues:
            logger.info("Visual probe for %s found %d issue(s)", artifact_name, len(result.issues))
        return result
