"""Adversarial UX Judge: grade an artifact's page as a first-time non-technical user."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from kiln.pipeline.policy import QaStage, run_guarded

from .client import JudgeClient, JudgeResponseError
from .models import DEFAULT_UX_THRESHOLD, UxScores, UxVerdict
from .parsing import extract_json_object
from .prompts import build_ux_prompt

logger = logging.getLogger(__name__)


def parse_ux_response(text: str, threshold: float = DEFAULT_UX_THRESHOLD) -> UxVerdict:
    """Parse judge text; the pass/fail decision is recomputed from the scores, never trusted."""
    payload = extract_json_object(text)
    if payload is None:
        raise JudgeResponseError("UX response contained no JSON object")

    raw_scores = payload.get("scores", payload)
    if not isinstance(raw_scores, dict):
        raise JudgeResponseError("UX response scores must be an object")

    try:
        scores = UxScores.model_validate(raw_scores)
    except (ValidationError, ValueError) as err:
        raise JudgeResponseError(f"UX scores did not match schema: {err}") from err

    suggestions = payload.get("suggestions") or []
    if not isinstance(suggestions, list):
        suggestions = [suggestions]

    return UxVerdict.from_scores(
        scores,
        critique=str(payload.get("critique") or ""),
        suggestions=[str(item) for item in suggestions if str(item).strip()],
        threshold=threshold,
    )


class UxJudge:
    """Scores discoverability, ease of use and result clarity; passes at ``threshold`` mean."""

    def __init__(
        self,
        client: JudgeClient,
        *,
        threshold: float = DEFAULT_UX_THRESHOLD,
        timeout_s: float | None = 120.0,
        max_tokens: int = 800,
    ) -> None:
        self._client = client
        self.threshold = threshold
        self.timeout_s = timeout_s
        self.max_tokens = max_tokens

    def score(
        self,
        artifact_description: str,
        ui_contract: Mapping[str, Any] | None,
        original_request: str,
        visual_snapshots: Mapping[str, str] | None = None,
    ) -> UxVerdict:
        prompt = build_ux_prompt(artifact_description, ui_contract, original_request, visual_snapshots)

        def _judge() -> UxVerdict:
            text = self._client.complete(prompt, max_tokens=self.max_tokens)
            return parse_ux_response(text, self.threshold)

        verdict = run_guarded(QaStage.ux, _judge, UxVerdict.fail_open, self.timeout_s)
        logger.info(
            "UX review: %s (mean %.1f, threshold %.1f)",
            "PASSED" if verdict.passed else "FAILED",
            verdict.mean_score,
            self.threshold,
        )
        return verdict
