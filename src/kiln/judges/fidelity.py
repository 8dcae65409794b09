"""Semantic Fidelity Judge: does the build do what the user asked for?"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from kiln.pipeline.policy import QaStage, run_guarded
from kiln.qa.models import ArtifactDescriptor, QaResult

from .client import JudgeClient, JudgeResponseError
from .models import FidelityVerdict
from .parsing import extract_json_object
from .prompts import build_fidelity_prompt

logger = logging.getLogger(__name__)


def parse_fidelity_response(text: str) -> FidelityVerdict:
    """Parse judge text into a verdict. Raises ``JudgeResponseError`` when unusable."""
    payload = extract_json_object(text)
    if payload is None or "pass" not in payload:
        raise JudgeResponseError("Fidelity response contained no verdict object")
    payload.pop("judge_error", None)
    try:
        return FidelityVerdict.model_validate(payload)
    except ValidationError as err:
        raise JudgeResponseError(f"Fidelity verdict did not match schema: {err}") from err


class FidelityJudge:
    """Checks functional correctness only; presentation is left to later stages."""

    def __init__(
        self,
        client: JudgeClient,
        *,
        timeout_s: float | None = 120.0,
        max_tokens: int = 500,
    ) -> None:
        self._client = client
        self.timeout_s = timeout_s
        self.max_tokens = max_tokens

    def check(
        self,
        original_request: str,
        artifacts: list[ArtifactDescriptor],
        qa_results: list[QaResult],
    ) -> FidelityVerdict:
        """Return the judge's verdict, or a passing default when the judge is unavailable."""
        prompt = build_fidelity_prompt(original_request, artifacts, qa_results)

        def _judge() -> FidelityVerdict:
            text = self._client.complete(prompt, max_tokens=self.max_tokens)
            return parse_fidelity_response(text)

        verdict = run_guarded(QaStage.fidelity, _judge, FidelityVerdict.fail_open, self.timeout_s)
        logger.info(
            "Fidelity check: %s - %s",
            "PASSED" if verdict.passed else "FAILED",
            verdict.reasoning[:200],
        )
        return verdict
