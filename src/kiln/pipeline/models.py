"""Pydantic models for a single verification run and its failure report."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kiln.judges.models import FidelityVerdict, UxScores, UxVerdict
from kiln.qa.models import QaResult
from kiln.visual.models import VisualResult

from .policy import QaStage


class StageOutcome(BaseModel):
    """What one stage did in a run. Skipped stages have ``ran=False``."""

    stage: QaStage
    ran: bool
    passed: bool | None = Field(default=None, description="None when the stage did not run")
    blocking: bool
    detail: str = ""


class FailedTest(BaseModel):
    description: str
    input: dict[str, Any] = Field(default_factory=dict)
    expected_output: dict[str, Any] = Field(default_factory=dict)
    actual_output: Any = None
    error: str | None = None


class SmokeFailure(BaseModel):
    artifact_name: str
    failed_tests: list[FailedTest] = Field(default_factory=list)


class UxFeedback(BaseModel):
    artifact_name: str
    scores: UxScores
    mean_score: float
    critique: str = ""
    suggestions: list[str] = Field(default_factory=list)


class FailureContext(BaseModel):
    """
    Structured, self-contained feedback for the next build attempt.

    Holds plain data only; the next attempt may start with no other context.
    Stages that did not run contribute nothing.
    """

    model_config = ConfigDict(frozen=True)

    smoke_failures: list[SmokeFailure] = Field(default_factory=list)
    fidelity_gaps: list[str] = Field(default_factory=list)
    fidelity_reasoning: str = ""
    contract_issues: list[str] = Field(default_factory=list)
    visual_issues: list[str] = Field(default_factory=list)
    ux_feedback: list[UxFeedback] = Field(default_factory=list)
    deployment_error: str | None = None

    @classmethod
    def for_deployment_error(cls, error: str) -> "FailureContext":
        return cls(deployment_error=error)

    @property
    def failed_test_count(self) -> int:
        return sum(len(failure.failed_tests) for failure in self.smoke_failures)


class PipelineVerdict(BaseModel):
    """Combined verdict of one verification run."""

    passed: bool
    stages: list[StageOutcome] = Field(default_factory=list)
    qa_results: list[QaResult] = Field(default_factory=list)
    fidelity: FidelityVerdict | None = None
    contract_issues: list[str] = Field(default_factory=list)
    visual_results: dict[str, VisualResult | None] = Field(default_factory=dict)
    ux_verdicts: dict[str, UxVerdict] = Field(default_factory=dict)
    failure_context: FailureContext | None = None

    def stage(self, stage: QaStage) -> StageOutcome | None:
        for outcome in self.stages:
            if outcome.stage == stage:
                return outcome
        return None

    def summary(self) -> dict[str, Any]:
        """Compact record persisted alongside a completed attempt."""
        return {
            "passed": self.passed,
            "stages": {
                outcome.stage.value: (outcome.passed if outcome.ran else "skipped")
                for outcome in self.stages
            },
            "qa": [
                {
                    "artifact": result.artifact_name,
                    "allPassed": result.all_passed,
                    "cases": len(result.test_cases),
                }
                for result in self.qa_results
            ],
            "fidelity": (
                {"pass": self.fidelity.passed, "reasoning": self.fidelity.reasoning}
                if self.fidelity is not None
                else None
            ),
            "ux": {name: verdict.mean_score for name, verdict in self.ux_verdicts.items()},
        }
