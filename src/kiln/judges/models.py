"""Verdict models produced by the LLM judges."""

from __future__ import annotations

from statistics import fmean

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_UX_THRESHOLD = 6.0
FAIL_OPEN_UX_SCORE = 7


class FidelityVerdict(BaseModel):
    """Whether the artifacts functionally satisfy the original request."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    passed: bool = Field(alias="pass")
    reasoning: str = ""
    gaps: list[str] = Field(default_factory=list)
    judge_error: str | None = Field(
        default=None,
        description="Set when the verdict is a fail-open default rather than a judgment",
    )

    @field_validator("gaps", mode="before")
    @classmethod
    def _coerce_gaps(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if isinstance(value, list):
            return [str(item) for item in value if str(item).strip()]
        return value

    @model_validator(mode="after")
    def _gaps_only_on_failure(self) -> "FidelityVerdict":
        if self.passed and self.gaps:
            object.__setattr__(self, "gaps", [])
        return self

    @classmethod
    def fail_open(cls, reason: str) -> "FidelityVerdict":
        return cls(
            passed=True,
            reasoning=f"Fidelity check unavailable ({reason}); defaulting to pass",
            gaps=[],
            judge_error=reason,
        )


class UxScores(BaseModel):
    """Usability grades on a 1-10 scale."""

    model_config = ConfigDict(frozen=True)

    discoverability: float = Field(ge=1, le=10)
    ease_of_use: float = Field(ge=1, le=10)
    result_clarity: float = Field(ge=1, le=10)

    @field_validator("discoverability", "ease_of_use", "result_clarity", mode="before")
    @classmethod
    def _clamp(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("score must be numeric")
        if isinstance(value, str):
            value = float(value.strip())
        if isinstance(value, (int, float)):
            return max(1.0, min(10.0, float(value)))
        return value

    @property
    def mean(self) -> float:
        return round(fmean([self.discoverability, self.ease_of_use, self.result_clarity]), 1)


class UxVerdict(BaseModel):
    """Simulated first-time-user assessment. ``passed`` is derived from the mean score."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    scores: UxScores
    mean_score: float
    critique: str = ""
    suggestions: list[str] = Field(default_factory=list)
    judge_error: str | None = None

    @classmethod
    def from_scores(
        cls,
        scores: UxScores,
        *,
        critique: str = "",
        suggestions: list[str] | None = None,
        threshold: float = DEFAULT_UX_THRESHOLD,
        judge_error: str | None = None,
    ) -> "UxVerdict":
        mean = scores.mean
        return cls(
            passed=mean >= threshold,
            scores=scores,
            mean_score=mean,
            critique=critique,
            suggestions=list(suggestions or []),
            judge_error=judge_error,
        )

    @classmethod
    def fail_open(cls, reason: str) -> "UxVerdict":
        scores = UxScores(
            discoverability=FAIL_OPEN_UX_SCORE,
            ease_of_use=FAIL_OPEN_UX_SCORE,
            result_clarity=FAIL_OPEN_UX_SCORE,
        )
        return cls(
            passed=True,
            scores=scores,
            mean_score=scores.mean,
            critique=f"UX review unavailable ({reason}); defaulting to pass",
            judge_error=reason,
        )
