"""Pydantic models for deployed artifacts and smoke-test outcomes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TestCase(BaseModel):
    """One declared invocation of an artifact and the output pattern it should produce."""

    __test__ = False  # not a pytest class

    input: dict[str, Any] = Field(default_factory=dict)
    expected_output: dict[str, Any] = Field(default_factory=dict)
    description: str = ""


class ArtifactDescriptor(BaseModel):
    """A deployed output of a successful build. Read-only to the verification core."""

    name: str
    endpoint: str = Field(description="Invocation address of the deployed artifact")
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)
    ui_contract: dict[str, Any] | None = Field(
        default=None,
        description="Declarative presentation contract, validated structurally",
    )
    test_cases: list[TestCase] = Field(default_factory=list)


class TestCaseResult(BaseModel):
    """Outcome of a single smoke-test case."""

    __test__ = False

    model_config = ConfigDict(frozen=True)

    description: str
    input: dict[str, Any]
    expected_output: dict[str, Any]
    actual_output: Any = None
    passed: bool = False
    error: str | None = None
    attempts: int = Field(default=0, ge=0)


class QaResult(BaseModel):
    """Per-artifact smoke-test outcome. Created once per verification run."""

    model_config = ConfigDict(frozen=True)

    artifact_name: str
    test_cases: list[TestCaseResult] = Field(default_factory=list)
    all_passed: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def weakly_tested(self) -> bool:
        return not self.test_cases

    @property
    def failed_cases(self) -> list[TestCaseResult]:
        return [case for case in self.test_cases if not case.passed]
