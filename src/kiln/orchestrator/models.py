"""Pydantic models for build-completion events and their verification outcome."""

from __future__ import annotations

from pydantic import BaseModel, Field

from kiln.pipeline.models import PipelineVerdict
from kiln.qa.models import ArtifactDescriptor
from kiln.retry.models import ResolutionOutcome


class BuildCompletionEvent(BaseModel):
    """Emitted by the upstream generator once a build has finished deploying (or failed to)."""

    build_id: str
    org_id: str | None = None
    deploy_succeeded: bool = True
    artifacts: list[ArtifactDescriptor] = Field(default_factory=list)
    deployment_error: str | None = None


class VerificationReport(BaseModel):
    """Everything one completion event produced. ``verdict`` is None when QA did not run."""

    build_id: str
    verdict: PipelineVerdict | None = None
    outcome: ResolutionOutcome
