"""Pydantic models for build attempts, retry chains, notifications and audit entries."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from kiln.pipeline.models import FailureContext


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BuildStatus(str, Enum):
    """Lifecycle of one build attempt."""

    pending = "pending"
    running = "running"
    completed = "completed"
    retrying = "retrying"
    needs_help = "needs_help"
    failed = "failed"


TERMINAL_STATUSES: frozenset[BuildStatus] = frozenset({
    BuildStatus.completed,
    BuildStatus.needs_help,
    BuildStatus.failed,
})

# A retrying attempt has already handed off to its successor.
RESOLVED_STATUSES: frozenset[BuildStatus] = TERMINAL_STATUSES | {BuildStatus.retrying}


class BuildAttempt(BaseModel):
    """One execution of the upstream generator, linked to its parent when it is a retry."""

    build_id: str
    cycle: int = Field(default=1, ge=1, description="1-based attempt number within a retry chain")
    parent_build_id: str | None = None
    request: str = Field(description="Original natural-language requirement")
    org_id: str = "default"
    requester_id: str = "anonymous"
    conversation_id: str | None = None
    status: BuildStatus = BuildStatus.pending

    qa_summary: dict[str, Any] | None = None
    failure_context: FailureContext | None = None
    resolved_by: str | None = Field(default=None, description="Descendant whose success closed this attempt")
    retry_build_id: str | None = Field(default=None, description="Attempt spawned by this one")
    error: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.status in RESOLVED_STATUSES


class RebuildSpec(BaseModel):
    """Everything the upstream generator needs to start the next cycle."""

    original_request: str
    failure_context: FailureContext
    cycle: int = Field(ge=2)
    parent_build_id: str
    org_id: str
    requester_id: str
    conversation_id: str | None = None


class NotificationType(str, Enum):
    build_completed = "build_completed"
    build_retrying = "build_retrying"
    build_needs_help = "build_needs_help"


class BuildNotification(BaseModel):
    """Structured event delivered to the requester; never carries raw failure detail."""

    type: NotificationType
    build_id: str
    status: BuildStatus
    message: str
    cycle: int


class AuditEntry(BaseModel):
    """One status transition of one attempt."""

    build_id: str
    org_id: str
    action: str
    actor: str
    reason: str
    detail: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class ResolutionAction(str, Enum):
    completed = "completed"
    retried = "retried"
    escalated = "escalated"
    skipped = "skipped"


class ResolutionOutcome(BaseModel):
    """What the retry controller did for one resolve call."""

    build_id: str
    action: ResolutionAction
    status: BuildStatus | None = None
    reason: str = ""
    next_build_id: str | None = None
    resolved_ancestors: list[str] = Field(default_factory=list)
