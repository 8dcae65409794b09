from __future__ import annotations

import uuid

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from kiln.orchestrator.models import BuildCompletionEvent, VerificationReport
from kiln.orchestrator.service import BuildVerificationService, build_pipeline, build_service
from kiln.pipeline.models import PipelineVerdict
from kiln.pipeline.service import QaPipeline
from kiln.qa.models import ArtifactDescriptor
from kiln.retry.audit import InMemoryAuditLog
from kiln.retry.models import AuditEntry, BuildAttempt, BuildStatus
from kiln.retry.notifier import InMemoryNotifier, Notifier, WebhookNotifier
from kiln.retry.store import InMemoryAttemptStore
from kiln.settings import KilnSettings

app = FastAPI(title="Kiln", version="0.1.0-dev")

_SETTINGS = KilnSettings.from_env()

# In-process attempt store and audit log
# (per-process only; production deployments should use a persistent store)
_ATTEMPT_STORE = InMemoryAttemptStore()
_AUDIT_LOG = InMemoryAuditLog()
_NOTIFIER: Notifier = (
    WebhookNotifier(_SETTINGS.notify_webhook_url, timeout_s=_SETTINGS.notify_timeout_s)
    if _SETTINGS.notify_webhook_url
    else InMemoryNotifier()
)

# Shared per process: every delivery for a build must reach the same controller.
_PIPELINE = build_pipeline(_SETTINGS)
_VERIFICATION_SERVICE = build_service(
    _SETTINGS,
    store=_ATTEMPT_STORE,
    audit_log=_AUDIT_LOG,
    notifier=_NOTIFIER,
    pipeline=_PIPELINE,
)


def _verification_service() -> BuildVerificationService:
    return _VERIFICATION_SERVICE


def _verification_pipeline() -> QaPipeline:
    return _PIPELINE


class CreateBuildRequest(BaseModel):
    """Request body for registering a build attempt."""

    build_id: str | None = None
    request: str = Field(min_length=1)
    org_id: str = "default"
    requester_id: str = "anonymous"
    conversation_id: str | None = None
    cycle: int = Field(default=1, ge=1)
    parent_build_id: str | None = None


class CompletionRequest(BaseModel):
    """Request body for the build-completion endpoint."""

    org_id: str | None = None
    deploy_succeeded: bool = True
    artifacts: list[ArtifactDescriptor] = Field(default_factory=list)
    deployment_error: str | None = None


class VerifyRequest(BaseModel):
    """Request body for the /verify endpoint."""

    request: str = Field(min_length=1)
    artifacts: list[ArtifactDescriptor] = Field(default_factory=list)


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {
        "status": "ok",
        "service": "kiln",
        "version": "0.1.0-dev",
    }


@app.post("/builds", status_code=201)
async def create_build(req: CreateBuildRequest) -> BuildAttempt:
    """Register a build attempt as the upstream generator starts it."""
    build_id = req.build_id or uuid.uuid4().hex
    if _ATTEMPT_STORE.get(build_id, req.org_id) is not None:
        raise HTTPException(status_code=409, detail=f"Build '{build_id}' already exists")
    attempt = BuildAttempt(
        build_id=build_id,
        cycle=req.cycle,
        parent_build_id=req.parent_build_id,
        request=req.request,
        org_id=req.org_id,
        requester_id=req.requester_id,
        conversation_id=req.conversation_id,
        status=BuildStatus.running,
    )
    return _ATTEMPT_STORE.put(attempt)


@app.get("/builds/{build_id}")
async def get_build(build_id: str) -> BuildAttempt:
    """Return the stored attempt, or 404 when *build_id* is unknown."""
    attempt = _ATTEMPT_STORE.get(build_id)
    if attempt is None:
        raise HTTPException(
            status_code=404,
            detail=f"No build attempt found for build_id='{build_id}'",
        )
    return attempt


@app.get("/builds/{build_id}/audit")
async def get_build_audit(build_id: str) -> list[AuditEntry]:
    if _ATTEMPT_STORE.get(build_id) is None:
        raise HTTPException(
            status_code=404,
            detail=f"No build attempt found for build_id='{build_id}'",
        )
    return _AUDIT_LOG.read(build_id)


@app.post("/builds/{build_id}/completion")
def complete_build(build_id: str, req: CompletionRequest) -> VerificationReport:
    """Verify a finished build and complete, retry, or escalate its attempt."""
    if _ATTEMPT_STORE.get(build_id, req.org_id) is None:
        raise HTTPException(
            status_code=404,
            detail=f"No build attempt found for build_id='{build_id}'",
        )
    event = BuildCompletionEvent(
        build_id=build_id,
        org_id=req.org_id,
        deploy_succeeded=req.deploy_succeeded,
        artifacts=req.artifacts,
        deployment_error=req.deployment_error,
    )
    return _verification_service().handle_completion(event)


@app.post("/verify")
def verify(req: VerifyRequest) -> PipelineVerdict:
    """Run the QA pipeline for ad hoc artifacts without touching any attempt."""
    return _verification_pipeline().run(req.request, req.artifacts)
