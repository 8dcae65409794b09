"""BuildVerificationService - verify a completed build and resolve its attempt."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from kiln.judges.client import LiteLLMJudgeClient
from kiln.judges.fidelity import FidelityJudge
from kiln.judges.ux import UxJudge
from kiln.pipeline.models import FailureContext
from kiln.pipeline.service import QaPipeline
from kiln.qa.contract import ContractValidator
from kiln.qa.invoker import HttpArtifactInvoker
from kiln.qa.matcher import NumericTolerance
from kiln.qa.smoke import SmokeTestRunner
from kiln.retry.audit import AuditLog, InMemoryAuditLog
from kiln.retry.controller import RetryController
from kiln.retry.dispatch import HttpRebuildInvoker, RebuildInvoker, UnconfiguredRebuildInvoker
from kiln.retry.lessons import (
    ConversationSource,
    HttpConversationSource,
    HttpLessonSink,
    InMemoryLessonSink,
    LessonExtractor,
    LessonSink,
)
from kiln.retry.models import ResolutionAction, ResolutionOutcome
from kiln.retry.notifier import InMemoryNotifier, Notifier, WebhookNotifier
from kiln.retry.store import AttemptStore, InMemoryAttemptStore
from kiln.settings import KilnSettings
from kiln.visual.probe import HttpVisualProbeClient, VisualVerifier

from .models import BuildCompletionEvent, VerificationReport

logger = logging.getLogger(__name__)


class BuildVerificationService:
    """
    Handles one build-completion event end to end.

    A failed deployment skips QA and goes straight to the retry controller with
    the deployment error as its failure context. A successful deployment runs the
    QA pipeline and hands the verdict to the controller. Events for unknown or
    already-resolved attempts are ignored.
    """

    def __init__(self, store: AttemptStore, pipeline: QaPipeline, controller: RetryController) -> None:
        self._store = store
        self._pipeline = pipeline
        self._controller = controller

    def handle_completion(self, event: BuildCompletionEvent) -> VerificationReport:
        attempt = self._store.get(event.build_id, event.org_id)
        if attempt is None:
            logger.error("Completion event for unknown build %s", event.build_id)
            return VerificationReport(
                build_id=event.build_id,
                outcome=ResolutionOutcome(
                    build_id=event.build_id,
                    action=ResolutionAction.skipped,
                    reason="Build attempt not found.",
                ),
            )

        if attempt.is_resolved:
            logger.info(
                "Build %s already '%s'; ignoring repeated completion event",
                attempt.build_id,
                attempt.status.value,
            )
            return VerificationReport(
                build_id=attempt.build_id,
                outcome=ResolutionOutcome(
                    build_id=attempt.build_id,
                    action=ResolutionAction.skipped,
                    status=attempt.status,
                    reason=f"Already {attempt.status.value}.",
                ),
            )

        if not event.deploy_succeeded:
            error = event.deployment_error or "Deployment failed"
            logger.warning("Build %s failed to deploy: %s", attempt.build_id, error)
            outcome = self._controller.resolve(attempt, FailureContext.for_deployment_error(error))
            return VerificationReport(build_id=attempt.build_id, outcome=outcome)

        verdict = self._pipeline.run(attempt.request, event.artifacts)
        artifact_name = event.artifacts[0].name if event.artifacts else None
        outcome = self._controller.resolve(
            attempt,
            None if verdict.passed else verdict.failure_context,
            qa_summary=verdict.summary(),
            artifact_name=artifact_name,
        )
        return VerificationReport(build_id=attempt.build_id, verdict=verdict, outcome=outcome)


def build_pipeline(settings: KilnSettings) -> QaPipeline:
    """Wire the QA pipeline against real HTTP and LLM collaborators."""
    judge_client = LiteLLMJudgeClient(
        model_name=settings.judge_model,
        provider=settings.judge_provider,
        api_base=settings.judge_api_base,
        api_key=settings.judge_api_key,
        request_timeout_s=settings.judge_timeout_s,
    )
    smoke_runner = SmokeTestRunner(
        HttpArtifactInvoker(timeout_s=settings.invoke_timeout_s),
        max_attempts=settings.smoke_max_attempts,
        backoff_s=settings.smoke_backoff_s,
        settle_delay_s=settings.settle_delay_s,
        invoke_timeout_s=settings.invoke_timeout_s,
        tolerance=NumericTolerance(
            relative=settings.numeric_relative_tolerance,
            absolute=settings.numeric_absolute_tolerance,
        ),
    )
    probe_client = (
        HttpVisualProbeClient(settings.visual_probe_url, timeout_s=settings.probe_timeout_s)
        if settings.visual_probe_url
        else None
    )
    return QaPipeline(
        smoke_runner,
        FidelityJudge(
            judge_client,
            timeout_s=settings.judge_timeout_s,
            max_tokens=settings.fidelity_max_tokens,
        ),
        UxJudge(
            judge_client,
            threshold=settings.ux_pass_threshold,
            timeout_s=settings.judge_timeout_s,
            max_tokens=settings.ux_max_tokens,
        ),
        ContractValidator(),
        VisualVerifier(probe_client, timeout_s=settings.probe_timeout_s),
    )


def build_service(
    settings: KilnSettings | None = None,
    *,
    store: AttemptStore | None = None,
    audit_log: AuditLog | None = None,
    notifier: Notifier | None = None,
    rebuild_invoker: RebuildInvoker | None = None,
    pipeline: QaPipeline | None = None,
    conversation_source: ConversationSource | None = None,
    lesson_sink: LessonSink | None = None,
) -> BuildVerificationService:
    """
    Assemble a BuildVerificationService from settings.

    Any collaborator passed explicitly wins over the one derived from settings.
    Lessons are only extracted when a conversation source is supplied or
    ``settings.conversation_url`` is set.
    """
    settings = settings or KilnSettings.from_env()
    store = store if store is not None else InMemoryAttemptStore()

    if notifier is None:
        notifier = (
            WebhookNotifier(settings.notify_webhook_url, timeout_s=settings.notify_timeout_s)
            if settings.notify_webhook_url
            else InMemoryNotifier()
        )
    if rebuild_invoker is None:
        rebuild_invoker = (
            HttpRebuildInvoker(settings.rebuild_url, timeout_s=settings.dispatch_timeout_s)
            if settings.rebuild_url
            else UnconfiguredRebuildInvoker()
        )
    if pipeline is None:
        pipeline = build_pipeline(settings)
    if conversation_source is None and settings.conversation_url:
        conversation_source = HttpConversationSource(settings.conversation_url, timeout_s=settings.notify_timeout_s)
    if lesson_sink is None and settings.lessons_url:
        lesson_sink = HttpLessonSink(settings.lessons_url, timeout_s=settings.notify_timeout_s)

    lesson_extractor = None
    lesson_executor = None
    if conversation_source is not None:
        lesson_extractor = LessonExtractor(
            LiteLLMJudgeClient(
                model_name=settings.judge_model,
                provider=settings.judge_provider,
                api_base=settings.judge_api_base,
                api_key=settings.judge_api_key,
                request_timeout_s=settings.judge_timeout_s,
            ),
            conversation_source,
            lesson_sink if lesson_sink is not None else InMemoryLessonSink(),
        )
        lesson_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kiln-lessons")

    controller = RetryController(
        store,
        notifier,
        rebuild_invoker,
        audit_log=audit_log if audit_log is not None else InMemoryAuditLog(),
        lesson_extractor=lesson_extractor,
        lesson_executor=lesson_executor,
        max_cycles=settings.max_cycles,
        dispatch_timeout_s=settings.dispatch_timeout_s,
    )
    return BuildVerificationService(store, pipeline, controller)
