"""RetryController - single entry point that resolves a finished verification run."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from typing import Any

from kiln.pipeline.models import FailureContext
from kiln.pipeline.policy import run_with_timeout

from .audit import AuditLog, build_audit_entry
from .chain import collapse_retry_chain
from .classifier import DEFAULT_MAX_CYCLES, classify
from .dispatch import RebuildInvoker
from .lessons import LessonExtractor
from .models import (
    BuildAttempt,
    BuildNotification,
    BuildStatus,
    NotificationType,
    RebuildSpec,
    ResolutionAction,
    ResolutionOutcome,
    utcnow,
)
from .notifier import Notifier
from .store import AttemptStore
from .summary import completed_message, dispatch_failure_message, needs_help_message, retrying_message

logger = logging.getLogger(__name__)


class RetryController:
    """
    Finalizes success, schedules a context-carrying retry, or escalates to a human.

    - Success: persist ``completed``, collapse any ``retrying`` ancestors onto this
      attempt, notify, and extract lessons in the background.
    - Failure with cycles left: persist ``retrying`` with the next cycle and the
      failure context, then re-invoke the generator with this attempt as parent.
      A dispatch error escalates immediately instead of stranding the user.
    - Failure with no cycles left: persist ``needs_help`` with a prioritized summary.

    Resolving an attempt that is already resolved is a no-op.
    """

    def __init__(
        self,
        store: AttemptStore,
        notifier: Notifier,
        rebuild_invoker: RebuildInvoker,
        *,
        audit_log: AuditLog | None = None,
        lesson_extractor: LessonExtractor | None = None,
        lesson_executor: Executor | None = None,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        dispatch_timeout_s: float | None = 15.0,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._rebuild = rebuild_invoker
        self._audit = audit_log
        self._lessons = lesson_extractor
        self._lesson_executor = lesson_executor
        self.max_cycles = max_cycles
        self.dispatch_timeout_s = dispatch_timeout_s
        self._inflight: set[str] = set()
        self._inflight_lock = threading.Lock()

    def resolve(
        self,
        attempt: BuildAttempt,
        failure: FailureContext | None,
        qa_summary: dict[str, Any] | None = None,
        artifact_name: str | None = None,
    ) -> ResolutionOutcome:
        """Resolve one verification run for ``attempt``. ``failure`` is None on success."""
        build_id = attempt.build_id
        with self._inflight_lock:
            if build_id in self._inflight:
                logger.info("Resolution for %s already in progress; ignoring duplicate", build_id)
                return ResolutionOutcome(
                    build_id=build_id,
                    action=ResolutionAction.skipped,
                    reason="Resolution already in progress.",
                )
            self._inflight.add(build_id)

        try:
            return self._resolve(attempt, failure, qa_summary, artifact_name)
        finally:
            with self._inflight_lock:
                self._inflight.discard(build_id)

    def _resolve(
        self,
        attempt: BuildAttempt,
        failure: FailureContext | None,
        qa_summary: dict[str, Any] | None,
        artifact_name: str | None,
    ) -> ResolutionOutcome:
        current = self._store.get(attempt.build_id, attempt.org_id)
        if current is None:
            logger.error("Build %s not found; nothing to resolve", attempt.build_id)
            return ResolutionOutcome(
                build_id=attempt.build_id,
                action=ResolutionAction.skipped,
                reason="Build attempt not found.",
            )

        if current.is_resolved:
            logger.info(
                "Build %s is already '%s'; ignoring duplicate resolution",
                current.build_id,
                current.status.value,
            )
            return ResolutionOutcome(
                build_id=current.build_id,
                action=ResolutionAction.skipped,
                status=current.status,
                reason=f"Already {current.status.value}.",
            )

        decision = classify(failure, current.cycle, self.max_cycles)
        logger.info("Resolving build %s (cycle %d): %s", current.build_id, current.cycle, decision.reason)

        if failure is None:
            return self._complete(current, qa_summary, artifact_name)
        if decision.should_retry and decision.next_cycle is not None:
            return self._retry(current, failure, decision.next_cycle, decision.reason)
        return self._escalate(current, failure, decision.reason)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _complete(
        self,
        attempt: BuildAttempt,
        qa_summary: dict[str, Any] | None,
        artifact_name: str | None,
    ) -> ResolutionOutcome:
        self._transition(
            attempt,
            BuildStatus.completed,
            "Verification passed.",
            qa_summary=qa_summary,
            completed_at=utcnow(),
        )

        ancestors: list[str] = []
        if attempt.cycle > 1 and attempt.parent_build_id:
            ancestors = collapse_retry_chain(
                self._store,
                attempt.parent_build_id,
                attempt.build_id,
                attempt.org_id,
            )

        self._notify(
            attempt,
            NotificationType.build_completed,
            BuildStatus.completed,
            completed_message(attempt.cycle),
            attempt.cycle,
        )
        self._schedule_lessons(attempt, artifact_name)

        return ResolutionOutcome(
            build_id=attempt.build_id,
            action=ResolutionAction.completed,
            status=BuildStatus.completed,
            reason="Verification passed.",
            resolved_ancestors=ancestors,
        )

    def _retry(
        self,
        attempt: BuildAttempt,
        failure: FailureContext,
        next_cycle: int,
        reason: str,
    ) -> ResolutionOutcome:
        self._transition(
            attempt,
            BuildStatus.retrying,
            reason,
            detail={"nextCycle": next_cycle},
            cycle=next_cycle,
            failure_context=failure,
        )

        spec = RebuildSpec(
            original_request=attempt.request,
            failure_context=failure,
            cycle=next_cycle,
            parent_build_id=attempt.build_id,
            org_id=attempt.org_id,
            requester_id=attempt.requester_id,
            conversation_id=attempt.conversation_id,
        )

        try:
            next_build_id = run_with_timeout(
                lambda: self._rebuild.invoke_rebuild(spec),
                self.dispatch_timeout_s,
            )
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.exception("Failed to dispatch cycle %d for build %s", next_cycle, attempt.build_id)
            self._transition(
                attempt,
                BuildStatus.needs_help,
                "Retry dispatch failed.",
                detail={"error": error},
                cycle=attempt.cycle,
                failure_context=failure,
                error=error,
            )
            self._notify(
                attempt,
                NotificationType.build_needs_help,
                BuildStatus.needs_help,
                dispatch_failure_message(),
                attempt.cycle,
            )
            return ResolutionOutcome(
                build_id=attempt.build_id,
                action=ResolutionAction.escalated,
                status=BuildStatus.needs_help,
                reason=f"Retry dispatch failed: {error}",
            )

        self._store.update(attempt.build_id, retry_build_id=next_build_id)
        if self._store.get(next_build_id, attempt.org_id) is None:
            self._store.put(
                BuildAttempt(
                    build_id=next_build_id,
                    cycle=next_cycle,
                    parent_build_id=attempt.build_id,
                    request=attempt.request,
                    org_id=attempt.org_id,
                    requester_id=attempt.requester_id,
                    conversation_id=attempt.conversation_id,
                    status=BuildStatus.running,
                )
            )
        logger.info("Dispatched cycle %d for build %s as %s", next_cycle, attempt.build_id, next_build_id)
        self._notify(
            attempt,
            NotificationType.build_retrying,
            BuildStatus.retrying,
            retrying_message(next_cycle),
            next_cycle,
        )
        return ResolutionOutcome(
            build_id=attempt.build_id,
            action=ResolutionAction.retried,
            status=BuildStatus.retrying,
            reason=reason,
            next_build_id=next_build_id,
        )

    def _escalate(self, attempt: BuildAttempt, failure: FailureContext, reason: str) -> ResolutionOutcome:
        self._transition(
            attempt,
            BuildStatus.needs_help,
            reason,
            failure_context=failure,
        )
        self._notify(
            attempt,
            NotificationType.build_needs_help,
            BuildStatus.needs_help,
            needs_help_message(failure, attempt.cycle),
            attempt.cycle,
        )
        return ResolutionOutcome(
            build_id=attempt.build_id,
            action=ResolutionAction.escalated,
            status=BuildStatus.needs_help,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _transition(
        self,
        attempt: BuildAttempt,
        status: BuildStatus,
        reason: str,
        detail: dict[str, Any] | None = None,
        **fields: Any,
    ) -> BuildAttempt:
        updated = self._store.update(attempt.build_id, status=status, **fields)
        if self._audit is not None:
            try:
                self._audit.record(build_audit_entry(attempt, status, reason, detail))
            except Exception:
                logger.exception("Audit write failed for build %s", attempt.build_id)
        return updated

    def _notify(
        self,
        attempt: BuildAttempt,
        notification_type: NotificationType,
        status: BuildStatus,
        message: str,
        cycle: int,
    ) -> None:
        notification = BuildNotification(
            type=notification_type,
            build_id=attempt.build_id,
            status=status,
            message=message,
            cycle=cycle,
        )
        try:
            self._notifier.notify(attempt.requester_id, notification)
        except Exception:
            logger.exception("Notification %s failed for build %s", notification_type.value, attempt.build_id)

    def _schedule_lessons(self, attempt: BuildAttempt, artifact_name: str | None) -> None:
        extractor = self._lessons
        conversation_id = attempt.conversation_id
        if extractor is None or not conversation_id or not artifact_name:
            return

        def _extract() -> None:
            try:
                extractor.extract(conversation_id, attempt.org_id, attempt.requester_id, artifact_name)
            except Exception:
                logger.exception("Lesson extraction failed for build %s", attempt.build_id)

        if self._lesson_executor is None:
            _extract()
            return
        try:
            self._lesson_executor.submit(_extract)
        except Exception:
            logger.exception("Could not schedule lesson extraction for build %s", attempt.build_id)
