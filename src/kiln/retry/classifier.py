"""Retry eligibility for a resolved verification run."""

from __future__ import annotations

from kiln.pipeline.models import FailureContext

from .models import ResolutionAction

DEFAULT_MAX_CYCLES = 5


class RetryDecision:
    """Encapsulates a complete/retry/escalate decision with its reason."""

    def __init__(self, *, action: ResolutionAction, reason: str, next_cycle: int | None = None) -> None:
        self.action = action
        self.reason = reason
        self.next_cycle = next_cycle

    @property
    def should_retry(self) -> bool:
        return self.action == ResolutionAction.retried

    def __bool__(self) -> bool:
        return self.should_retry

    def __repr__(self) -> str:
        return f"RetryDecision(action={self.action.value!r}, reason={self.reason!r})"


def classify(
    failure: FailureContext | None,
    current_cycle: int,
    max_cycles: int = DEFAULT_MAX_CYCLES,
) -> RetryDecision:
    """
    Decide what to do with a finished verification run.

    Rules (evaluated in priority order):
    1. No failure context: the run passed; complete.
    2. Cycle budget exhausted (``current_cycle >= max_cycles``): escalate to a human.
    3. Otherwise: retry with the next cycle number.
    """

    # 1. Pass
    if failure is None:
        return RetryDecision(action=ResolutionAction.completed, reason="Verification passed.")

    # 2. Budget
    if current_cycle >= max_cycles:
        return RetryDecision(
            action=ResolutionAction.escalated,
            reason=f"Max build cycles reached ({max_cycles}). Asking for help.",
        )

    # 3. Retry
    next_cycle = current_cycle + 1
    return RetryDecision(
        action=ResolutionAction.retried,
        reason=f"Verification failed on cycle {current_cycle}. Scheduling cycle {next_cycle} of {max_cycles}.",
        next_cycle=next_cycle,
    )
