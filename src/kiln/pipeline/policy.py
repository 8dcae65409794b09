"""Per-stage blocking and fail-open policy for the QA pipeline."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QaStage(str, Enum):
    """Verification stages in execution order."""

    smoke = "smoke"
    fidelity = "fidelity"
    contract = "contract"
    visual = "visual"
    ux = "ux"


class StagePolicy(BaseModel):
    """Whether a stage can fail the build, and whether its own errors default to pass."""

    stage: QaStage
    blocking: bool
    fail_open_on_error: bool


STAGE_POLICIES: dict[QaStage, StagePolicy] = {
    QaStage.smoke: StagePolicy(stage=QaStage.smoke, blocking=True, fail_open_on_error=False),
    QaStage.fidelity: StagePolicy(stage=QaStage.fidelity, blocking=True, fail_open_on_error=True),
    QaStage.contract: StagePolicy(stage=QaStage.contract, blocking=True, fail_open_on_error=False),
    QaStage.visual: StagePolicy(stage=QaStage.visual, blocking=False, fail_open_on_error=True),
    QaStage.ux: StagePolicy(stage=QaStage.ux, blocking=True, fail_open_on_error=True),
}

STAGE_ORDER: tuple[QaStage, ...] = tuple(QaStage)


class StageTimeoutError(TimeoutError):
    """An external call exceeded its per-call budget."""


def run_with_timeout(call: Callable[[], T], timeout_s: float | None) -> T:
    """
    Run ``call`` with a wall-clock bound.

    The worker thread cannot be killed, so a hung call is abandoned rather than
    cancelled; the caller continues with ``StageTimeoutError``.
    """
    if timeout_s is None:
        return call()

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kiln-call")
    future = executor.submit(call)
    try:
        return future.result(timeout=timeout_s)
    except FutureTimeoutError as err:
        future.cancel()
        raise StageTimeoutError(f"External call exceeded {timeout_s:.1f}s") from err
    finally:
        executor.shutdown(wait=False)


def run_guarded(
    stage: QaStage,
    call: Callable[[], T],
    fallback: Callable[[str], T],
    timeout_s: float | None = None,
) -> T:
    """
    Execute one stage call under its declared policy.

    Fail-open stages log the error and return ``fallback(reason)``; fail-closed
    stages re-raise so the caller records a stage failure.
    """
    policy = STAGE_POLICIES[stage]
    try:
        return run_with_timeout(call, timeout_s)
    except Exception as exc:
        if not policy.fail_open_on_error:
            raise
        reason = f"{type(exc).__name__}: {exc}"
        logger.warning("Stage %s errored, failing open: %s", stage.value, reason)
        return fallback(reason)
