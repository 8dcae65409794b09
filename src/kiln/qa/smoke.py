"""Smoke Test Runner: invoke deployed artifacts with their declared test cases."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

from kiln.pipeline.policy import run_with_timeout

from .invoker import ArtifactInvocationError, ArtifactInvoker
from .matcher import DEFAULT_TOLERANCE, NumericTolerance, match
from .models import ArtifactDescriptor, QaResult, TestCase, TestCaseResult

logger = logging.getLogger(__name__)

_LOG_PAYLOAD_CHARS = 300


def _preview(value: object) -> str:
    try:
        text = json.dumps(value, default=str)
    except (TypeError, ValueError):
        text = repr(value)
    return text[:_LOG_PAYLOAD_CHARS]


def _response_error(response: dict[str, Any]) -> str | None:
    error = response.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        message = error.get("message")
        return str(message) if message else json.dumps(error, default=str)
    return str(error)


class SmokeTestRunner:
    """
    Runs each test case against a deployed artifact.

    Transient failures (unreachable artifact, timeout, an ``error`` response the
    case did not expect) are retried with linear backoff of ``attempt * backoff_s``
    seconds. A matcher mismatch is a definitive result and is not retried.
    """

    def __init__(
        self,
        invoker: ArtifactInvoker,
        *,
        max_attempts: int = 3,
        backoff_s: float = 2.0,
        settle_delay_s: float = 3.0,
        invoke_timeout_s: float | None = 30.0,
        tolerance: NumericTolerance = DEFAULT_TOLERANCE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._invoker = invoker
        self.max_attempts = max_attempts
        self.backoff_s = backoff_s
        self.settle_delay_s = settle_delay_s
        self.invoke_timeout_s = invoke_timeout_s
        self.tolerance = tolerance
        self._sleep = sleep

    def run(self, artifact: ArtifactDescriptor, test_cases: list[TestCase] | None = None) -> QaResult:
        """Run ``test_cases`` (default: the artifact's own) and return the artifact's QaResult."""
        cases = artifact.test_cases if test_cases is None else test_cases

        if not cases:
            logger.warning("Artifact %s has no test cases; passing as weakly tested", artifact.name)
            return QaResult(artifact_name=artifact.name, test_cases=[], all_passed=True)

        if self.settle_delay_s > 0:
            self._sleep(self.settle_delay_s)

        results = [self._run_case(artifact, case) for case in cases]
        qa_result = QaResult(
            artifact_name=artifact.name,
            test_cases=results,
            all_passed=all(result.passed for result in results),
        )

        logger.info(
            "Smoke tests for %s: %s (%d/%d passed)",
            artifact.name,
            "PASSED" if qa_result.all_passed else "FAILED",
            sum(1 for result in results if result.passed),
            len(results),
        )
        for result in results:
            logger.info("  [%s] %s", "PASS" if result.passed else "FAIL", result.description)
            if not result.passed:
                logger.info("    Input: %s", _preview(result.input))
                logger.info("    Expected: %s", _preview(result.expected_output))
                logger.info("    Actual: %s", _preview(result.actual_output))
                if result.error:
                    logger.info("    Error: %s", result.error)
        return qa_result

    def _run_case(self, artifact: ArtifactDescriptor, case: TestCase) -> TestCaseResult:
        actual: Any = None
        error: str | None = None
        passed = False
        attempt = 0

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = run_with_timeout(
                    lambda: self._invoker.invoke(artifact, case.input),
                    self.invoke_timeout_s,
                )
                actual = response["output"] if "output" in response else response

                response_error = _response_error(response)
                if response_error is not None and "error" not in case.expected_output:
                    raise ArtifactInvocationError(f"Artifact returned error: {response_error}")

                passed = match(actual, case.expected_output, self.tolerance)
                error = None
                break
            except Exception as exc:
                error = str(exc) or type(exc).__name__
                logger.debug(
                    "Case '%s' on %s attempt %d/%d failed: %s",
                    case.description,
                    artifact.name,
                    attempt,
                    self.max_attempts,
                    error,
                )
                if attempt < self.max_attempts:
                    self._sleep(attempt * self.backoff_s)

        return TestCaseResult(
            description=case.description,
            input=case.input,
            expected_output=case.expected_output,
            actual_output=actual,
            passed=passed,
            error=error,
            attempts=attempt,
        )
