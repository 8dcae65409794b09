"""User-facing messages for each resolution path. Raw judge text and traces stay out."""

from __future__ import annotations

from kiln.pipeline.models import FailureContext

_MAX_ITEMS = 3
_MAX_CRITIQUE_CHARS = 200


def _first_line(text: str, limit: int) -> str:
    line = text.strip().splitlines()[0] if text.strip() else ""
    return line if len(line) <= limit else line[: limit - 3].rstrip() + "..."


def _strip_namespace(issue: str) -> str:
    _, sep, rest = issue.partition(": ")
    return rest if sep else issue


def summarize_failure(failure: FailureContext, cycle: int) -> str:
    """
    One paragraph explaining why help is needed.

    Priority: contract issues, then UX critique, then fidelity gaps, then a
    generic verification message. The first non-empty category wins.
    """
    attempts = f"I've tried {cycle} time{'s' if cycle != 1 else ''}"

    if failure.contract_issues:
        issues = "; ".join(_strip_namespace(issue) for issue in failure.contract_issues[:_MAX_ITEMS])
        more = len(failure.contract_issues) - _MAX_ITEMS
        suffix = f" (and {more} more)" if more > 0 else ""
        return f"{attempts} but the tool's page still isn't ready for people to use: {issues}{suffix}."

    critiques = [
        _first_line(feedback.critique, _MAX_CRITIQUE_CHARS)
        for feedback in failure.ux_feedback
        if feedback.critique.strip()
    ]
    if critiques:
        return f"{attempts} but the tool is still hard to use: {' '.join(critiques[:_MAX_ITEMS])}"

    if failure.fidelity_gaps:
        gaps = ", ".join(failure.fidelity_gaps[:_MAX_ITEMS])
        return f"{attempts} but the tool doesn't fully match what you asked for. Gaps: {gaps}."

    if failure.failed_test_count:
        return (
            f"{attempts} but the tool isn't passing verification yet "
            f"({failure.failed_test_count} check(s) still failing)."
        )
    return f"{attempts} but the tool isn't passing verification yet."


def needs_help_message(failure: FailureContext, cycle: int) -> str:
    return (
        f"I'm having difficulty building this. {summarize_failure(failure, cycle)} "
        "Can you help me refine the requirements?"
    )


def dispatch_failure_message() -> str:
    return (
        "I'm having difficulty building this. I tried to start another attempt but hit an "
        "infrastructure problem on my side. Can you try again?"
    )


def retrying_message(next_cycle: int) -> str:
    return f"Still working on it. Running another pass (attempt {next_cycle})."


def completed_message(cycle: int) -> str:
    if cycle > 1:
        return f"Your tool is ready. It passed every check on attempt {cycle}."
    return "Your tool is ready. It passed every check."
