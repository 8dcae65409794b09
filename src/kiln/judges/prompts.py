"""Deterministic prompt builders for the fidelity, UX and lessons judges."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from kiln.qa.models import ArtifactDescriptor, QaResult

# Per-section cap so one verbose artifact cannot crowd out the rest of the prompt.
_MAX_SECTION_CHARS = 2_000


def _truncate(text: str, limit: int = _MAX_SECTION_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n...[TRUNCATED]"


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str, sort_keys=True)


def _artifact_section(artifact: ArtifactDescriptor, qa_result: QaResult | None) -> str:
    cases = []
    if qa_result is not None:
        cases = [
            {
                "description": case.description,
                "input": case.input,
                "output": case.actual_output,
                "passed": case.passed,
            }
            for case in qa_result.test_cases
        ]
    return "\n".join(
        [
            f"### Artifact: {artifact.name}",
            f"Description: {artifact.description or '(none)'}",
            f"Input schema: {_truncate(_dumps(artifact.input_schema))}",
            f"Smoke test results: {_truncate(_dumps(cases))}",
        ]
    )


def build_fidelity_prompt(
    original_request: str,
    artifacts: list[ArtifactDescriptor],
    qa_results: list[QaResult],
) -> str:
    """Ask whether the deployed artifacts do what the user originally asked for."""
    results_by_name = {result.artifact_name: result for result in qa_results}
    sections: list[str] = [
        "## FUNCTIONAL FIDELITY REVIEW",
        "",
        "A user asked for a tool in plain language. It was built, deployed and smoke tested.",
        "",
        "## Original Request",
        f'"{original_request}"',
        "",
    ]
    for artifact in artifacts:
        sections += [_artifact_section(artifact, results_by_name.get(artifact.name)), ""]

    sections += [
        "## What to judge",
        "- Does it accept the right inputs and produce the right outputs?",
        "- Do the smoke test results show correct behavior?",
        "- Is the core computation or logic correct for the request?",
        "",
        "Do NOT fail for cosmetic or presentation differences (icons, labels, layouts,",
        "field naming). Presentation is reviewed separately. If the smoke tests pass and",
        "the results are correct for the request, the verdict is a pass.",
        "",
        "## Response format",
        "Respond with ONLY one JSON object:",
        '{"pass": true, "reasoning": "brief explanation", "gaps": []}',
        "or",
        '{"pass": false, "reasoning": "brief explanation", "gaps": ["specific functional gap"]}',
    ]
    return "\n".join(sections)


def build_ux_prompt(
    artifact_description: str,
    ui_contract: Mapping[str, Any] | None,
    original_request: str,
    visual_snapshots: Mapping[str, str] | None = None,
) -> str:
    """Ask a simulated non-technical first-time user to grade the artifact's page."""
    sections: list[str] = [
        "## FIRST-TIME USER REVIEW",
        "",
        "Pretend you are a busy, non-technical person opening this tool for the first time.",
        "You have never seen its source code and you do not read JSON.",
        "",
        "## What they asked for",
        f'"{original_request}"',
        "",
        "## Tool description",
        artifact_description or "(none)",
        "",
        "## Page definition",
        _truncate(_dumps(ui_contract or {})),
        "",
    ]

    if visual_snapshots:
        sections += ["## What the rendered page showed"]
        for region, snapshot in visual_snapshots.items():
            if snapshot:
                sections += [f"### {region}", _truncate(snapshot, 800)]
        sections += [""]

    sections += [
        "## Grade each from 1 (hopeless) to 10 (effortless)",
        "- discoverability: can you tell what the tool does and what to type?",
        "- ease_of_use: can you get a result without guessing?",
        "- result_clarity: do you understand the answer you get back?",
        "",
        "These patterns always score low:",
        "- field labels that are machine keys (max_count, userId) instead of words",
        "- no try-it examples to click",
        "- results shown as a raw data dump without a sentence saying what they mean",
        "",
        "## Response format",
        "Respond with ONLY one JSON object:",
        '{"scores": {"discoverability": 7, "ease_of_use": 6, "result_clarity": 8},',
        ' "critique": "what confused you, in one or two sentences",',
        ' "suggestions": ["concrete change 1", "concrete change 2"]}',
    ]
    return "\n".join(sections)


def build_lessons_prompt(conversation_text: str, artifact_name: str) -> str:
    """Ask for durable preferences and decisions revealed while the request was gathered."""
    return "\n".join(
        [
            f'A user asked for a tool called "{artifact_name}". Read the conversation below and',
            "extract anything worth remembering for future builds:",
            "1. User preferences (naming, presentation, level of detail)",
            "2. Key decisions made while clarifying the requirement",
            "3. Domain knowledge revealed (business rules, industry terms)",
            "",
            'Return ONLY a JSON array of objects {"type": ..., "content": ...} where type is',
            '"preference", "insight" or "pattern". Keep each content under 100 characters.',
            "At most 3 items. If nothing is notable, return [].",
            "",
            "## Conversation",
            conversation_text,
        ]
    )
