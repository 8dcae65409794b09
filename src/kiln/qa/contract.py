"""Deterministic structural linter for artifact UI contracts."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from .models import ArtifactDescriptor

logger = logging.getLogger(__name__)

MIN_EXAMPLES = 2

CURATED_DISPLAY_TYPES: frozenset[str] = frozenset({"cards", "table", "text", "list"})
FALLBACK_DISPLAY_TYPE = "json"

ICON_PATTERN = re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$")
_CAMEL_CASE_PATTERN = re.compile(r"^[a-z]+(?:[A-Z][a-z0-9]*)+$")


class ContractReport(BaseModel):
    """Flat, artifact-namespaced list of contract issues across a build."""

    issues: list[str] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.issues


def _normalise_key(text: str) -> str:
    return text.replace("_", "").replace("-", "").lower()


def _is_machine_label(label: str, key: str) -> bool:
    """A label is machine-like when it is the key itself or the key re-cased (``maxCount`` for ``max_count``)."""
    stripped = label.strip()
    if stripped == key:
        return True
    machine_cased = "_" in stripped or bool(_CAMEL_CASE_PATTERN.fullmatch(stripped))
    return machine_cased and _normalise_key(stripped) == _normalise_key(key)


def _as_list(value: object) -> list[Any]:
    return value if isinstance(value, list) else []


def _icon_issues(icons: Iterable[tuple[str, object]]) -> list[str]:
    issues: list[str] = []
    for where, icon in icons:
        if icon is None:
            continue
        if not isinstance(icon, str) or not ICON_PATTERN.fullmatch(icon):
            issues.append(
                f"Icon '{icon}' on {where} is not a valid icon name "
                "(use lowercase_with_underscores, e.g. 'trending_up')"
            )
    return issues


def _display_issues(display: object) -> list[str]:
    if not isinstance(display, Mapping):
        return ["No result display declared; pick one of cards, table, text or list"]

    issues: list[str] = []
    display_type = display.get("type")
    if not display_type:
        issues.append("Result display has no type; pick one of cards, table, text or list")
    elif display_type == FALLBACK_DISPLAY_TYPE:
        issues.append(
            "Result display uses the raw json dump; pick one of cards, table, text or list"
        )
    elif display_type not in CURATED_DISPLAY_TYPES:
        issues.append(
            f"Result display type '{display_type}' is not supported; "
            "pick one of cards, table, text or list"
        )

    if display_type == "list" and not display.get("itemsField"):
        issues.append("List display needs an itemsField naming the output array to render")

    template = display.get("summaryTemplate")
    if not isinstance(template, str) or not template.strip():
        issues.append("Result display needs a summaryTemplate describing the result in words")
    return issues


def _field_issues(form: object) -> list[str]:
    if not isinstance(form, Mapping):
        return []

    issues: list[str] = []
    for index, field in enumerate(_as_list(form.get("fields"))):
        if not isinstance(field, Mapping):
            continue
        key = str(field.get("key") or f"#{index}")
        label = field.get("label")
        if not isinstance(label, str) or not label.strip():
            issues.append(f"Field '{key}' has no label")
        elif _is_machine_label(label, key):
            issues.append(
                f"Field '{key}' label '{label}' reads like a machine key; "
                "use a human label such as 'Max Count'"
            )
    return issues


def validate_contract(artifact_name: str, contract: Mapping[str, Any] | None) -> list[str]:
    """Return every issue found in one artifact's contract, each prefixed with its name."""
    if contract is None:
        return [f"{artifact_name}: Missing UI contract (form, resultDisplay and examples)"]

    issues: list[str] = []

    examples = _as_list(contract.get("examples"))
    if len(examples) < MIN_EXAMPLES:
        issues.append(
            f"Needs {MIN_EXAMPLES}+ examples so users can try it in one click "
            f"(found {len(examples)})"
        )

    display = contract.get("resultDisplay")
    issues.extend(_display_issues(display))

    icons: list[tuple[str, object]] = [("the contract", contract.get("icon"))]
    if isinstance(display, Mapping):
        for card in _as_list(display.get("cards")):
            if isinstance(card, Mapping):
                icons.append((f"card '{card.get('field', '?')}'", card.get("icon")))
    issues.extend(_icon_issues(icons))

    issues.extend(_field_issues(contract.get("form")))

    return [f"{artifact_name}: {issue}" for issue in issues]


class ContractValidator:
    """Validates the UI contracts of every artifact in a build."""

    def validate(self, artifacts: list[ArtifactDescriptor]) -> ContractReport:
        issues: list[str] = []
        for artifact in artifacts:
            artifact_issues = validate_contract(artifact.name, artifact.ui_contract)
            if artifact_issues:
                logger.info(
                    "Contract for %s has %d issue(s)", artifact.name, len(artifact_issues)
                )
            issues.extend(artifact_issues)
        return ContractReport(issues=issues)
