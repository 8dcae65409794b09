"""End-to-end completion handling with real stages and stub collaborators."""

from __future__ import annotations

from typing import Any

import pytest

from kiln.judges.fidelity import FidelityJudge
from kiln.judges.ux import UxJudge
from kiln.orchestrator.models import BuildCompletionEvent
from kiln.orchestrator.service import build_service
from kiln.pipeline.service import QaPipeline
from kiln.qa.contract import ContractValidator
from kiln.qa.models import ArtifactDescriptor, TestCase
from kiln.qa.smoke import SmokeTestRunner
from kiln.retry.audit import InMemoryAuditLog
from kiln.retry.models import BuildAttempt, BuildStatus, NotificationType, RebuildSpec, ResolutionAction
from kiln.retry.notifier import InMemoryNotifier
from kiln.retry.store import InMemoryAttemptStore
from kiln.settings import KilnSettings
from kiln.visual.probe import VisualVerifier

pytestmark = pytest.mark.integration

REQUEST = "Convert Fahrenheit to Celsius"


class TableInvoker:
    """Answers each input from a lookup table keyed by the Fahrenheit value."""

    def __init__(self, table: dict[int, dict[str, Any]]) -> None:
        self.table = table

    def invoke(self, artifact: ArtifactDescriptor, payload: dict[str, Any]) -> dict[str, Any]:
        return {"output": self.table[payload["fahrenheit"]]}


class RoutingJudge:
    """Replies to fidelity and UX prompts with fixed JSON."""

    def __init__(self, fidelity: str, ux: str) -> None:
        self.fidelity = fidelity
        self.ux = ux
        self.prompts: list[str] = []

    def complete(self, prompt: str, *, max_tokens: int | None = None) -> str:
        self.prompts.append(prompt)
        if "FUNCTIONAL FIDELITY REVIEW" in prompt:
            return self.fidelity
        return self.ux


class RecordingRebuild:
    def __init__(self) -> None:
        self.specs: list[RebuildSpec] = []

    def invoke_rebuild(self, spec: RebuildSpec) -> str:
        self.specs.append(spec)
        return f"build-{spec.cycle}"


def _contract(examples: int) -> dict[str, Any]:
    return {
        "title": "Temperature Converter",
        "icon": "thermostat",
        "form": {"fields": [{"key": "fahrenheit", "label": "Fahrenheit", "widget": "number"}]},
        "resultDisplay": {
            "type": "cards",
            "cards": [{"field": "celsius", "label": "Celsius", "format": "number", "icon": "thermostat"}],
            "summaryTemplate": "{fahrenheit}F is {celsius}C",
        },
        "examples": [
            {"label": f"{value}F", "input": {"fahrenheit": value}} for value in (32, 212)[:examples]
        ],
    }


def _artifact(examples: int = 2, cases: list[TestCase] | None = None) -> ArtifactDescriptor:
    return ArtifactDescriptor(
        name="convert-temp",
        endpoint="https://tools.example/convert-temp",
        description="Converts Fahrenheit to Celsius",
        ui_contract=_contract(examples),
        test_cases=cases
        if cases is not None
        else [
            TestCase(input={"fahrenheit": 32}, expected_output={"celsius": 0}, description="freezing"),
            TestCase(input={"fahrenheit": 212}, expected_output={"celsius": 100}, description="boiling"),
        ],
    )


@pytest.fixture
def env():
    store = InMemoryAttemptStore()
    notifier = InMemoryNotifier()
    audit_log = InMemoryAuditLog()
    rebuild = RecordingRebuild()
    judge = RoutingJudge(
        fidelity='{"pass": true, "reasoning": "Correct conversion", "gaps": []}',
        ux='{"scores": {"discoverability": 8, "ease_of_use": 8, "result_clarity": 7}, "critique": "Clear"}',
    )
    invoker = TableInvoker({32: {"celsius": 0}, 212: {"celsius": 100}, 70: {"celsius": 21.5}})
    pipeline = QaPipeline(
        SmokeTestRunner(invoker, settle_delay_s=0.0, invoke_timeout_s=None, sleep=lambda _: None),
        FidelityJudge(judge, timeout_s=None),
        UxJudge(judge, timeout_s=None),
        ContractValidator(),
        VisualVerifier(),
    )
    service = build_service(
        KilnSettings(),
        store=store,
        audit_log=audit_log,
        notifier=notifier,
        rebuild_invoker=rebuild,
        pipeline=pipeline,
    )
    store.put(BuildAttempt(build_id="build-1", request=REQUEST, org_id="acme", requester_id="user-7"))
    return {
        "service": service,
        "store": store,
        "notifier": notifier,
        "audit": audit_log,
        "rebuild": rebuild,
        "judge": judge,
    }


def test_everything_passes_and_build_completes(env) -> None:
    report = env["service"].handle_completion(
        BuildCompletionEvent(build_id="build-1", org_id="acme", artifacts=[_artifact()])
    )

    assert report.verdict is not None
    assert report.verdict.passed is True
    assert report.outcome.action == ResolutionAction.completed
    stored = env["store"].get("build-1")
    assert stored.status == BuildStatus.completed
    assert stored.qa_summary["passed"] is True
    assert env["rebuild"].specs == []


def test_missing_examples_schedule_a_retry(env) -> None:
    report = env["service"].handle_completion(
        BuildCompletionEvent(build_id="build-1", org_id="acme", artifacts=[_artifact(examples=0)])
    )

    assert report.verdict is not None
    assert report.verdict.passed is False
    assert report.outcome.action == ResolutionAction.retried
    stored = env["store"].get("build-1")
    assert stored.status == BuildStatus.retrying
    failure = stored.failure_context
    assert failure.contract_issues == [
        "convert-temp: Needs 2+ examples so users can try it in one click (found 0)"
    ]
    assert failure.smoke_failures == []
    assert failure.fidelity_gaps == []
    assert env["rebuild"].specs[0].failure_context == failure
    assert not any("FIRST-TIME USER REVIEW" in prompt for prompt in env["judge"].prompts)


def test_numeric_tolerance_accepts_close_values(env) -> None:
    cases = [TestCase(input={"fahrenheit": 70}, expected_output={"celsius": 20}, description="room temp")]
    report = env["service"].handle_completion(
        BuildCompletionEvent(build_id="build-1", artifacts=[_artifact(cases=cases)])
    )
    assert report.verdict is not None
    assert report.verdict.qa_results[0].all_passed is True
    assert report.outcome.action == ResolutionAction.completed


def test_deployment_failure_skips_qa(env) -> None:
    report = env["service"].handle_completion(
        BuildCompletionEvent(
            build_id="build-1",
            deploy_succeeded=False,
            deployment_error="Build exited with code 1",
        )
    )

    assert report.verdict is None
    assert report.outcome.action == ResolutionAction.retried
    assert env["judge"].prompts == []
    assert env["store"].get("build-1").failure_context.deployment_error == "Build exited with code 1"


def test_retry_chain_collapses_when_child_passes(env) -> None:
    env["service"].handle_completion(
        BuildCompletionEvent(build_id="build-1", artifacts=[_artifact(examples=0)])
    )
    child = env["store"].get("build-2")
    assert child is not None and child.parent_build_id == "build-1"

    report = env["service"].handle_completion(BuildCompletionEvent(build_id="build-2", artifacts=[_artifact()]))

    assert report.outcome.resolved_ancestors == ["build-1"]
    assert env["store"].get("build-1").status == BuildStatus.completed
    assert env["store"].get("build-1").resolved_by == "build-2"
    assert [note.type for note in env["notifier"].for_build("build-2")] == [NotificationType.build_completed]


def test_duplicate_event_is_ignored(env) -> None:
    event = BuildCompletionEvent(build_id="build-1", artifacts=[_artifact(examples=0)])
    env["service"].handle_completion(event)
    prompts_before = len(env["judge"].prompts)

    report = env["service"].handle_completion(event)

    assert report.outcome.action == ResolutionAction.skipped
    assert report.verdict is None
    assert len(env["rebuild"].specs) == 1
    assert len(env["judge"].prompts) == prompts_before
    assert len(env["notifier"].for_build("build-1")) == 1


def test_unknown_build_is_skipped(env) -> None:
    report = env["service"].handle_completion(BuildCompletionEvent(build_id="nope"))
    assert report.outcome.action == ResolutionAction.skipped
