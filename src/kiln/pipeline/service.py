"""QaPipeline - the short-circuiting verification run over a deployed build."""

from __future__ import annotations

import logging

from kiln.judges.fidelity import FidelityJudge
from kiln.judges.models import FidelityVerdict, UxVerdict
from kiln.judges.ux import UxJudge
from kiln.qa.contract import ContractValidator
from kiln.qa.models import ArtifactDescriptor, QaResult
from kiln.qa.smoke import SmokeTestRunner
from kiln.visual.models import VisualResult
from kiln.visual.probe import VisualVerifier

from .models import (
    FailedTest,
    FailureContext,
    PipelineVerdict,
    SmokeFailure,
    StageOutcome,
    UxFeedback,
)
from .policy import STAGE_ORDER, STAGE_POLICIES, QaStage

logger = logging.getLogger(__name__)


def _skipped(stage: QaStage, reason: str) -> StageOutcome:
    return StageOutcome(
        stage=stage,
        ran=False,
        blocking=STAGE_POLICIES[stage].blocking,
        detail=reason,
    )


def _ran(stage: QaStage, passed: bool, detail: str = "") -> StageOutcome:
    return StageOutcome(
        stage=stage,
        ran=True,
        passed=passed,
        blocking=STAGE_POLICIES[stage].blocking,
        detail=detail,
    )


def build_failure_context(
    qa_results: list[QaResult],
    fidelity: FidelityVerdict | None,
    contract_issues: list[str],
    visual_results: dict[str, VisualResult | None],
    ux_verdicts: dict[str, UxVerdict],
) -> FailureContext:
    """Assemble feedback from the stages that actually ran."""
    smoke_failures = [
        SmokeFailure(
            artifact_name=result.artifact_name,
            failed_tests=[
                FailedTest(
                    description=case.description,
                    input=case.input,
                    expected_output=case.expected_output,
                    actual_output=case.actual_output,
                    error=case.error,
                )
                for case in result.failed_cases
            ],
        )
        for result in qa_results
        if not result.all_passed
    ]

    fidelity_failed = fidelity is not None and not fidelity.passed

    visual_issues = [
        f"{name}: {issue}"
        for name, result in visual_results.items()
        if result is not None
        for issue in result.issues
    ]

    ux_feedback = [
        UxFeedback(
            artifact_name=name,
            scores=verdict.scores,
            mean_score=verdict.mean_score,
            critique=verdict.critique,
            suggestions=verdict.suggestions,
        )
        for name, verdict in ux_verdicts.items()
        if not verdict.passed
    ]

    return FailureContext(
        smoke_failures=smoke_failures,
        fidelity_gaps=list(fidelity.gaps) if fidelity_failed else [],
        fidelity_reasoning=fidelity.reasoning if fidelity_failed else "",
        contract_issues=list(contract_issues),
        visual_issues=visual_issues,
        ux_feedback=ux_feedback,
    )


class QaPipeline:
    """
    Runs the verification stages strictly in order, stopping at the first blocking failure:

    smoke tests -> fidelity judge -> contract validator -> visual probe + UX judge.

    Cheap deterministic checks run before judgment calls. The visual probe never
    blocks; its snapshots and issues feed the UX judge and the failure report.
    """

    def __init__(
        self,
        smoke_runner: SmokeTestRunner,
        fidelity_judge: FidelityJudge,
        ux_judge: UxJudge,
        contract_validator: ContractValidator | None = None,
        visual_verifier: VisualVerifier | None = None,
    ) -> None:
        self._smoke = smoke_runner
        self._fidelity = fidelity_judge
        self._ux = ux_judge
        self._contract = contract_validator or ContractValidator()
        self._visual = visual_verifier or VisualVerifier()

    def run(self, original_request: str, artifacts: list[ArtifactDescriptor]) -> PipelineVerdict:
        """Verify deployed ``artifacts`` against the user's ``original_request``."""
        outcomes: dict[QaStage, StageOutcome] = {}
        fidelity: FidelityVerdict | None = None
        contract_issues: list[str] = []
        visual_results: dict[str, VisualResult | None] = {}
        ux_verdicts: dict[str, UxVerdict] = {}

        logger.info("QA pipeline: smoke testing %d artifact(s)", len(artifacts))
        qa_results = [self._smoke.run(artifact) for artifact in artifacts]
        smoke_passed = all(result.all_passed for result in qa_results)
        failing = [result.artifact_name for result in qa_results if not result.all_passed]
        outcomes[QaStage.smoke] = _ran(
            QaStage.smoke,
            smoke_passed,
            "" if smoke_passed else f"Failing artifacts: {', '.join(failing)}",
        )

        if smoke_passed and artifacts:
            logger.info("QA pipeline: running fidelity check")
            fidelity = self._fidelity.check(original_request, artifacts, qa_results)
            outcomes[QaStage.fidelity] = _ran(QaStage.fidelity, fidelity.passed, fidelity.reasoning)
        elif not artifacts:
            outcomes[QaStage.fidelity] = _skipped(QaStage.fidelity, "No artifacts deployed")
        else:
            outcomes[QaStage.fidelity] = _skipped(QaStage.fidelity, "Smoke tests failed")

        fidelity_passed = fidelity is None or fidelity.passed
        if smoke_passed and fidelity_passed:
            report = self._contract.validate(artifacts)
            contract_issues = report.issues
            outcomes[QaStage.contract] = _ran(
                QaStage.contract,
                report.passed,
                f"{len(report.issues)} issue(s)" if report.issues else "",
            )
        else:
            outcomes[QaStage.contract] = _skipped(QaStage.contract, "Earlier stage failed")

        contract_ran = outcomes[QaStage.contract].ran
        if contract_ran and not contract_issues:
            for artifact in artifacts:
                visual = self._visual.probe(artifact.name)
                visual_results[artifact.name] = visual
                ux_verdicts[artifact.name] = self._ux.score(
                    artifact.description,
                    artifact.ui_contract,
                    original_request,
                    visual.snapshots() if visual is not None else None,
                )
            probed = sum(1 for result in visual_results.values() if result is not None)
            outcomes[QaStage.visual] = (
                _ran(QaStage.visual, True, f"{probed} artifact(s) probed")
                if probed
                else _skipped(QaStage.visual, "Probe not configured or unreachable")
            )
            low = [name for name, verdict in ux_verdicts.items() if not verdict.passed]
            outcomes[QaStage.ux] = _ran(
                QaStage.ux,
                not low,
                f"Below threshold: {', '.join(low)}" if low else "",
            )
        else:
            outcomes[QaStage.visual] = _skipped(QaStage.visual, "Contract validation failed or skipped")
            outcomes[QaStage.ux] = _skipped(QaStage.ux, "Contract validation failed or skipped")

        stages = [outcomes[stage] for stage in STAGE_ORDER]
        # Skipped blocking stages only follow an earlier blocking failure.
        passed = all(outcome.passed for outcome in stages if outcome.ran and outcome.blocking)

        failure_context = None
        if not passed:
            failure_context = build_failure_context(
                qa_results, fidelity, contract_issues, visual_results, ux_verdicts
            )

        logger.info(
            "QA pipeline verdict: %s (%s)",
            "PASSED" if passed else "FAILED",
            ", ".join(
                f"{outcome.stage.value}={'skip' if not outcome.ran else outcome.passed}"
                for outcome in stages
            ),
        )
        return PipelineVerdict(
            passed=passed,
            stages=stages,
            qa_results=qa_results,
            fidelity=fidelity,
            contract_issues=contract_issues,
            visual_results=visual_results,
            ux_verdicts=ux_verdicts,
            failure_context=failure_context,
        )
