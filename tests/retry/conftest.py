from __future__ import annotations

import pytest

from kiln.retry.audit import InMemoryAuditLog
from kiln.retry.models import BuildAttempt, BuildStatus, RebuildSpec
from kiln.retry.notifier import InMemoryNotifier
from kiln.retry.store import InMemoryAttemptStore


class FakeRebuildInvoker:
    """Hands out sequential build ids, or raises ``error`` when set."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.specs: list[RebuildSpec] = []

    def invoke_rebuild(self, spec: RebuildSpec) -> str:
        self.specs.append(spec)
        if self.error is not None:
            raise self.error
        return f"build-c{spec.cycle}"


@pytest.fixture
def store() -> InMemoryAttemptStore:
    return InMemoryAttemptStore()


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def rebuild() -> FakeRebuildInvoker:
    return FakeRebuildInvoker()


@pytest.fixture
def make_attempt(store: InMemoryAttemptStore):
    def _make(
        build_id: str = "build-1",
        *,
        cycle: int = 1,
        parent_build_id: str | None = None,
        status: BuildStatus = BuildStatus.running,
        org_id: str = "acme",
        conversation_id: str | None = None,
    ) -> BuildAttempt:
        return store.put(
            BuildAttempt(
                build_id=build_id,
                cycle=cycle,
                parent_build_id=parent_build_id,
                request="Show the weather for a city",
                org_id=org_id,
                requester_id="user-7",
                conversation_id=conversation_id,
                status=status,
            )
        )

    return _make
