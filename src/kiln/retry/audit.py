"""Best-effort audit trail of attempt status transitions."""

from __future__ import annotations

import json
from typing import Any, Protocol

from .models import AuditEntry, BuildAttempt, BuildStatus

_MAX_DETAIL_CHARS = 500


class AuditLog(Protocol):
    def record(self, entry: AuditEntry) -> None:
        ...


def build_audit_entry(
    attempt: BuildAttempt,
    status: BuildStatus,
    reason: str,
    detail: dict[str, Any] | None = None,
) -> AuditEntry:
    """One entry per transition; the detail payload is truncated JSON."""
    payload: dict[str, Any] = {"request": attempt.request, "cycle": attempt.cycle}
    payload.update(detail or {})
    text = json.dumps(payload, default=str, sort_keys=True)
    return AuditEntry(
        build_id=attempt.build_id,
        org_id=attempt.org_id,
        action=f"build_{status.value}",
        actor=attempt.requester_id or "system",
        reason=reason,
        detail=text[:_MAX_DETAIL_CHARS],
    )


class InMemoryAuditLog:
    """List-backed audit store; per-process only."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []

    def record(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

    def read(self, build_id: str | None = None) -> list[AuditEntry]:
        return [
            entry for entry in self._entries if build_id is None or entry.build_id == build_id
        ]
