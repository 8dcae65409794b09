"""Durable attempt store boundary and an in-process implementation."""

from __future__ import annotations

import threading
from typing import Any, Protocol

from .models import BuildAttempt, utcnow


class AttemptNotFoundError(KeyError):
    """No attempt exists for the given build id."""


class AttemptStore(Protocol):
    def put(self, attempt: BuildAttempt) -> BuildAttempt:
        ...

    def get(self, build_id: str, org_id: str | None = None) -> BuildAttempt | None:
        """Look up by owner key when ``org_id`` is known, falling back to ``build_id`` alone."""
        ...

    def update(self, build_id: str, **fields: Any) -> BuildAttempt:
        ...


class InMemoryAttemptStore:
    """
    Dict-backed store keyed by ``(org_id, build_id)`` with a secondary index by
    ``build_id`` for callers that do not know ownership ahead of time.
    Per-process only.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], BuildAttempt] = {}
        self._by_build_id: dict[str, tuple[str, str]] = {}
        self._lock = threading.Lock()

    def put(self, attempt: BuildAttempt) -> BuildAttempt:
        key = (attempt.org_id, attempt.build_id)
        with self._lock:
            self._records[key] = attempt
            self._by_build_id[attempt.build_id] = key
        return attempt

    def get(self, build_id: str, org_id: str | None = None) -> BuildAttempt | None:
        with self._lock:
            if org_id is not None:
                record = self._records.get((org_id, build_id))
                if record is not None:
                    return record
            key = self._by_build_id.get(build_id)
            return self._records.get(key) if key is not None else None

    def update(self, build_id: str, **fields: Any) -> BuildAttempt:
        with self._lock:
            key = self._by_build_id.get(build_id)
            if key is None:
                raise AttemptNotFoundError(build_id)
            current = self._records[key]
            merged = current.model_dump()
            merged.update(fields)
            merged["updated_at"] = utcnow()
            updated = BuildAttempt.model_validate(merged)
            self._records[key] = updated
            return updated

    def list_attempts(self, org_id: str | None = None) -> list[BuildAttempt]:
        with self._lock:
            return [
                record
                for (record_org, _), record in self._records.items()
                if org_id is None or record_org == org_id
            ]
