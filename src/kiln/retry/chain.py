"""Collapse of a retry chain once a descendant succeeds."""

from __future__ import annotations

import logging

from .models import BuildStatus, utcnow
from .store import AttemptStore

logger = logging.getLogger(__name__)


def collapse_retry_chain(
    store: AttemptStore,
    parent_build_id: str | None,
    resolver_build_id: str,
    org_id: str | None = None,
) -> list[str]:
    """
    Walk ``parent_build_id`` links upward, completing every ancestor still ``retrying``.

    Each completed ancestor is stamped with ``resolver_build_id``. The walk stops,
    without raising, at a missing ancestor, one that is not ``retrying``, a link
    cycle, or a store error. Returns the ids that were completed, nearest first.
    """
    completed: list[str] = []
    visited: set[str] = {resolver_build_id}
    current_id = parent_build_id

    while current_id:
        if current_id in visited:
            logger.warning("Retry chain loops back to %s; stopping walk", current_id)
            break
        visited.add(current_id)

        try:
            ancestor = store.get(current_id, org_id)
        except Exception:
            logger.exception("Lookup of ancestor %s failed; stopping walk", current_id)
            break

        if ancestor is None:
            logger.info("Ancestor %s not found; stopping walk", current_id)
            break
        if ancestor.status != BuildStatus.retrying:
            logger.info(
                "Ancestor %s is '%s', not 'retrying'; stopping walk",
                current_id,
                ancestor.status.value,
            )
            break

        now = utcnow()
        try:
            store.update(
                current_id,
                status=BuildStatus.completed,
                resolved_by=resolver_build_id,
                completed_at=now,
            )
        except Exception:
            logger.exception("Completing ancestor %s failed; stopping walk", current_id)
            break

        logger.info("Ancestor %s completed by retry %s", current_id, resolver_build_id)
        completed.append(current_id)
        current_id = ancestor.parent_build_id

    return completed
