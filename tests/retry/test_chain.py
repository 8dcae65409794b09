from __future__ import annotations

from kiln.retry.chain import collapse_retry_chain
from kiln.retry.models import BuildStatus


def test_collapses_every_retrying_ancestor(store, make_attempt) -> None:
    make_attempt("A", cycle=1, status=BuildStatus.retrying)
    make_attempt("B", cycle=2, parent_build_id="A", status=BuildStatus.retrying)
    make_attempt("C", cycle=3, parent_build_id="B", status=BuildStatus.completed)

    completed = collapse_retry_chain(store, "B", "C", "acme")

    assert completed == ["B", "A"]
    for build_id in ("A", "B"):
        ancestor = store.get(build_id)
        assert ancestor.status == BuildStatus.completed
        assert ancestor.resolved_by == "C"
        assert ancestor.completed_at is not None


def test_stops_at_missing_ancestor(store, make_attempt) -> None:
    make_attempt("B", cycle=2, parent_build_id="gone", status=BuildStatus.retrying)

    assert collapse_retry_chain(store, "B", "C") == ["B"]
    assert store.get("B").status == BuildStatus.completed


def test_stops_at_non_retrying_ancestor(store, make_attempt) -> None:
    make_attempt("A", cycle=1, status=BuildStatus.needs_help)
    make_attempt("B", cycle=2, parent_build_id="A", status=BuildStatus.retrying)

    assert collapse_retry_chain(store, "B", "C") == ["B"]
    assert store.get("A").status == BuildStatus.needs_help
    assert store.get("A").resolved_by is None


def test_link_cycle_terminates(store, make_attempt) -> None:
    make_attempt("A", cycle=1, parent_build_id="B", status=BuildStatus.retrying)
    make_attempt("B", cycle=2, parent_build_id="A", status=BuildStatus.retrying)

    assert collapse_retry_chain(store, "B", "C") == ["B", "A"]


def test_no_parent_is_a_no_op(store) -> None:
    assert collapse_retry_chain(store, None, "C") == []


class ExplodingStore:
    def get(self, build_id, org_id=None):
        raise ConnectionError("store offline")

    def update(self, build_id, **fields):
        raise AssertionError("should not be reached")

    def put(self, attempt):
        raise AssertionError("should not be reached")


def test_store_errors_stop_the_walk_without_raising() -> None:
    assert collapse_retry_chain(ExplodingStore(), "A", "C") == []
