"""Tests for tls_reconciler.restart — RestartOrchestrator."""
from __future__ import annotations

import pytest

from tls_reconciler.errors import RestartError
from tls_reconciler.models import ProcessInstance, RecordId
from tls_reconciler.restart import RestartOrchestrator, RestartReport
from tls_reconciler.store import InMemoryClusterStore

LABELS = {"app": "server"}


class RecordingStore(InMemoryClusterStore):
    """In-memory store that records deletions and can fail some of them."""

    def __init__(self, failing: set[str] | None = None) -> None:
        super().__init__()
        self.deleted: list[str] = []
        self.failing = failing or set()

    def delete_instance(self, instance_id: RecordId) -> None:
        if instance_id.name in self.failing:
            raise ConnectionError(f"refused to delete {instance_id.name}")
        super().delete_instance(instance_id)
        self.deleted.append(instance_id.name)


def _populate(store: InMemoryClusterStore) -> None:
    # names chosen so that self does not sort last
    for name in ("server-a", "server-b", "server-c"):
        store.add_instance(ProcessInstance("system", name, dict(LABELS)))
    store.add_instance(ProcessInstance("system", "metrics-0", {"app": "metrics"}))


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


class TestRestartOrdering:
    def test_siblings_deleted_before_self(self) -> None:
        store = RecordingStore()
        _populate(store)
        report = RestartOrchestrator(store, "system", "server-a").restart()

        assert store.deleted == ["server-b", "server-c", "server-a"]
        assert report.terminated == store.deleted
        assert report.self_terminated is True
        assert report.failures == []
        assert report.skipped == ""

    def test_unrelated_instances_untouched(self) -> None:
        store = RecordingStore()
        _populate(store)
        RestartOrchestrator(store, "system", "server-b").restart()
        assert store.get_instance(RecordId("system", "metrics-0")).name == "metrics-0"

    def test_single_instance_deletes_only_self(self) -> None:
        store = RecordingStore()
        store.add_instance(ProcessInstance("system", "solo", dict(LABELS)))
        report = RestartOrchestrator(store, "system", "solo").restart()
        assert store.deleted == ["solo"]
        assert report.self_terminated is True


# ---------------------------------------------------------------------------
# Failure tolerance
# ---------------------------------------------------------------------------


class TestRestartFailures:
    def test_missing_self_skips(self) -> None:
        store = RecordingStore()
        _populate(store)
        report = RestartOrchestrator(store, "system", "laptop").restart()
        assert report.skipped
        assert store.deleted == []
        assert report.self_terminated is False

    def test_list_failure_skips(self) -> None:
        class BrokenList(RecordingStore):
            def list_instances(self, namespace: str, labels: dict[str, str]) -> list[ProcessInstance]:
                raise TimeoutError("list timed out")

        store = BrokenList()
        _populate(store)
        report = RestartOrchestrator(store, "system", "server-a").restart()
        assert "list timed out" in report.skipped
        assert store.deleted == []

    def test_sibling_failure_does_not_abort(self) -> None:
        store = RecordingStore(failing={"server-b"})
        _populate(store)
        report = RestartOrchestrator(store, "system", "server-a").restart()

        assert store.deleted == ["server-c", "server-a"]
        assert report.self_terminated is True
        assert len(report.failures) == 1
        failure = report.failures[0]
        assert isinstance(failure, RestartError)
        assert failure.instance == "server-b"
        assert isinstance(failure.cause, ConnectionError)

    def test_self_failure_is_reported_not_raised(self) -> None:
        store = RecordingStore(failing={"server-a"})
        _populate(store)
        report = RestartOrchestrator(store, "system", "server-a").restart()
        assert store.deleted == ["server-b", "server-c"]
        assert report.self_terminated is False
        assert [f.instance for f in report.failures] == ["server-a"]


class TestRestartReport:
    def test_defaults(self) -> None:
        report = RestartReport()
        assert report.skipped == ""
        assert report.terminated == []
        assert report.failures == []
        assert report.self_terminated is False

    def test_restart_error_message(self) -> None:
        error = RestartError("server-b", ConnectionError("nope"))
        assert "server-b" in str(error)
        assert "nope" in str(error)


@pytest.mark.parametrize("hostname", ["server-a", "server-b", "server-c"])
def test_self_always_last(hostname: str) -> None:
    store = RecordingStore()
    _populate(store)
    RestartOrchestrator(store, "system", hostname).restart()
    assert store.deleted[-1] == hostname
    assert sorted(store.deleted) == ["server-a", "server-b", "server-c"]
