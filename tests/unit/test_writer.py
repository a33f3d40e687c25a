"""Tests for tls_reconciler.writer — RecordWriter."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from tls_reconciler.errors import WriteError
from tls_reconciler.models import CERTIFICATE_KEY, PRIVATE_KEY_KEY, RecordId, WriteOutcome
from tls_reconciler.store import InMemoryClusterStore
from tls_reconciler.writer import RecordWriter

RECORD_ID = RecordId("system", "tls")


@pytest.fixture()
def store() -> InMemoryClusterStore:
    return InMemoryClusterStore()


@pytest.fixture()
def writer(store: InMemoryClusterStore) -> RecordWriter:
    return RecordWriter(store)


class TestWrite:
    def test_creates_missing_record(self, writer: RecordWriter, store: InMemoryClusterStore) -> None:
        assert writer.write(RECORD_ID, b"cert", b"key") is WriteOutcome.CREATED
        assert store.get_record(RECORD_ID).data == {CERTIFICATE_KEY: b"cert", PRIVATE_KEY_KEY: b"key"}

    def test_same_pair_is_unchanged(self, writer: RecordWriter, store: InMemoryClusterStore) -> None:
        writer.write(RECORD_ID, b"cert", b"key")
        assert writer.write(RECORD_ID, b"cert", b"key") is WriteOutcome.UNCHANGED
        assert store.get_record(RECORD_ID).resource_version == 1

    def test_new_pair_is_updated(self, writer: RecordWriter) -> None:
        writer.write(RECORD_ID, b"cert", b"key")
        assert writer.write(RECORD_ID, b"cert2", b"key2") is WriteOutcome.UPDATED

    def test_other_fields_preserved(self, writer: RecordWriter, store: InMemoryClusterStore) -> None:
        store.create_or_update(RECORD_ID, lambda d: d.update({"ca.crt": b"bundle"}))
        assert writer.write(RECORD_ID, b"cert", b"key") is WriteOutcome.UPDATED
        assert store.get_record(RECORD_ID).data["ca.crt"] == b"bundle"

    def test_store_failure_wrapped(self) -> None:
        failing = MagicMock()
        failing.create_or_update.side_effect = ConnectionError("store down")
        with pytest.raises(WriteError, match="store down") as exc_info:
            RecordWriter(failing).write(RECORD_ID, b"cert", b"key")
        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestClear:
    def test_removes_both_fields(self, writer: RecordWriter, store: InMemoryClusterStore) -> None:
        writer.write(RECORD_ID, b"cert", b"key")
        assert writer.clear(RECORD_ID) is WriteOutcome.UPDATED
        assert store.get_record(RECORD_ID).data == {}

    def test_keeps_other_fields(self, writer: RecordWriter, store: InMemoryClusterStore) -> None:
        store.create_or_update(
            RECORD_ID,
            lambda d: d.update({CERTIFICATE_KEY: b"c", PRIVATE_KEY_KEY: b"k", "extra": b"x"}),
        )
        writer.clear(RECORD_ID)
        assert store.get_record(RECORD_ID).data == {"extra": b"x"}

    def test_clear_of_empty_record_is_unchanged(self, writer: RecordWriter, store: InMemoryClusterStore) -> None:
        store.create_or_update(RECORD_ID, lambda d: None)
        assert writer.clear(RECORD_ID) is WriteOutcome.UNCHANGED
