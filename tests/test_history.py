"""Tests for :mod:`drawbridge.services.history`."""

from __future__ import annotations

import json

import pytest

from drawbridge.events import HistoryChanged, VersionAppended
from drawbridge.services.history import HISTORY_BLOB, HistoryStore
from drawbridge.services.storage import MemoryBlobStore
from tests.helpers import RecordingBus


def test_append_assigns_sequence_numbers_and_persists(blob_store: MemoryBlobStore) -> None:
    history = HistoryStore(blob_store)

    first = history.append("<xml-1/>", "svg-1")
    second = history.append("<xml-2/>", "svg-2")

    assert (first.sequence_number, second.sequence_number) == (1, 2)
    assert history.latest() == second
    assert json.loads(blob_store.blobs[HISTORY_BLOB]) == [
        {"svg": "svg-1", "xml": "<xml-1/>"},
        {"svg": "svg-2", "xml": "<xml-2/>"},
    ]


def test_history_is_capped_with_fifo_eviction(blob_store: MemoryBlobStore) -> None:
    history = HistoryStore(blob_store)

    for index in range(21):
        history.append(f"<doc n='{index}'/>", f"svg-{index}")

    assert len(history) == 20
    documents = [version.document_text for version in history]
    assert "<doc n='0'/>" not in documents
    assert documents[0] == "<doc n='1'/>"
    assert documents[-1] == "<doc n='20'/>"
    assert len(json.loads(blob_store.blobs[HISTORY_BLOB])) == 20


def test_identical_consecutive_versions_are_kept(blob_store: MemoryBlobStore) -> None:
    history = HistoryStore(blob_store)

    history.append("<same/>", "svg")
    history.append("<same/>", "svg")

    assert len(history) == 2


def test_history_reloads_from_storage(blob_store: MemoryBlobStore) -> None:
    HistoryStore(blob_store).append("<doc/>", "svg")

    reloaded = HistoryStore(blob_store)

    assert len(reloaded) == 1
    assert reloaded.get(0).document_text == "<doc/>"
    assert reloaded.append("<next/>", "svg").sequence_number == 2


def test_reload_trims_to_capacity() -> None:
    entries = [{"svg": f"s{index}", "xml": f"x{index}"} for index in range(5)]
    store = MemoryBlobStore({HISTORY_BLOB: json.dumps(entries)})

    history = HistoryStore(store, capacity=3)

    assert [version.document_text for version in history] == ["x2", "x3", "x4"]


@pytest.mark.parametrize("payload", ["not json", json.dumps({"svg": "x"}), json.dumps([{"svg": 1}])])
def test_corrupt_storage_is_treated_as_empty(payload: str) -> None:
    history = HistoryStore(MemoryBlobStore({HISTORY_BLOB: payload}))

    assert len(history) == 0
    assert history.latest() is None


def test_delete_and_clear(blob_store: MemoryBlobStore) -> None:
    bus = RecordingBus()
    history = HistoryStore(blob_store, event_bus=bus)
    for index in range(3):
        history.append(f"<d{index}/>", "svg")

    removed = history.delete(1)

    assert removed.document_text == "<d1/>"
    assert [version.document_text for version in history] == ["<d0/>", "<d2/>"]
    with pytest.raises(IndexError):
        history.delete(5)

    history.clear()

    assert len(history) == 0
    assert HISTORY_BLOB not in blob_store.blobs
    assert [event.history_length for event in bus.of_type(HistoryChanged)] == [2, 0]
    assert [event.sequence_number for event in bus.of_type(VersionAppended)] == [1, 2, 3]


def test_capacity_must_be_positive(blob_store: MemoryBlobStore) -> None:
    with pytest.raises(ValueError):
        HistoryStore(blob_store, capacity=0)


def test_persist_failures_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    class FailingStore(MemoryBlobStore):
        def write(self, name: str, body: str) -> None:
            raise OSError("disk full")

    history = HistoryStore(FailingStore())

    history.append("<doc/>", "svg")

    assert len(history) == 1
    assert "Unable to persist diagram history" in caplog.text
