"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from drawbridge.services.history import HistoryStore
from drawbridge.services.library import NodeLibrary
from drawbridge.services.storage import MemoryBlobStore
from drawbridge.session import DiagramSession
from tests.helpers import BASE_DOCUMENT, FakeSurface, RecordingBus


@pytest.fixture
def base_document() -> str:
    return BASE_DOCUMENT


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def session(blob_store: MemoryBlobStore, bus: RecordingBus) -> DiagramSession:
    history = HistoryStore(blob_store, event_bus=bus)
    library = NodeLibrary(blob_store, event_bus=bus)
    return DiagramSession(history, library, event_bus=bus)


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def export_dir(tmp_path: Path) -> Path:
    return tmp_path / "exports"


@pytest.fixture(autouse=True)
def _isolated_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DRAWBRIDGE_LOG_DIR", str(tmp_path / "logs"))
    for name in (
        "DRAWBRIDGE_STORAGE_DIR",
        "DRAWBRIDGE_EXPORT_DIR",
        "DRAWBRIDGE_DEBUG_LOGGING",
        "DRAWBRIDGE_SELECTION_TIMEOUT",
        "DRAWBRIDGE_EXPORT_TIMEOUT",
        "DRAWBRIDGE_HISTORY_CAPACITY",
        "DRAWBRIDGE_SETTINGS_PATH",
        "DRAWBRIDGE_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
