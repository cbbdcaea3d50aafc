"""Bounded, persisted log of rendered diagram versions."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator

from ..errors import StorageCorruption
from ..events import EventBus, HistoryChanged, VersionAppended
from .storage import BlobStore, decode_blob, encode_blob

__all__ = ["HISTORY_BLOB", "DEFAULT_HISTORY_CAPACITY", "HistoryStore", "Version"]

LOGGER = logging.getLogger(__name__)
HISTORY_BLOB = "diagram_history"
DEFAULT_HISTORY_CAPACITY = 20
_HISTORY_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["svg", "xml"],
        "properties": {
            "svg": {"type": "string"},
            "xml": {"type": "string"},
        },
    },
}


@dataclass(slots=True, frozen=True)
class Version:
    """One confirmed render of the diagram."""

    rendered_preview: str
    document_text: str
    sequence_number: int

    def to_payload(self) -> dict[str, str]:
        return {"svg": self.rendered_preview, "xml": self.document_text}


class HistoryStore:
    """Append-only version log with FIFO eviction past ``capacity``.

    Sequence numbers are assigned per process; stored versions are renumbered
    from 1 when loaded.
    """

    def __init__(
        self,
        storage: BlobStore,
        *,
        capacity: int = DEFAULT_HISTORY_CAPACITY,
        event_bus: EventBus | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._storage = storage
        self._capacity = capacity
        self._bus = event_bus
        self._versions: Deque[Version] = deque(maxlen=capacity)
        self._next_sequence = 1
        self._load()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._versions)

    def __iter__(self) -> Iterator[Version]:
        return iter(tuple(self._versions))

    def versions(self) -> list[Version]:
        return list(self._versions)

    def get(self, index: int) -> Version:
        return self._versions[index]

    def latest(self) -> Version | None:
        return self._versions[-1] if self._versions else None

    def append(self, document_text: str, rendered_preview: str) -> Version:
        """Record a confirmed render, evicting the oldest version when full."""

        version = Version(
            rendered_preview=rendered_preview,
            document_text=document_text,
            sequence_number=self._next_sequence,
        )
        self._next_sequence += 1
        self._versions.append(version)
        self._persist()
        if self._bus is not None:
            self._bus.publish(
                VersionAppended(sequence_number=version.sequence_number, history_length=len(self._versions))
            )
        return version

    def delete(self, index: int) -> Version:
        """Remove the version at ``index``; raises ``IndexError`` when out of range."""

        version = self._versions[index]
        del self._versions[index]
        self._persist()
        self._notify_changed()
        return version

    def clear(self) -> None:
        self._versions.clear()
        try:
            self._storage.delete(HISTORY_BLOB)
        except OSError as exc:
            LOGGER.warning("Unable to delete stored history: %s", exc)
        self._notify_changed()

    def _notify_changed(self) -> None:
        if self._bus is not None:
            self._bus.publish(HistoryChanged(history_length=len(self._versions)))

    def _persist(self) -> None:
        body = encode_blob([version.to_payload() for version in self._versions])
        try:
            self._storage.write(HISTORY_BLOB, body)
        except OSError as exc:
            LOGGER.warning("Unable to persist diagram history: %s", exc)

    def _load(self) -> None:
        try:
            raw = self._storage.read(HISTORY_BLOB)
        except OSError as exc:
            LOGGER.warning("Unable to read stored history: %s", exc)
            return
        if raw is None:
            return
        try:
            entries = decode_blob(HISTORY_BLOB, raw, _HISTORY_SCHEMA)
        except StorageCorruption as exc:
            LOGGER.warning("Ignoring corrupt diagram history: %s", exc)
            return
        for entry in entries[-self._capacity :]:
            self._versions.append(
                Version(rendered_preview=entry["svg"], document_text=entry["xml"], sequence_number=self._next_sequence)
            )
            self._next_sequence += 1
        LOGGER.debug("Loaded %d stored version(s)", len(self._versions))
