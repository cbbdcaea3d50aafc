"""Library of individually saved cells, deduplicated by id."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Iterator, Protocol

from ..errors import StorageCorruption
from ..events import EventBus, LibraryChanged
from .storage import BlobStore, decode_blob, encode_blob

__all__ = ["LIBRARY_BLOB", "NodeLibrary", "SavedCell", "display_name_for"]

LOGGER = logging.getLogger(__name__)
LIBRARY_BLOB = "saved_nodes"
_ELLIPSIS = "..."
_LIBRARY_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "name", "xml", "savedAt"],
        "properties": {
            "id": {"type": "string"},
            "name": {"type": "string"},
            "xml": {"type": "string"},
            "savedAt": {"type": "string"},
        },
    },
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _NodeLike(Protocol):
    id: str
    label: str
    xml: str


def display_name_for(label: str | None, node_id: str, *, limit: int = 30) -> str:
    """Use the label (or the id) and cut it to ``limit`` characters plus an ellipsis."""

    name = (label or "").strip() or node_id
    if len(name) > limit:
        return name[:limit] + _ELLIPSIS
    return name


@dataclass(slots=True, frozen=True)
class SavedCell:
    id: str
    display_name: str
    document_text: str
    saved_at: datetime

    def to_payload(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.display_name,
            "xml": self.document_text,
            "savedAt": self.saved_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, str]) -> "SavedCell":
        try:
            saved_at = datetime.fromisoformat(payload["savedAt"])
        except ValueError as exc:
            raise StorageCorruption(
                f"Saved node {payload['id']!r} has an invalid timestamp", cause="timestamp"
            ) from exc
        return cls(
            id=payload["id"],
            display_name=payload["name"],
            document_text=payload["xml"],
            saved_at=saved_at,
        )


class NodeLibrary:
    """Persisted list of saved cells.

    Ids already in the library are skipped on insert (first write wins). A
    single batch is not deduplicated against itself.
    """

    def __init__(
        self,
        storage: BlobStore,
        *,
        display_name_limit: int = 30,
        event_bus: EventBus | None = None,
    ) -> None:
        self._storage = storage
        self._limit = display_name_limit
        self._bus = event_bus
        self._cells: list[SavedCell] = []
        self._load()

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self) -> Iterator[SavedCell]:
        return iter(tuple(self._cells))

    def __contains__(self, node_id: object) -> bool:
        return any(cell.id == node_id for cell in self._cells)

    def cells(self) -> list[SavedCell]:
        return list(self._cells)

    def get(self, node_id: str) -> SavedCell | None:
        for cell in self._cells:
            if cell.id == node_id:
                return cell
        return None

    def add_many(self, nodes: Iterable[_NodeLike], *, saved_at: datetime | None = None) -> list[SavedCell]:
        """Insert ``nodes`` whose id is not yet saved and return the inserted cells."""

        existing = {cell.id for cell in self._cells}
        instant = saved_at or _utcnow()
        added = [
            SavedCell(
                id=node.id,
                display_name=display_name_for(node.label, node.id, limit=self._limit),
                document_text=node.xml,
                saved_at=instant,
            )
            for node in nodes
            if node.id not in existing
        ]
        if not added:
            LOGGER.debug("No new nodes to save")
            return []
        self._cells.extend(added)
        self._persist()
        self._notify(added=tuple(cell.id for cell in added))
        return added

    def delete(self, node_id: str) -> bool:
        remaining = [cell for cell in self._cells if cell.id != node_id]
        if len(remaining) == len(self._cells):
            return False
        self._cells = remaining
        self._persist()
        self._notify(removed=(node_id,))
        return True

    def clear(self) -> None:
        removed = tuple(cell.id for cell in self._cells)
        self._cells = []
        try:
            self._storage.delete(LIBRARY_BLOB)
        except OSError as exc:
            LOGGER.warning("Unable to delete stored node library: %s", exc)
        self._notify(removed=removed)

    def _notify(self, *, added: tuple[str, ...] = (), removed: tuple[str, ...] = ()) -> None:
        if self._bus is not None:
            self._bus.publish(LibraryChanged(added=added, removed=removed, size=len(self._cells)))

    def _persist(self) -> None:
        body = encode_blob([cell.to_payload() for cell in self._cells])
        try:
            self._storage.write(LIBRARY_BLOB, body)
        except OSError as exc:
            LOGGER.warning("Unable to persist node library: %s", exc)

    def _load(self) -> None:
        try:
            raw = self._storage.read(LIBRARY_BLOB)
        except OSError as exc:
            LOGGER.warning("Unable to read stored node library: %s", exc)
            return
        if raw is None:
            return
        try:
            entries = decode_blob(LIBRARY_BLOB, raw, _LIBRARY_SCHEMA)
            self._cells = [SavedCell.from_payload(entry) for entry in entries]
        except StorageCorruption as exc:
            LOGGER.warning("Ignoring corrupt node library: %s", exc)
            self._cells = []
