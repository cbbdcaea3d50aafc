"""The single owned diagram session: live document, history, and library."""

from __future__ import annotations

import logging
from pathlib import Path

from .diagram.document_model import DiagramDocument, parse_document
from .errors import MalformedDocument
from .events import DiagramExported, EventBus
from .services.history import HistoryStore, Version
from .services.library import NodeLibrary
from .services.settings import Settings
from .services.storage import BlobStore, FileBlobStore

__all__ = ["DiagramSession"]

LOGGER = logging.getLogger(__name__)


class DiagramSession:
    """Holds the live document and the stores it feeds.

    Every mutation of the live document goes through :meth:`replace_document`
    or :meth:`record_export`; callers never edit the text in place.
    """

    def __init__(
        self,
        history: HistoryStore,
        library: NodeLibrary,
        *,
        event_bus: EventBus | None = None,
        document_text: str = "",
    ) -> None:
        self._history = history
        self._library = library
        self._bus = event_bus
        self._document_text = document_text
        self._latest_preview = ""
        self._opaque = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        event_bus: EventBus | None = None,
        storage: BlobStore | None = None,
    ) -> "DiagramSession":
        """Build a session whose stores persist under ``settings.storage_dir``."""

        blob_store = storage or FileBlobStore(Path(settings.storage_dir))
        history = HistoryStore(blob_store, capacity=settings.history_capacity, event_bus=event_bus)
        library = NodeLibrary(blob_store, display_name_limit=settings.display_name_limit, event_bus=event_bus)
        latest = history.latest()
        session = cls(history, library, event_bus=event_bus)
        if latest is not None:
            session._document_text = latest.document_text
            session._latest_preview = latest.rendered_preview
        return session

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def library(self) -> NodeLibrary:
        return self._library

    @property
    def document_text(self) -> str:
        return self._document_text

    @property
    def latest_preview(self) -> str:
        return self._latest_preview

    @property
    def is_opaque(self) -> bool:
        """``True`` when the live document came from a payload that could not be parsed."""

        return self._opaque

    @property
    def has_document(self) -> bool:
        return bool(self._document_text.strip())

    def document(self) -> DiagramDocument | None:
        """Parse the live document, returning ``None`` when it is empty or unreadable."""

        if not self.has_document:
            return None
        try:
            return parse_document(self._document_text)
        except MalformedDocument as exc:
            LOGGER.debug("Live document is not parseable: %s", exc)
            return None

    def replace_document(self, document_text: str) -> None:
        self._document_text = document_text
        self._opaque = False

    def record_export(self, document_text: str, preview: str, *, opaque: bool = False) -> Version:
        """Adopt a confirmed render as the live document and append it to history."""

        self._document_text = document_text
        self._latest_preview = preview
        self._opaque = opaque
        version = self._history.append(document_text, preview)
        if self._bus is not None:
            self._bus.publish(DiagramExported(document_text=document_text, preview=preview, opaque=opaque))
        return version
