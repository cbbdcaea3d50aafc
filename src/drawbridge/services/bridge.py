"""Request/response bridge between the engine and the rendering surface.

The surface can only be told to load, export, or report its selection; any
answer arrives later as an event the host forwards to this bridge. The bridge
keeps one awaited export slot. A new request supersedes the previous one,
which resolves as ``ABANDONED``, and a request nobody answers resolves as
``TIMED_OUT`` after ``export_timeout`` seconds.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

from ..diagram.codec import extract_diagram_xml, split_data_url
from ..errors import BridgeTimeout, MalformedDocument
from ..events import DiagramLoaded, EventBus, ExportSaved, NoticePosted
from ..session import DiagramSession
from ..utils.file_io import write_bytes
from .bridge_types import ExportFormat, ExportOutcome, ExportStatus, RenderingSurface

__all__ = ["EditorBridge"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _PendingExport:
    token: int
    export_format: ExportFormat
    future: asyncio.Future[ExportOutcome]


class EditorBridge:
    """Owns every exchange with a :class:`RenderingSurface`."""

    def __init__(
        self,
        surface: RenderingSurface,
        session: DiagramSession,
        *,
        event_bus: EventBus | None = None,
        export_dir: Path | str | None = None,
        selection_timeout: float = 0.1,
        export_timeout: float | None = 30.0,
    ) -> None:
        self._surface = surface
        self._session = session
        self._bus = event_bus
        self._export_dir = Path(export_dir).expanduser() if export_dir is not None else Path.cwd()
        self._selection_timeout = selection_timeout
        self._export_timeout = export_timeout
        self._tokens = itertools.count(1)
        self._pending: _PendingExport | None = None
        self._selection_waiters: list[asyncio.Future[str]] = []

    @property
    def session(self) -> DiagramSession:
        return self._session

    @property
    def export_dir(self) -> Path:
        return self._export_dir

    @property
    def pending_format(self) -> ExportFormat:
        """Format the next export event is interpreted as."""

        if self._pending is None:
            return ExportFormat.CONTEXT
        return self._pending.export_format

    @property
    def awaiting_reply(self) -> bool:
        return self._pending is not None

    # ------------------------------------------------------------------
    # Outbound commands
    # ------------------------------------------------------------------
    def load_document(self, document_text: str, *, reason: str = "") -> None:
        """Adopt ``document_text`` as the live document and hand it to the surface."""

        self._session.replace_document(document_text)
        self._surface.load(document_text)
        LOGGER.debug("Loaded document on surface (%s, %d chars)", reason or "unspecified", len(document_text))
        self._publish(DiagramLoaded(document_text=document_text, reason=reason))

    async def request_export(self, export_format: ExportFormat | str = ExportFormat.CONTEXT) -> ExportOutcome:
        """Ask the surface for an export and wait for the matching reply."""

        export_format = ExportFormat.parse(export_format)
        loop = asyncio.get_running_loop()
        self._abandon_pending()
        pending = _PendingExport(next(self._tokens), export_format, loop.create_future())
        self._pending = pending
        LOGGER.debug("Export %d requested as %s", pending.token, export_format.value)
        try:
            self._surface.export(export_format.surface_format)
            if self._export_timeout is None or self._export_timeout <= 0:
                return await pending.future
            try:
                return await asyncio.wait_for(pending.future, timeout=self._export_timeout)
            except asyncio.TimeoutError:
                LOGGER.warning("Export %d timed out after %.1fs", pending.token, self._export_timeout)
                return ExportOutcome(ExportStatus.TIMED_OUT, pending.token, export_format)
        finally:
            if self._pending is pending:
                self._pending = None

    async def selected_cell_id(self) -> str | None:
        """Return the surface's first selected cell id.

        Falls back to the last non-structural cell of the live document when
        the surface does not answer within ``selection_timeout``.
        """

        try:
            return await self._query_selection()
        except BridgeTimeout as exc:
            LOGGER.debug("%s; using the last cell of the live document", exc)
        document = self._session.document()
        return document.last_cell_id() if document is not None else None

    async def _query_selection(self) -> str:
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[str] = loop.create_future()
        self._selection_waiters.append(waiter)
        self._surface.query_selection()
        try:
            return await asyncio.wait_for(waiter, timeout=self._selection_timeout)
        except asyncio.TimeoutError as exc:
            raise BridgeTimeout(
                f"No selection reply within {self._selection_timeout * 1000:.0f} ms",
                cause="selection",
            ) from exc
        finally:
            if waiter in self._selection_waiters:
                self._selection_waiters.remove(waiter)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------
    def handle_export_event(self, payload: Mapping[str, Any]) -> ExportOutcome | None:
        """Process one export event from the surface.

        Image exports are only written to disk. Every other export updates the
        live document and appends a version, whether or not it was requested.
        """

        data = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(data, str) or not data:
            LOGGER.warning("Ignoring export event without a data payload")
            return None

        pending, self._pending = self._pending, None
        export_format = pending.export_format if pending is not None else ExportFormat.CONTEXT
        token = pending.token if pending is not None else 0

        document_text: str | None = None
        if not export_format.is_image:
            document_text = self._adopt_export(data)

        saved_path: str | None = None
        if export_format.download is not None:
            saved_path = self._save_download(export_format, data, document_text)

        outcome = ExportOutcome(
            ExportStatus.RESOLVED,
            token,
            export_format,
            document_text=document_text,
            data=data,
            saved_path=saved_path,
        )
        if pending is not None and not pending.future.done():
            pending.future.set_result(outcome)
        return outcome

    def handle_selection_event(self, payload: Mapping[str, Any]) -> str | None:
        """Resolve outstanding selection queries with the first selected cell id."""

        cells = payload.get("cells") if isinstance(payload, Mapping) else None
        selected = _first_cell_id(cells)
        if selected is None:
            LOGGER.debug("Selection event carried no cell ids")
            return None
        waiters, self._selection_waiters = self._selection_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(selected)
        return selected

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _abandon_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None or pending.future.done():
            return
        LOGGER.debug("Export %d superseded", pending.token)
        pending.future.set_result(ExportOutcome(ExportStatus.ABANDONED, pending.token, pending.export_format))

    def _adopt_export(self, data: str) -> str:
        opaque = False
        try:
            document_text = extract_diagram_xml(data)
        except MalformedDocument as exc:
            LOGGER.warning("Export payload kept as an opaque document: %s", exc)
            document_text = data
            opaque = True
        self._session.record_export(document_text, data, opaque=opaque)
        return document_text

    def _save_download(self, export_format: ExportFormat, data: str, document_text: str | None) -> str | None:
        target = export_format.download
        if target is None:
            return None
        try:
            content = _download_bytes(export_format, data, document_text)
            path = write_bytes(self._export_dir / target.filename, content)
        except MalformedDocument as exc:
            LOGGER.warning("Unable to decode %s export: %s", export_format.value, exc)
            self._publish(NoticePosted(f"Could not decode the {export_format.value} export.", level="error"))
            return None
        except OSError as exc:
            LOGGER.warning("Unable to save %s: %s", target.filename, exc)
            self._publish(NoticePosted(f"Could not save {target.filename}: {exc}", level="error"))
            return None
        LOGGER.info("Saved %s export to %s", export_format.value, path)
        self._publish(ExportSaved(path=str(path), media_type=target.media_type))
        return str(path)

    def _publish(self, event: Any) -> None:
        if self._bus is not None:
            self._bus.publish(event)


def _download_bytes(export_format: ExportFormat, data: str, document_text: str | None) -> bytes:
    if export_format is ExportFormat.DRAWIO:
        return (document_text if document_text is not None else data).encode("utf-8")
    data_url = split_data_url(data)
    if data_url is not None:
        return data_url.decode()
    if export_format is ExportFormat.SVG and data.lstrip().startswith("<"):
        return data.encode("utf-8")
    raise MalformedDocument(f"{export_format.value} export is not a data URL", cause="download")


def _first_cell_id(cells: Any) -> str | None:
    if not isinstance(cells, Sequence) or isinstance(cells, (str, bytes)) or not cells:
        return None
    first = cells[0]
    if isinstance(first, Mapping):
        identifier = first.get("id")
    else:
        identifier = first
    if identifier is None or identifier == "":
        return None
    return str(identifier)
