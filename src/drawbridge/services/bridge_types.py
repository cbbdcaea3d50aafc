"""Shared types for the editor bridge and its rendering surface port."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

__all__ = [
    "DownloadTarget",
    "ExportFormat",
    "ExportOutcome",
    "ExportStatus",
    "RenderingSurface",
]


@runtime_checkable
class RenderingSurface(Protocol):
    """Commands the engine can send to the external editor.

    Replies never come back through these calls. The host feeds them into
    :meth:`EditorBridge.handle_export_event` and
    :meth:`EditorBridge.handle_selection_event` instead.
    """

    def load(self, document_text: str) -> None:
        ...

    def export(self, surface_format: str) -> None:
        ...

    def query_selection(self) -> None:
        ...


@dataclass(slots=True, frozen=True)
class DownloadTarget:
    filename: str
    media_type: str


class ExportFormat(enum.Enum):
    """What an export request is for."""

    CONTEXT = "context"
    DRAWIO = "drawio"
    PNG = "png"
    SVG = "svg"

    @property
    def surface_format(self) -> str:
        """Format name understood by the surface's ``export`` command."""

        if self in (ExportFormat.CONTEXT, ExportFormat.DRAWIO):
            return "xmlsvg"
        return self.value

    @property
    def is_image(self) -> bool:
        return self in (ExportFormat.PNG, ExportFormat.SVG)

    @property
    def download(self) -> DownloadTarget | None:
        return _DOWNLOADS.get(self)

    @classmethod
    def parse(cls, value: "str | ExportFormat") -> "ExportFormat":
        if isinstance(value, ExportFormat):
            return value
        normalized = str(value).strip().lower()
        if normalized in {"xml", "xmlsvg", ""}:
            return cls.CONTEXT
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"Unknown export format: {value!r}") from exc


_DOWNLOADS: dict[ExportFormat, DownloadTarget] = {
    ExportFormat.DRAWIO: DownloadTarget("diagram.drawio", "text/xml"),
    ExportFormat.PNG: DownloadTarget("diagram.png", "image/png"),
    ExportFormat.SVG: DownloadTarget("diagram.svg", "image/svg+xml"),
}


class ExportStatus(enum.Enum):
    RESOLVED = "resolved"
    ABANDONED = "abandoned"
    TIMED_OUT = "timed_out"


@dataclass(slots=True, frozen=True)
class ExportOutcome:
    """Terminal state of one export request.

    Attributes:
        status: How the request ended.
        token: The request token the outcome belongs to.
        export_format: Format the request asked for.
        document_text: Extracted document for context exports, ``None`` otherwise.
        data: Raw payload delivered by the surface, when one arrived.
        saved_path: File written for download formats.
    """

    status: ExportStatus
    token: int
    export_format: ExportFormat = ExportFormat.CONTEXT
    document_text: str | None = None
    data: str | None = None
    saved_path: str | None = None

    @property
    def resolved(self) -> bool:
        return self.status is ExportStatus.RESOLVED
