"""Service layer helpers (bridge, stores, settings)."""

from .bridge_types import (
    DownloadTarget,
    ExportFormat,
    ExportOutcome,
    ExportStatus,
    RenderingSurface,
)

__all__ = [
    "DownloadTarget",
    "ExportFormat",
    "ExportOutcome",
    "ExportStatus",
    "RenderingSurface",
]
