"""Error taxonomy for the diagram synchronization engine.

Every failure in this package is recoverable: callers keep the last known-good
diagram and surface a notice instead of crashing.
"""

from __future__ import annotations

from typing import Any, Mapping

__all__ = [
    "DrawbridgeError",
    "MalformedDocument",
    "SanitizationFailure",
    "MergeFailure",
    "BridgeTimeout",
    "StorageCorruption",
]


class DrawbridgeError(RuntimeError):
    """Base class for engine errors carrying an optional cause and details."""

    def __init__(
        self,
        message: str,
        *,
        cause: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.details = dict(details) if isinstance(details, Mapping) else None


class MalformedDocument(DrawbridgeError):
    """Raised when markup handed to the document model cannot be parsed."""


class SanitizationFailure(DrawbridgeError):
    """Raised when a fragment cannot be repaired into well-formed markup."""


class MergeFailure(DrawbridgeError):
    """Raised when a fragment cannot be merged into the base document."""


class BridgeTimeout(DrawbridgeError):
    """Raised when the rendering surface does not reply in time."""


class StorageCorruption(DrawbridgeError):
    """Raised when a persisted blob cannot be decoded."""
