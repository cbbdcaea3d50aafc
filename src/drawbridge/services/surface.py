"""Rendering surface adapter speaking the draw.io embed message protocol."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Callable, Mapping

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .bridge import EditorBridge

__all__ = ["EmbedMessageSurface"]

LOGGER = logging.getLogger(__name__)


class EmbedMessageSurface:
    """Serializes bridge commands as embed JSON messages and routes replies back.

    ``send`` receives each outbound message as a JSON string; the host is
    expected to post it to the editor frame and to feed every inbound message
    to :meth:`handle_message`.
    """

    def __init__(self, send: Callable[[str], None]) -> None:
        self._send = send
        self._bridge: EditorBridge | None = None

    def attach(self, bridge: "EditorBridge") -> None:
        self._bridge = bridge

    def load(self, document_text: str) -> None:
        self._post({"action": "load", "xml": document_text})

    def export(self, surface_format: str) -> None:
        self._post({"action": "export", "format": surface_format})

    def query_selection(self) -> None:
        self._post({"action": "getSelectedCells"})

    def handle_message(self, raw: str | Mapping[str, Any]) -> bool:
        """Dispatch one inbound message; returns ``True`` when it was consumed."""

        message = _decode(raw)
        if message is None:
            return False
        if self._bridge is None:
            LOGGER.warning("Dropping surface message; no bridge attached")
            return False
        kind = message.get("event") or message.get("action")
        if kind == "export":
            self._bridge.handle_export_event(message)
            return True
        if kind == "selectedCells":
            self._bridge.handle_selection_event(message)
            return True
        LOGGER.debug("Ignoring surface message %r", kind)
        return False

    def _post(self, message: Mapping[str, Any]) -> None:
        self._send(json.dumps(message))


def _decode(raw: str | Mapping[str, Any]) -> Mapping[str, Any] | None:
    if isinstance(raw, Mapping):
        return raw
    try:
        message = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        LOGGER.warning("Ignoring unparseable surface message: %s", exc)
        return None
    if not isinstance(message, dict):
        LOGGER.warning("Ignoring surface message that is not an object")
        return None
    return message
