"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

from typing import Any

from drawbridge.events import Event, EventBus

BASE_DOCUMENT = (
    "<mxGraphModel><root>"
    '<mxCell id="0"/>'
    '<mxCell id="1" parent="0"/>'
    '<mxCell id="A" value="Start" style="rounded=1;" parent="1" vertex="1">'
    '<mxGeometry x="10" y="20" width="120" height="60" as="geometry"/>'
    "</mxCell>"
    "</root></mxGraphModel>"
)


class RecordingBus(EventBus):
    """Event bus that remembers everything published on it."""

    __slots__ = ("events",)

    def __init__(self) -> None:
        super().__init__()
        self.events: list[Event] = []

    def publish(self, event: Event) -> None:
        self.events.append(event)
        super().publish(event)

    def of_type(self, event_type: type[Any]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


class FakeSurface:
    """Rendering surface that records every command it receives."""

    def __init__(self) -> None:
        self.loaded: list[str] = []
        self.exports: list[str] = []
        self.selection_queries = 0

    def load(self, document_text: str) -> None:
        self.loaded.append(document_text)

    def export(self, surface_format: str) -> None:
        self.exports.append(surface_format)

    def query_selection(self) -> None:
        self.selection_queries += 1
