"""Synchronous event bus connecting the engine to whatever hosts it.

The bridge, stores, and controller publish events here instead of calling UI
code directly. Handlers run in subscription order on the publishing call
stack, so an event is fully handled before the step that raised it returns.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all engine events."""


@dataclass(slots=True)
class DiagramLoaded(Event):
    """A document was sent to the rendering surface.

    Attributes:
        document_text: The markup handed to the surface.
        reason: Which action triggered the load (``"fragment"``, ``"delete"``...).
    """

    document_text: str
    reason: str = ""


@dataclass(slots=True)
class DiagramExported(Event):
    """The surface confirmed a render and the live document was updated."""

    document_text: str
    preview: str
    opaque: bool = False


@dataclass(slots=True)
class VersionAppended(Event):
    sequence_number: int
    history_length: int


@dataclass(slots=True)
class HistoryChanged(Event):
    """History was cleared or a version deleted."""

    history_length: int


@dataclass(slots=True)
class LibraryChanged(Event):
    """Saved nodes were added, deleted, or cleared.

    Attributes:
        added: Ids inserted by the mutation.
        removed: Ids dropped by the mutation.
        size: Library size afterwards.
    """

    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    size: int = 0


@dataclass(slots=True)
class ExportSaved(Event):
    path: str
    media_type: str


@dataclass(slots=True)
class NoticePosted(Event):
    """A recoverable failure the user should hear about.

    Attributes:
        message: Human readable notice.
        level: ``"info"``, ``"warning"`` or ``"error"``.
    """

    message: str
    level: str = "warning"


class _HandlerRef:
    """Weak reference for bound methods, strong reference for plain callables."""

    __slots__ = ("_target", "_weak")

    def __init__(self, handler: Callable[..., None]) -> None:
        self._weak = False
        self._target: object = handler
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                self._target = WeakMethod(handler)  # type: ignore[arg-type]
                self._weak = True
            except TypeError:
                pass

    def resolve(self) -> Callable[..., None] | None:
        if self._weak:
            return self._target()  # type: ignore[operator]
        return self._target  # type: ignore[return-value]


class EventBus:
    """Typed publish/subscribe hub.

    Not thread-safe; everything runs on the engine's event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: defaultdict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef(handler))

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, reference in enumerate(handlers):
            if reference.resolve() == handler:
                del handlers[index]
                return

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to every live handler; handler errors are logged, not raised."""

        handlers = self._handlers.get(type(event))
        if not handlers:
            return
        logger.debug("Publishing %s to %d handler(s)", type(event).__name__, len(handlers))
        for reference in list(handlers):
            handler = reference.resolve()
            if handler is None:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed for %s", handler, type(event).__name__)
        handlers[:] = [ref for ref in handlers if ref.resolve() is not None]

    def handler_count(self, event_type: type[Event] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())

    def clear(self) -> None:
        self._handlers.clear()


__all__ = [
    "DiagramExported",
    "DiagramLoaded",
    "Event",
    "EventBus",
    "ExportSaved",
    "Handler",
    "HistoryChanged",
    "LibraryChanged",
    "NoticePosted",
    "VersionAppended",
]
