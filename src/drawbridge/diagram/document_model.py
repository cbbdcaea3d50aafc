"""Typed view over draw.io diagram markup."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional
from xml.etree import ElementTree as ET

from ..errors import MalformedDocument
from .codec import inflate_pages, local_name

__all__ = [
    "CELL_TAGS",
    "DEFAULT_LAYER_ID",
    "LAYER_ZERO_ID",
    "STRUCTURAL_IDS",
    "Cell",
    "DiagramDocument",
    "Geometry",
    "cell_id",
    "is_cell_element",
    "parse_document",
    "serialize_element",
]

LAYER_ZERO_ID = "0"
DEFAULT_LAYER_ID = "1"
STRUCTURAL_IDS: tuple[str, str] = (LAYER_ZERO_ID, DEFAULT_LAYER_ID)
# <object>/<UserObject> wrap an <mxCell> and carry the id and label themselves.
_WRAPPER_TAGS = ("object", "UserObject")
CELL_TAGS: tuple[str, ...] = ("mxCell", *_WRAPPER_TAGS)


def _as_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def is_cell_element(element: ET.Element) -> bool:
    return local_name(element.tag) in CELL_TAGS


def cell_id(element: ET.Element) -> str | None:
    """Return the identity of a cell element (wrapper or plain ``mxCell``)."""

    return element.get("id")


def serialize_element(element: ET.Element) -> str:
    """Serialize ``element`` without the tail text ElementTree keeps around."""

    tail = element.tail
    element.tail = None
    try:
        return ET.tostring(element, encoding="unicode")
    finally:
        element.tail = tail


@dataclass(slots=True, frozen=True)
class Geometry:
    """Bounds of a vertex or the label geometry of an edge."""

    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    relative: bool = False

    @classmethod
    def from_element(cls, element: ET.Element) -> "Geometry":
        return cls(
            x=_as_float(element.get("x")),
            y=_as_float(element.get("y")),
            width=_as_float(element.get("width")),
            height=_as_float(element.get("height")),
            relative=element.get("relative") == "1",
        )


@dataclass(slots=True)
class Cell:
    """One addressable node, edge, or structural layer of a diagram."""

    id: str
    parent: Optional[str] = None
    value: Optional[str] = None
    style: Optional[str] = None
    vertex: bool = False
    edge: bool = False
    source: Optional[str] = None
    target: Optional[str] = None
    geometry: Optional[Geometry] = None
    element: Optional[ET.Element] = field(default=None, repr=False, compare=False)

    @property
    def is_structural(self) -> bool:
        return self.id in STRUCTURAL_IDS

    @property
    def label(self) -> str:
        return self.value or ""

    @classmethod
    def from_element(cls, element: ET.Element) -> "Cell":
        tag = local_name(element.tag)
        if tag in _WRAPPER_TAGS:
            inner = element.find("mxCell")
            attributes = inner if inner is not None else element
            value = element.get("label")
        else:
            attributes = element
            value = element.get("value")
        geometry_element = attributes.find("mxGeometry")
        return cls(
            id=element.get("id", ""),
            parent=attributes.get("parent"),
            value=value,
            style=attributes.get("style"),
            vertex=attributes.get("vertex") == "1",
            edge=attributes.get("edge") == "1",
            source=attributes.get("source"),
            target=attributes.get("target"),
            geometry=Geometry.from_element(geometry_element) if geometry_element is not None else None,
            element=element,
        )

    def to_xml(self) -> str:
        """Serialize the cell's own subtree."""

        if self.element is None:
            element = ET.Element("mxCell", {"id": self.id})
            if self.value is not None:
                element.set("value", self.value)
            if self.parent is not None:
                element.set("parent", self.parent)
            return serialize_element(element)
        return serialize_element(self.element)


class DiagramDocument:
    """Parsed diagram: the envelope element plus the container holding its cells."""

    def __init__(self, envelope: ET.Element, cell_root: ET.Element) -> None:
        self._envelope = envelope
        self._cell_root = cell_root

    @property
    def envelope(self) -> ET.Element:
        return self._envelope

    def structural_root(self) -> ET.Element:
        """Return the ``<root>`` element whose children are the cells."""

        return self._cell_root

    def cell_elements(self) -> list[ET.Element]:
        return [child for child in self._cell_root if is_cell_element(child)]

    def cells(self) -> list[Cell]:
        return [Cell.from_element(child) for child in self.cell_elements()]

    def __iter__(self) -> Iterator[Cell]:
        return iter(self.cells())

    def __len__(self) -> int:
        return len(self.cell_elements())

    def find_element(self, cell_identifier: str) -> ET.Element | None:
        for child in self.cell_elements():
            if cell_id(child) == cell_identifier:
                return child
        return None

    def find_cell(self, cell_identifier: str) -> Cell | None:
        """Return the cell with ``cell_identifier`` or ``None`` when absent."""

        element = self.find_element(cell_identifier)
        return Cell.from_element(element) if element is not None else None

    def non_structural_cells(self) -> list[Cell]:
        return [cell for cell in self.cells() if not cell.is_structural]

    def non_structural_ids(self) -> list[str]:
        return [cell.id for cell in self.non_structural_cells() if cell.id]

    def last_cell_id(self) -> str | None:
        """Return the highest-ordered non-structural cell id, if any."""

        ids = self.non_structural_ids()
        return ids[-1] if ids else None

    def has_structural_cells(self) -> bool:
        return all(self.find_element(identifier) is not None for identifier in STRUCTURAL_IDS)

    def to_xml(self) -> str:
        return serialize_element(self._envelope)


def _locate_cell_root(envelope: ET.Element) -> ET.Element | None:
    tag = local_name(envelope.tag)
    if tag == "root":
        return envelope
    if tag == "mxfile":
        inflate_pages(envelope)
    if tag == "mxGraphModel":
        return envelope.find("root")
    model_root = envelope.find(".//mxGraphModel/root")
    if model_root is not None:
        return model_root
    return envelope.find(".//root")


def parse_document(text: str) -> DiagramDocument:
    """Parse diagram markup into a :class:`DiagramDocument`.

    Raises :class:`MalformedDocument` when ``text`` is not XML or holds no
    ``<root>`` cell container.
    """

    if not text or not text.strip():
        raise MalformedDocument("Document text is empty", cause="empty")
    try:
        envelope = ET.fromstring(text.strip())
    except ET.ParseError as exc:
        raise MalformedDocument(f"Document is not well-formed XML: {exc}", cause="parse") from exc
    cell_root = _locate_cell_root(envelope)
    if cell_root is None:
        raise MalformedDocument(
            f"Document <{local_name(envelope.tag)}> has no <root> cell container", cause="no_root"
        )
    return DiagramDocument(envelope, cell_root)
