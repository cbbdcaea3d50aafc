"""Pull individual cell subtrees out of a full diagram."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import MalformedDocument
from .document_model import DiagramDocument, parse_document, serialize_element

__all__ = ["ExtractedNode", "extract_node_by_id", "extract_nodes"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ExtractedNode:
    """A non-structural cell serialized on its own."""

    id: str
    label: str
    xml: str


def _coerce(document: DiagramDocument | str) -> DiagramDocument | None:
    if isinstance(document, DiagramDocument):
        return document
    try:
        return parse_document(document)
    except MalformedDocument as exc:
        LOGGER.debug("Cannot extract nodes from malformed document: %s", exc)
        return None


def extract_node_by_id(document: DiagramDocument | str, node_id: str) -> str | None:
    """Return the serialized subtree of ``node_id`` or ``None`` when not found."""

    parsed = _coerce(document)
    if parsed is None:
        return None
    element = parsed.find_element(node_id)
    if element is None:
        return None
    return serialize_element(element)


def extract_nodes(document: DiagramDocument | str) -> list[ExtractedNode]:
    """Return every non-structural cell in document order, edges included."""

    parsed = _coerce(document)
    if parsed is None:
        return []
    nodes: list[ExtractedNode] = []
    for cell in parsed.non_structural_cells():
        if not cell.id or cell.element is None:
            continue
        nodes.append(ExtractedNode(id=cell.id, label=cell.label, xml=serialize_element(cell.element)))
    return nodes
