"""Identity-keyed merge of assistant fragments into the live diagram."""

from __future__ import annotations

import logging
from copy import deepcopy
from xml.etree import ElementTree as ET

from ..errors import MalformedDocument, MergeFailure
from .codec import local_name
from .document_model import (
    DEFAULT_LAYER_ID,
    LAYER_ZERO_ID,
    STRUCTURAL_IDS,
    Cell,
    DiagramDocument,
    cell_id,
    parse_document,
    serialize_element,
)
from .sanitizer import has_root_wrapper

__all__ = ["replace_nodes", "delete_node"]

LOGGER = logging.getLogger(__name__)


def _attribute_carrier(element: ET.Element) -> ET.Element:
    """Return the element holding ``parent``/``style`` (the inner cell of a wrapper)."""

    if local_name(element.tag) != "mxCell":
        inner = element.find("mxCell")
        if inner is not None:
            return inner
    return element


def _ensure_structural_cells(container: ET.Element) -> None:
    present = {cell_id(child) for child in container}
    if DEFAULT_LAYER_ID not in present:
        container.insert(0, ET.Element("mxCell", {"id": DEFAULT_LAYER_ID, "parent": LAYER_ZERO_ID}))
    if LAYER_ZERO_ID not in present:
        container.insert(0, ET.Element("mxCell", {"id": LAYER_ZERO_ID}))


def _parse_fragment(fragment: str) -> DiagramDocument:
    text = (fragment or "").strip()
    if text and not has_root_wrapper(text):
        text = f"<root>{text}</root>"
    try:
        return parse_document(text)
    except MalformedDocument as exc:
        raise MergeFailure(f"Fragment cannot be parsed: {exc}", cause="fragment") from exc


def _incoming_cells(fragment: DiagramDocument) -> dict[str, ET.Element]:
    """Fragment cells by id; a repeated id keeps its first position but the last content."""

    incoming: dict[str, ET.Element] = {}
    for element in fragment.cell_elements():
        identifier = cell_id(element)
        if not identifier:
            LOGGER.warning("Skipping fragment cell without an id: %s", serialize_element(element)[:120])
            continue
        if identifier in STRUCTURAL_IDS:
            LOGGER.debug("Ignoring structural cell %s redeclared by fragment", identifier)
            continue
        incoming[identifier] = element
    return incoming


def _fragment_as_document(fragment: DiagramDocument) -> str:
    container = fragment.structural_root()
    envelope = fragment.envelope
    if envelope is container:
        envelope = ET.Element("mxGraphModel")
        envelope.append(container)
    for element in fragment.cell_elements():
        carrier = _attribute_carrier(element)
        if cell_id(element) not in STRUCTURAL_IDS and carrier.get("parent") is None:
            carrier.set("parent", DEFAULT_LAYER_ID)
    _ensure_structural_cells(container)
    return serialize_element(envelope)


def replace_nodes(base: str, fragment: str) -> str:
    """Merge the cells of ``fragment`` into ``base`` and return the new document text.

    Cells whose id already exists in ``base`` are replaced in place, new ids are
    appended, everything else in ``base`` is kept. The structural cells of
    ``base`` are never taken from the fragment. When ``base`` cannot be parsed
    the fragment becomes the whole document; a fragment that cannot be parsed
    raises :class:`MergeFailure`.
    """

    fragment_doc = _parse_fragment(fragment)
    try:
        base_doc = parse_document(base)
    except MalformedDocument as exc:
        LOGGER.warning("Base document unusable (%s); using fragment as the whole document", exc)
        return _fragment_as_document(fragment_doc)

    container = base_doc.structural_root()
    _ensure_structural_cells(container)
    existing: dict[str, ET.Element] = {}
    for element in base_doc.cell_elements():
        identifier = cell_id(element)
        if identifier and identifier not in STRUCTURAL_IDS:
            existing.setdefault(identifier, element)

    replaced = appended = 0
    for identifier, element in _incoming_cells(fragment_doc).items():
        candidate = deepcopy(element)
        carrier = _attribute_carrier(candidate)
        if carrier.get("parent") is None:
            carrier.set("parent", DEFAULT_LAYER_ID)
        current = existing.get(identifier)
        if current is not None:
            position = list(container).index(current)
            candidate.tail = current.tail
            container.remove(current)
            container.insert(position, candidate)
            replaced += 1
        else:
            candidate.tail = None
            container.append(candidate)
            appended += 1
        existing[identifier] = candidate

    LOGGER.debug("Merged fragment: %d replaced, %d appended", replaced, appended)
    return base_doc.to_xml()


def _doomed_ids(document: DiagramDocument, node_id: str) -> set[str]:
    cells = [cell for cell in document.cells() if cell.id]
    doomed = {node_id}
    changed = True
    while changed:
        changed = False
        for cell in cells:
            if cell.id not in doomed and cell.parent in doomed:
                doomed.add(cell.id)
                changed = True
    doomed.update(cell.id for cell in cells if _touches(cell, doomed))
    return doomed


def _touches(cell: Cell, doomed: set[str]) -> bool:
    return cell.source in doomed or cell.target in doomed


def delete_node(base: str, node_id: str) -> str:
    """Remove ``node_id`` with its children and attached edges.

    Unknown ids leave ``base`` unchanged. The structural cells cannot be
    deleted.
    """

    if node_id in STRUCTURAL_IDS:
        raise MergeFailure(f"Structural cell {node_id!r} cannot be deleted", cause="structural")
    try:
        document = parse_document(base)
    except MalformedDocument as exc:
        raise MergeFailure(f"Base document cannot be parsed: {exc}", cause="base") from exc
    if document.find_element(node_id) is None:
        LOGGER.debug("Delete requested for unknown cell %s", node_id)
        return base

    doomed = _doomed_ids(document, node_id) - set(STRUCTURAL_IDS)
    container = document.structural_root()
    for element in document.cell_elements():
        if cell_id(element) in doomed:
            container.remove(element)
    LOGGER.debug("Deleted %d cell(s) rooted at %s", len(doomed), node_id)
    return document.to_xml()
