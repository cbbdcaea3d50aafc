"""Tests for :mod:`drawbridge.diagram.extractor`."""

from __future__ import annotations

from xml.etree import ElementTree as ET

from drawbridge.diagram.document_model import parse_document
from drawbridge.diagram.extractor import extract_node_by_id, extract_nodes

DOCUMENT = (
    "<mxGraphModel><root>"
    '<mxCell id="0"/><mxCell id="1" parent="0"/>'
    '<mxCell id="A" value="Start" parent="1" vertex="1"><mxGeometry x="0" y="0" width="80" height="40" as="geometry"/></mxCell>'
    '<object id="B" label="Wrapped"><mxCell parent="1" vertex="1"/></object>'
    '<mxCell id="e1" edge="1" source="A" target="B" parent="1"/>'
    "</root></mxGraphModel>"
)


def test_extract_node_by_id_returns_the_cell_subtree() -> None:
    extracted = extract_node_by_id(DOCUMENT, "A")

    assert extracted is not None
    element = ET.fromstring(extracted)
    assert element.get("id") == "A"
    assert element.find("mxGeometry") is not None


def test_extract_node_by_id_keeps_wrappers() -> None:
    extracted = extract_node_by_id(DOCUMENT, "B")

    assert extracted is not None
    assert extracted.startswith("<object")
    assert "<mxCell" in extracted


def test_extract_node_by_id_missing_id_returns_none() -> None:
    assert extract_node_by_id(DOCUMENT, "nope") is None


def test_extract_node_by_id_malformed_document_returns_none() -> None:
    assert extract_node_by_id("<mxGraphModel><root>", "A") is None


def test_extract_node_by_id_accepts_parsed_documents() -> None:
    assert extract_node_by_id(parse_document(DOCUMENT), "e1") is not None


def test_extract_nodes_skips_structural_cells_and_keeps_order() -> None:
    nodes = extract_nodes(DOCUMENT)

    assert [node.id for node in nodes] == ["A", "B", "e1"]
    assert [node.label for node in nodes] == ["Start", "Wrapped", ""]


def test_extract_nodes_of_empty_diagram() -> None:
    assert extract_nodes('<root><mxCell id="0"/><mxCell id="1" parent="0"/></root>') == []
