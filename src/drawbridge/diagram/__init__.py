"""Diagram markup model, codec, and merge algorithms."""

from .document_model import Cell, DiagramDocument, Geometry, STRUCTURAL_IDS, parse_document
from .extractor import ExtractedNode, extract_node_by_id, extract_nodes
from .merge import delete_node, replace_nodes
from .sanitizer import convert_to_legal_xml
from .templates import EMPTY_DIAGRAM, TEMPLATES, get_template

__all__ = [
    "Cell",
    "DiagramDocument",
    "EMPTY_DIAGRAM",
    "ExtractedNode",
    "Geometry",
    "STRUCTURAL_IDS",
    "TEMPLATES",
    "convert_to_legal_xml",
    "delete_node",
    "extract_node_by_id",
    "extract_nodes",
    "get_template",
    "parse_document",
    "replace_nodes",
]
