"""Tests for :mod:`drawbridge.diagram.sanitizer`."""

from __future__ import annotations

from xml.etree import ElementTree as ET

import pytest

from drawbridge.diagram.codec import compress_diagram
from drawbridge.diagram.document_model import parse_document
from drawbridge.diagram.sanitizer import convert_to_legal_xml, has_root_wrapper
from drawbridge.errors import SanitizationFailure


class TestConvertToLegalXml:
    """Wrapping assistant fragments in a single <root> container."""

    def test_wraps_bare_cells(self) -> None:
        result = convert_to_legal_xml('<mxCell id="A" parent="1"/><mxCell id="B" parent="1"/>')

        root = ET.fromstring(result)
        assert root.tag == "root"
        assert [child.get("id") for child in root] == ["A", "B"]

    def test_keeps_existing_root(self) -> None:
        fragment = '<root><mxCell id="A" parent="1"/></root>'

        assert convert_to_legal_xml(fragment) == fragment

    def test_strips_chatter_and_code_fences(self) -> None:
        fragment = 'Here you go:\n```xml\n<mxCell id="A" value="x" parent="1"/>\n```\nEnjoy!'

        root = ET.fromstring(convert_to_legal_xml(fragment))

        assert [child.get("id") for child in root] == ["A"]

    def test_chatter_with_angle_brackets_before_root(self) -> None:
        fragment = 'If a<b then use:\n<root><mxCell id="B" value="x" parent="1"/></root>'

        assert convert_to_legal_xml(fragment) == '<root><mxCell id="B" value="x" parent="1"/></root>'

    def test_compressed_document_passes_through(self) -> None:
        model = '<mxGraphModel><root><mxCell id="0"/><mxCell id="1" parent="0"/><mxCell id="A" parent="1"/></root></mxGraphModel>'
        document = f'<mxfile><diagram id="p">{compress_diagram(model)}</diagram></mxfile>'

        result = convert_to_legal_xml(f"Here is the full diagram:\n{document}")

        assert result == document
        assert parse_document(result).non_structural_ids() == ["A"]
        assert convert_to_legal_xml(result) == result

    def test_rejects_envelope_without_cells(self) -> None:
        with pytest.raises(SanitizationFailure):
            convert_to_legal_xml("<mxGraphModel><diagram/></mxGraphModel>")

    def test_accepts_wrapper_elements(self) -> None:
        result = convert_to_legal_xml('<UserObject id="u" label="L"><mxCell parent="1"/></UserObject>')

        assert ET.fromstring(result)[0].tag == "UserObject"

    @pytest.mark.parametrize(
        "fragment",
        [
            '<mxCell id="A" parent="1"/>',
            '<root><mxCell id="A"/></root>',
            'text before <mxCell id="A"/> text after',
            "```\n<object id=\"o\"><mxCell/></object>\n```",
        ],
    )
    def test_is_idempotent(self, fragment: str) -> None:
        once = convert_to_legal_xml(fragment)

        assert convert_to_legal_xml(once) == once

    @pytest.mark.parametrize("fragment", ["", "   ", "no markup here", "<div>html</div>"])
    def test_rejects_fragments_without_cells(self, fragment: str) -> None:
        with pytest.raises(SanitizationFailure):
            convert_to_legal_xml(fragment)

    def test_rejects_unbalanced_markup(self) -> None:
        with pytest.raises(SanitizationFailure):
            convert_to_legal_xml('<mxCell id="A"><mxGeometry as="geometry"></mxCell>')


def test_has_root_wrapper() -> None:
    assert has_root_wrapper("<root>")
    assert has_root_wrapper("<root/>")
    assert has_root_wrapper("<mxfile host=\"x\">")
    assert not has_root_wrapper("<rootless/>")
    assert not has_root_wrapper('<mxCell id="root"/>')
