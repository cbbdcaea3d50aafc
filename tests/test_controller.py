"""Tests for :mod:`drawbridge.controller`."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from drawbridge.controller import DiagramController, format_node_for_chat
from drawbridge.diagram.document_model import parse_document
from drawbridge.diagram.templates import EMPTY_DIAGRAM, TEMPLATES
from drawbridge.events import DiagramLoaded, ExportSaved, LibraryChanged, NoticePosted
from drawbridge.services.bridge import EditorBridge
from drawbridge.services.bridge_types import ExportStatus
from drawbridge.session import DiagramSession
from tests.helpers import BASE_DOCUMENT, FakeSurface, RecordingBus


@pytest.fixture
def controller(
    surface: FakeSurface, session: DiagramSession, bus: RecordingBus, export_dir: Path
) -> DiagramController:
    bridge = EditorBridge(surface, session, event_bus=bus, export_dir=export_dir, export_timeout=0.05)
    return DiagramController(session, bridge, event_bus=bus)


class TestDisplayFragment:
    def test_merges_fragment_and_loads_result(
        self, controller: DiagramController, session: DiagramSession, surface: FakeSurface
    ) -> None:
        session.replace_document(BASE_DOCUMENT)

        merged = controller.display_fragment('<mxCell id="A" value="Updated"/><mxCell id="B" value="New"/>')

        assert merged is not None
        assert surface.loaded == [merged]
        document = parse_document(session.document_text)
        assert [cell.label for cell in document.non_structural_cells()] == ["Updated", "New"]

    def test_first_fragment_becomes_the_document(
        self, controller: DiagramController, session: DiagramSession
    ) -> None:
        controller.display_fragment('```xml\n<mxCell id="A" value="Hello"/>\n```')

        assert parse_document(session.document_text).non_structural_ids() == ["A"]

    def test_rejected_fragment_keeps_previous_document(
        self, controller: DiagramController, session: DiagramSession, surface: FakeSurface, bus: RecordingBus
    ) -> None:
        session.replace_document(BASE_DOCUMENT)

        assert controller.display_fragment("I could not draw that, sorry.") is None

        assert session.document_text == BASE_DOCUMENT
        assert surface.loaded == []
        assert bus.of_type(NoticePosted)[0].level == "error"


class TestDeleteNode:
    def test_deletes_and_reloads(
        self, controller: DiagramController, session: DiagramSession, bus: RecordingBus
    ) -> None:
        session.replace_document(BASE_DOCUMENT)

        assert controller.delete_node("A")

        assert parse_document(session.document_text).non_structural_ids() == []
        assert bus.of_type(DiagramLoaded)[-1].reason == "delete"

    def test_structural_delete_posts_notice(
        self, controller: DiagramController, session: DiagramSession, bus: RecordingBus
    ) -> None:
        session.replace_document(BASE_DOCUMENT)

        assert not controller.delete_node("1")
        assert session.document_text == BASE_DOCUMENT
        assert bus.of_type(NoticePosted)

    def test_unknown_node_is_reported(self, controller: DiagramController, session: DiagramSession) -> None:
        session.replace_document(BASE_DOCUMENT)

        assert not controller.delete_node("ghost")


class TestChatAndSelection:
    def test_node_for_chat_formats_label_and_xml(
        self, controller: DiagramController, session: DiagramSession
    ) -> None:
        session.replace_document(BASE_DOCUMENT)

        message = controller.node_for_chat("A")

        assert message is not None
        assert message.startswith("Node: Start\n```xml\n<mxCell")
        assert message.endswith("\n```")

    def test_node_for_chat_missing_node(self, controller: DiagramController, session: DiagramSession) -> None:
        session.replace_document(BASE_DOCUMENT)

        assert controller.node_for_chat("missing") is None

    def test_format_uses_given_label(self) -> None:
        assert format_node_for_chat("X", "<mxCell/>") == "Node: X\n```xml\n<mxCell/>\n```"

    def test_selected_node_id_uses_fallback(
        self, controller: DiagramController, session: DiagramSession, surface: FakeSurface
    ) -> None:
        session.replace_document(BASE_DOCUMENT)

        assert asyncio.run(controller.selected_node_id()) == "A"
        assert surface.selection_queries == 1


class TestLibraryActions:
    def test_save_current_nodes_twice_is_deduplicated(
        self, controller: DiagramController, session: DiagramSession, bus: RecordingBus
    ) -> None:
        session.replace_document(BASE_DOCUMENT)

        first = controller.save_current_nodes()
        second = controller.save_current_nodes()

        assert [cell.id for cell in first] == ["A"]
        assert second == []
        assert len(session.library) == 1
        assert len(bus.of_type(LibraryChanged)) == 1

    def test_save_without_document_posts_notice(self, controller: DiagramController, bus: RecordingBus) -> None:
        assert controller.save_current_nodes() == []
        assert bus.of_type(NoticePosted)

    def test_add_saved_node_merges_into_live_document(
        self, controller: DiagramController, session: DiagramSession
    ) -> None:
        session.replace_document(BASE_DOCUMENT)
        controller.save_current_nodes()
        controller.clear_diagram()

        merged = controller.add_saved_node("A")

        assert merged is not None
        assert parse_document(session.document_text).non_structural_ids() == ["A"]

    def test_add_saved_node_requires_live_document(
        self, controller: DiagramController, session: DiagramSession, bus: RecordingBus
    ) -> None:
        session.replace_document(BASE_DOCUMENT)
        controller.save_current_nodes()
        session.replace_document("")

        assert controller.add_saved_node("A") is None
        assert bus.of_type(NoticePosted)[-1].level == "warning"

    def test_export_saved_node_writes_sanitized_filename(
        self, controller: DiagramController, session: DiagramSession, bus: RecordingBus, tmp_path: Path
    ) -> None:
        session.replace_document(BASE_DOCUMENT.replace('value="Start"', 'value="Start / end"'))
        controller.save_current_nodes()

        path = controller.export_saved_node("A", tmp_path)

        assert path == tmp_path / "Start___end.xml"
        assert path.read_text(encoding="utf-8").startswith('<mxCell id="A"')
        assert bus.of_type(ExportSaved)[-1].path == str(path)

    def test_missing_saved_node(self, controller: DiagramController) -> None:
        assert controller.export_saved_node("nope") is None
        assert controller.add_saved_node("nope") is None
        assert not controller.delete_saved_node("nope")


class TestDocumentActions:
    def test_clear_diagram_keeps_history(
        self, controller: DiagramController, session: DiagramSession, surface: FakeSurface
    ) -> None:
        controller.bridge.handle_export_event({"data": BASE_DOCUMENT})

        controller.clear_diagram()

        assert session.document_text == EMPTY_DIAGRAM
        assert surface.loaded == [EMPTY_DIAGRAM]
        assert len(session.history) == 1

    def test_restore_version(self, controller: DiagramController, session: DiagramSession) -> None:
        controller.bridge.handle_export_event({"data": BASE_DOCUMENT})
        controller.clear_diagram()

        assert controller.restore_version(0)
        assert session.document_text == BASE_DOCUMENT
        assert not controller.restore_version(3)

    @pytest.mark.parametrize("template", TEMPLATES, ids=lambda template: template.id)
    def test_load_template(self, controller: DiagramController, session: DiagramSession, template) -> None:
        assert controller.load_template(template.id)
        assert session.document_text == template.xml

    def test_unknown_template(self, controller: DiagramController, bus: RecordingBus) -> None:
        assert not controller.load_template("nope")
        assert bus.of_type(NoticePosted)

    def test_export_times_out_without_reply(self, controller: DiagramController, surface: FakeSurface) -> None:
        outcome = asyncio.run(controller.export("png"))

        assert outcome is not None and outcome.status is ExportStatus.TIMED_OUT
        assert surface.exports == ["png"]

    def test_export_rejects_unknown_format(self, controller: DiagramController, bus: RecordingBus) -> None:
        assert asyncio.run(controller.export("gif")) is None
        assert bus.of_type(NoticePosted)
