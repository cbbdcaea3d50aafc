"""User-level diagram actions.

Each action reads the live document from the session, runs it through the
sanitizer, merge engine, or stores, and hands the result to the bridge. A
failed action leaves the session untouched and posts a :class:`NoticePosted`
event instead of raising.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .diagram.extractor import extract_node_by_id, extract_nodes
from .diagram.merge import delete_node, replace_nodes
from .diagram.sanitizer import convert_to_legal_xml
from .diagram.templates import EMPTY_DIAGRAM, get_template
from .errors import MergeFailure, SanitizationFailure
from .events import EventBus, ExportSaved, NoticePosted
from .services.bridge import EditorBridge
from .services.bridge_types import ExportFormat, ExportOutcome
from .services.library import SavedCell
from .session import DiagramSession
from .utils.file_io import safe_filename, write_text

__all__ = ["DiagramController", "format_node_for_chat"]

LOGGER = logging.getLogger(__name__)
_NODE_MEDIA_TYPE = "text/xml"


def format_node_for_chat(label: str, node_xml: str) -> str:
    """Render a node as the chat message inserted by "add to chat"."""

    return f"Node: {label}\n```xml\n{node_xml}\n```"


class DiagramController:
    """Funnels every user action through the merge engine and the stores."""

    def __init__(
        self,
        session: DiagramSession,
        bridge: EditorBridge,
        *,
        event_bus: EventBus | None = None,
    ) -> None:
        self._session = session
        self._bridge = bridge
        self._bus = event_bus

    @property
    def session(self) -> DiagramSession:
        return self._session

    @property
    def bridge(self) -> EditorBridge:
        return self._bridge

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def display_fragment(self, fragment: str) -> str | None:
        """Merge an assistant fragment into the live document and show it.

        Returns the merged document, or ``None`` when the fragment was rejected.
        """

        try:
            legal = convert_to_legal_xml(fragment)
            merged = replace_nodes(self._session.document_text, legal)
        except (SanitizationFailure, MergeFailure) as exc:
            LOGGER.warning("Rejected diagram fragment: %s", exc)
            self._notice(f"Could not apply the diagram update: {exc}", level="error")
            return None
        self._bridge.load_document(merged, reason="fragment")
        return merged

    def delete_node(self, node_id: str) -> bool:
        try:
            updated = delete_node(self._session.document_text, node_id)
        except MergeFailure as exc:
            LOGGER.warning("Delete of %s failed: %s", node_id, exc)
            self._notice(f"Could not delete node {node_id}: {exc}", level="error")
            return False
        if updated == self._session.document_text:
            self._notice(f"Node {node_id} is not part of the diagram.", level="info")
            return False
        self._bridge.load_document(updated, reason="delete")
        return True

    def load_template(self, template_id: str) -> bool:
        template = get_template(template_id)
        if template is None:
            self._notice(f"Unknown template: {template_id}", level="error")
            return False
        self._bridge.load_document(template.xml, reason=f"template:{template.id}")
        return True

    def clear_diagram(self) -> None:
        """Replace the canvas with the empty diagram; history is kept."""

        self._bridge.load_document(EMPTY_DIAGRAM, reason="clear")

    def restore_version(self, index: int) -> bool:
        try:
            version = self._session.history.get(index)
        except IndexError:
            self._notice(f"No version at position {index}.", level="error")
            return False
        self._bridge.load_document(version.document_text, reason="restore")
        return True

    # ------------------------------------------------------------------
    # Selection and chat
    # ------------------------------------------------------------------
    async def selected_node_id(self) -> str | None:
        return await self._bridge.selected_cell_id()

    def node_for_chat(self, node_id: str) -> str | None:
        """Return the chat message for ``node_id`` or ``None`` when it is missing."""

        document = self._session.document()
        node_xml = extract_node_by_id(document, node_id) if document is not None else None
        if node_xml is None:
            self._notice(f"Node {node_id} was not found in the diagram.", level="info")
            return None
        cell = document.find_cell(node_id) if document is not None else None
        label = (cell.label if cell is not None else "") or node_id
        return format_node_for_chat(label, node_xml)

    # ------------------------------------------------------------------
    # Library
    # ------------------------------------------------------------------
    def save_current_nodes(self) -> list[SavedCell]:
        document = self._session.document()
        if document is None:
            self._notice("There is no diagram to save nodes from.", level="info")
            return []
        nodes = extract_nodes(document)
        if not nodes:
            self._notice("The diagram has no nodes to save.", level="info")
            return []
        added = self._session.library.add_many(nodes)
        LOGGER.info("Saved %d of %d node(s) to the library", len(added), len(nodes))
        return added

    def add_saved_node(self, node_id: str) -> str | None:
        """Merge a saved cell back into the live document."""

        saved = self._session.library.get(node_id)
        if saved is None:
            self._notice(f"Saved node {node_id} does not exist.", level="error")
            return None
        if not self._session.has_document:
            self._notice("Create a diagram before adding saved nodes.", level="warning")
            return None
        try:
            merged = replace_nodes(self._session.document_text, convert_to_legal_xml(saved.document_text))
        except (SanitizationFailure, MergeFailure) as exc:
            LOGGER.warning("Adding saved node %s failed: %s", node_id, exc)
            self._notice(f"Could not add node {saved.display_name}: {exc}", level="error")
            return None
        self._bridge.load_document(merged, reason="saved-node")
        return merged

    def export_saved_node(self, node_id: str, directory: Path | str | None = None) -> Path | None:
        saved = self._session.library.get(node_id)
        if saved is None:
            self._notice(f"Saved node {node_id} does not exist.", level="error")
            return None
        target_dir = Path(directory).expanduser() if directory is not None else self._bridge.export_dir
        target = target_dir / safe_filename(saved.display_name, ".xml")
        try:
            write_text(target, saved.document_text)
        except OSError as exc:
            LOGGER.warning("Unable to export node %s: %s", node_id, exc)
            self._notice(f"Could not export node {saved.display_name}: {exc}", level="error")
            return None
        if self._bus is not None:
            self._bus.publish(ExportSaved(path=str(target), media_type=_NODE_MEDIA_TYPE))
        return target

    def delete_saved_node(self, node_id: str) -> bool:
        return self._session.library.delete(node_id)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    async def export(self, export_format: ExportFormat | str = ExportFormat.CONTEXT) -> ExportOutcome | None:
        try:
            export_format = ExportFormat.parse(export_format)
        except ValueError as exc:
            self._notice(str(exc), level="error")
            return None
        outcome = await self._bridge.request_export(export_format)
        if not outcome.resolved:
            LOGGER.info("Export %d ended as %s", outcome.token, outcome.status.value)
        return outcome

    def _notice(self, message: str, *, level: str = "warning") -> None:
        if self._bus is not None:
            self._bus.publish(NoticePosted(message=message, level=level))
        else:
            LOGGER.info("Notice (%s): %s", level, message)
