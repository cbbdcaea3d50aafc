"""Starter diagrams offered when a session begins or the canvas is cleared."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["EMPTY_DIAGRAM", "DiagramTemplate", "TEMPLATES", "get_template"]

EMPTY_DIAGRAM = (
    '<mxfile><diagram name="Page-1" id="page-1"><mxGraphModel><root>'
    '<mxCell id="0"/><mxCell id="1" parent="0"/>'
    "</root></mxGraphModel></diagram></mxfile>"
)


@dataclass(slots=True, frozen=True)
class DiagramTemplate:
    id: str
    name: str
    description: str
    xml: str


def _page(cells: str) -> str:
    return (
        '<mxfile><diagram name="Page-1" id="page-1"><mxGraphModel><root>'
        f'<mxCell id="0"/><mxCell id="1" parent="0"/>{cells}'
        "</root></mxGraphModel></diagram></mxfile>"
    )


TEMPLATES: tuple[DiagramTemplate, ...] = (
    DiagramTemplate(
        id="blank",
        name="Blank",
        description="An empty canvas.",
        xml=EMPTY_DIAGRAM,
    ),
    DiagramTemplate(
        id="flowchart",
        name="Flowchart",
        description="Start, one process step and an end, connected top to bottom.",
        xml=_page(
            '<mxCell id="start" value="Start" style="ellipse;whiteSpace=wrap;html=1;" vertex="1" parent="1">'
            '<mxGeometry x="160" y="40" width="120" height="60" as="geometry"/></mxCell>'
            '<mxCell id="step" value="Process" style="rounded=1;whiteSpace=wrap;html=1;" vertex="1" parent="1">'
            '<mxGeometry x="160" y="140" width="120" height="60" as="geometry"/></mxCell>'
            '<mxCell id="end" value="End" style="ellipse;whiteSpace=wrap;html=1;" vertex="1" parent="1">'
            '<mxGeometry x="160" y="240" width="120" height="60" as="geometry"/></mxCell>'
            '<mxCell id="start-step" style="edgeStyle=orthogonalEdgeStyle;html=1;" edge="1" parent="1" '
            'source="start" target="step"><mxGeometry relative="1" as="geometry"/></mxCell>'
            '<mxCell id="step-end" style="edgeStyle=orthogonalEdgeStyle;html=1;" edge="1" parent="1" '
            'source="step" target="end"><mxGeometry relative="1" as="geometry"/></mxCell>'
        ),
    ),
    DiagramTemplate(
        id="client-server",
        name="Client / Server",
        description="A client talking to a server backed by a database.",
        xml=_page(
            '<mxCell id="client" value="Client" style="rounded=1;whiteSpace=wrap;html=1;" vertex="1" parent="1">'
            '<mxGeometry x="40" y="120" width="120" height="60" as="geometry"/></mxCell>'
            '<mxCell id="server" value="Server" style="rounded=1;whiteSpace=wrap;html=1;" vertex="1" parent="1">'
            '<mxGeometry x="240" y="120" width="120" height="60" as="geometry"/></mxCell>'
            '<mxCell id="database" value="Database" style="shape=cylinder3;whiteSpace=wrap;html=1;" '
            'vertex="1" parent="1"><mxGeometry x="440" y="110" width="80" height="80" as="geometry"/></mxCell>'
            '<mxCell id="client-server-edge" value="HTTP" edge="1" parent="1" source="client" target="server">'
            '<mxGeometry relative="1" as="geometry"/></mxCell>'
            '<mxCell id="server-database-edge" value="SQL" edge="1" parent="1" source="server" target="database">'
            '<mxGeometry relative="1" as="geometry"/></mxCell>'
        ),
    ),
)


def get_template(template_id: str) -> DiagramTemplate | None:
    for template in TEMPLATES:
        if template.id == template_id:
            return template
    return None
