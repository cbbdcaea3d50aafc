"""Encoding helpers for draw.io payloads.

The rendering surface answers ``xmlsvg`` exports with a data URL of an SVG
image whose ``content`` attribute embeds the full ``mxfile``. Each ``<diagram>``
page inside that file is either inline XML or the compressed form produced by
draw.io: ``base64(raw_deflate(encodeURIComponent(xml)))``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import zlib
from dataclasses import dataclass
from urllib.parse import quote, unquote
from xml.etree import ElementTree as ET

from ..errors import MalformedDocument

__all__ = [
    "DataUrl",
    "compress_diagram",
    "decompress_diagram",
    "extract_diagram_xml",
    "inflate_pages",
    "local_name",
    "split_data_url",
    "to_data_url",
]

LOGGER = logging.getLogger(__name__)

_DATA_URL_PATTERN = re.compile(r"^data:(?P<media>[^;,]*)(?P<params>(?:;[^;,]*)*),(?P<body>.*)$", re.DOTALL)
# Characters left untouched by JavaScript's encodeURIComponent beyond the RFC 3986 unreserved set.
_URI_COMPONENT_SAFE = "!*'()"
_MODEL_TAGS = {"mxGraphModel", "root"}


@dataclass(slots=True, frozen=True)
class DataUrl:
    """Parsed ``data:`` URL."""

    media_type: str
    is_base64: bool
    body: str

    def decode(self) -> bytes:
        if self.is_base64:
            try:
                return base64.b64decode(self.body, validate=False)
            except (binascii.Error, ValueError) as exc:
                raise MalformedDocument("Data URL body is not valid base64", cause="base64") from exc
        return unquote(self.body).encode("utf-8")


def split_data_url(payload: str) -> DataUrl | None:
    """Return the parsed data URL or ``None`` when ``payload`` is not one."""

    match = _DATA_URL_PATTERN.match(payload.strip())
    if match is None:
        return None
    params = [token.strip().lower() for token in match.group("params").split(";") if token.strip()]
    media_type = match.group("media").strip().lower() or "text/plain"
    return DataUrl(media_type=media_type, is_base64="base64" in params, body=match.group("body"))


def to_data_url(data: bytes | str, media_type: str) -> str:
    """Encode ``data`` as a base64 data URL."""

    raw = data.encode("utf-8") if isinstance(data, str) else data
    return f"data:{media_type};base64,{base64.b64encode(raw).decode('ascii')}"


def compress_diagram(xml: str) -> str:
    """Return the compressed ``<diagram>`` body draw.io writes for ``xml``."""

    encoded = quote(xml, safe=_URI_COMPONENT_SAFE)
    compressor = zlib.compressobj(9, zlib.DEFLATED, -15)
    deflated = compressor.compress(encoded.encode("utf-8")) + compressor.flush()
    return base64.b64encode(deflated).decode("ascii")


def decompress_diagram(text: str) -> str:
    """Inverse of :func:`compress_diagram`."""

    try:
        raw = base64.b64decode(text.strip(), validate=False)
        inflated = zlib.decompress(raw, -15)
        return unquote(inflated.decode("utf-8"))
    except (binascii.Error, ValueError, zlib.error, UnicodeDecodeError) as exc:
        raise MalformedDocument("Compressed diagram page could not be decoded", cause="compressed_page") from exc


def local_name(tag: str) -> str:
    """Strip an ElementTree ``{namespace}`` prefix from ``tag``."""

    return tag.rsplit("}", 1)[-1] if tag.startswith("{") else tag


def inflate_pages(mxfile: ET.Element) -> ET.Element:
    """Replace compressed ``<diagram>`` bodies of ``mxfile`` with inline models."""

    for page in mxfile.iter("diagram"):
        if len(page) or not (page.text or "").strip():
            continue
        model_text = decompress_diagram(page.text or "")
        try:
            model = ET.fromstring(model_text)
        except ET.ParseError as exc:
            raise MalformedDocument("Compressed diagram page is not valid XML", cause="compressed_page") from exc
        page.text = None
        page.append(model)
    return mxfile


def extract_diagram_xml(payload: str) -> str:
    """Return the diagram markup embedded in an export ``payload``.

    Accepts a data URL (base64 or percent-encoded), raw SVG text, an ``mxfile``
    or a bare model. Raises :class:`MalformedDocument` when nothing usable is
    found.
    """

    text = (payload or "").strip()
    if not text:
        raise MalformedDocument("Export payload is empty", cause="empty")
    data_url = split_data_url(text)
    if data_url is not None:
        try:
            text = data_url.decode().decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            raise MalformedDocument(
                "Export payload is binary image data", cause="binary", details={"media_type": data_url.media_type}
            ) from exc
    try:
        element = ET.fromstring(text)
    except ET.ParseError as exc:
        raise MalformedDocument(f"Export payload is not XML: {exc}", cause="parse") from exc

    tag = local_name(element.tag)
    if tag == "svg":
        content = element.get("content")
        if not content:
            raise MalformedDocument("SVG export does not embed a diagram", cause="svg_without_content")
        return extract_diagram_xml(content)
    if tag == "mxfile":
        return ET.tostring(inflate_pages(element), encoding="unicode")
    if tag in _MODEL_TAGS:
        return text
    raise MalformedDocument(f"Unexpected export root element <{tag}>", cause="unexpected_root")
