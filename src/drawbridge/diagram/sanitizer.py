"""Repair loosely-formed fragments emitted by the assistant into root-wrapped markup."""

from __future__ import annotations

import logging
import re
from xml.etree import ElementTree as ET

from ..errors import MalformedDocument, SanitizationFailure
from .codec import local_name
from .document_model import CELL_TAGS, parse_document

__all__ = ["convert_to_legal_xml", "has_root_wrapper"]

LOGGER = logging.getLogger(__name__)

_WRAPPER_PATTERN = re.compile(r"<(mxfile|mxGraphModel|root)[\s/>]")
_FENCE_PATTERN = re.compile(r"^\s*```[\w-]*\s*$", re.MULTILINE)
_CELL_START_PATTERN = re.compile(r"<(?:%s)\b" % "|".join(CELL_TAGS))


def has_root_wrapper(fragment: str) -> bool:
    """True when ``fragment`` carries a ``<root>`` container or a full document envelope."""

    return bool(_WRAPPER_PATTERN.search(fragment))


def _strip_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", text)


def _trim_markup(text: str, start: int) -> str:
    end = text.rfind(">")
    if end < start:
        return ""
    return text[start : end + 1]


def _ensure_well_formed(markup: str) -> ET.Element:
    try:
        return ET.fromstring(markup)
    except ET.ParseError as exc:
        raise SanitizationFailure(f"Fragment is not well-formed: {exc}", cause="parse") from exc


def convert_to_legal_xml(fragment: str) -> str:
    """Return ``fragment`` wrapped in exactly one ``<root>`` container.

    Already-wrapped input and full ``mxfile``/``mxGraphModel`` documents pass
    through (minus surrounding chatter), so the transform is idempotent. Raises :class:`SanitizationFailure` when wrapping
    cannot make the fragment well-formed.
    """

    text = _strip_fences(fragment or "").strip()
    if not text:
        raise SanitizationFailure("Fragment is empty", cause="empty")

    wrapper = _WRAPPER_PATTERN.search(text)
    if wrapper is not None:
        markup = _trim_markup(text, wrapper.start())
        if wrapper.group(1) == "root":
            _ensure_well_formed(markup)
            return markup
        try:
            parse_document(markup)
        except MalformedDocument as exc:
            raise SanitizationFailure(f"Document envelope is unusable: {exc}", cause="envelope") from exc
        return markup

    match = _CELL_START_PATTERN.search(text)
    if match is None:
        raise SanitizationFailure("Fragment contains no cell elements", cause="no_cells")
    body = _trim_markup(text, match.start())
    wrapped = f"<root>\n{body}\n</root>"
    root = _ensure_well_formed(wrapped)
    if not any(local_name(child.tag) in CELL_TAGS for child in root):
        raise SanitizationFailure("Fragment contains no cell elements", cause="no_cells")
    LOGGER.debug("Wrapped %d fragment element(s) in <root>", len(root))
    return wrapped
