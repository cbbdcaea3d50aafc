"""Atomic file writes shared by the blob store and the export sink."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

__all__ = ["safe_filename", "write_bytes", "write_text"]

LOGGER = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")
_REPLACE_ATTEMPTS = 3


def _replace_with_retry(source: str, target: Path) -> None:
    # os.replace fails transiently on Windows while another process holds the target open.
    retrying = Retrying(
        reraise=True,
        stop=stop_after_attempt(_REPLACE_ATTEMPTS),
        wait=wait_exponential(multiplier=0.05, max=0.5),
        retry=retry_if_exception_type(PermissionError),
    )
    for attempt in retrying:
        with attempt:
            os.replace(source, target)


def write_bytes(path: Path | str, data: bytes) -> Path:
    """Write ``data`` through a temp file in the same directory, then swap it in."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    descriptor, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(descriptor, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        _replace_with_retry(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):
            try:
                os.unlink(tmp_name)
            except OSError as exc:  # pragma: no cover - cleanup path
                LOGGER.debug("Unable to remove temp file %s: %s", tmp_name, exc)
    return target


def write_text(path: Path | str, content: str, *, encoding: str = "utf-8") -> Path:
    return write_bytes(path, content.encode(encoding))


def safe_filename(name: str, suffix: str = "", *, fallback: str = "node") -> str:
    """Replace every non-alphanumeric character of ``name`` with ``_``."""

    stem = _UNSAFE_CHARS.sub("_", name or "") or fallback
    return f"{stem}{suffix}"
