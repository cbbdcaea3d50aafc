"""Named-blob persistence used by the history and node library."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from ..errors import StorageCorruption
from ..utils.file_io import write_text

__all__ = ["BlobStore", "FileBlobStore", "MemoryBlobStore", "decode_blob", "encode_blob"]

LOGGER = logging.getLogger(__name__)
_BLOB_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


@runtime_checkable
class BlobStore(Protocol):
    """Persist and read a named text blob."""

    def read(self, name: str) -> str | None:
        ...

    def write(self, name: str, body: str) -> None:
        ...

    def delete(self, name: str) -> None:
        ...


class FileBlobStore:
    """Stores each blob as ``<directory>/<name>.json`` with atomic replacement."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, name: str) -> Path:
        if not _BLOB_NAME.match(name):
            raise ValueError(f"Invalid blob name: {name!r}")
        return self._directory / f"{name}.json"

    def read(self, name: str) -> str | None:
        path = self.path_for(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            LOGGER.warning("Blob %s is not UTF-8 text: %s", path, exc)
            return ""

    def write(self, name: str, body: str) -> None:
        write_text(self.path_for(name), body)

    def delete(self, name: str) -> None:
        self.path_for(name).unlink(missing_ok=True)


class MemoryBlobStore:
    """In-process blob store for tests and throwaway sessions."""

    def __init__(self, blobs: dict[str, str] | None = None) -> None:
        self.blobs: dict[str, str] = dict(blobs or {})

    def read(self, name: str) -> str | None:
        return self.blobs.get(name)

    def write(self, name: str, body: str) -> None:
        self.blobs[name] = body

    def delete(self, name: str) -> None:
        self.blobs.pop(name, None)


def encode_blob(entries: list[dict[str, Any]]) -> str:
    return json.dumps(entries, ensure_ascii=False, indent=2)


def decode_blob(name: str, raw: str, schema: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Decode a stored JSON list and validate it against ``schema``.

    Raises :class:`StorageCorruption` for anything unreadable.
    """

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StorageCorruption(f"Blob {name!r} is not valid JSON: {exc}", cause="json") from exc
    try:
        Draft202012Validator(schema).validate(payload)
    except ValidationError as exc:
        raise StorageCorruption(
            f"Blob {name!r} does not match its schema: {exc.message}",
            cause="schema",
            details={"path": list(exc.absolute_path)},
        ) from exc
    return list(payload)
