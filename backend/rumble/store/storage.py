"""Whole-document storage backends for the battle store."""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from shared.storage import write_atomic


class DocumentCorruptError(OSError):
    """A persisted document exists but could not be read or parsed."""


class DocumentStorage(ABC):
    """Whole-document read and overwrite.

    Implementations can use files, a key-value service, etc. The battle store
    serializes access, so implementations need no locking of their own.
    """

    @abstractmethod
    def load(self) -> dict[str, Any] | None:
        """Return the stored document, None when nothing was stored yet.

        Raises DocumentCorruptError when stored data cannot be parsed.
        """

    @abstractmethod
    def save(self, document: dict[str, Any]) -> None: ...


def encode_document(document: dict[str, Any]) -> bytes:
    return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")


def decode_document(content: bytes | str, source: str) -> dict[str, Any]:
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DocumentCorruptError(f"Failed to parse battle document from {source}") from exc
    if not isinstance(data, dict):
        raise DocumentCorruptError(f"Expected JSON object at root in {source}")
    return data


class FileDocumentStorage(DocumentStorage):
    """Stores the document as a single JSON file with atomic replacement."""

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)

    @property
    def path(self) -> Path:
        return self._file_path

    def load(self) -> dict[str, Any] | None:
        if not self._file_path.exists():
            return None
        try:
            content = self._file_path.read_bytes()
        except OSError as exc:
            raise DocumentCorruptError(f"Failed to read battle document from {self._file_path}") from exc
        return decode_document(content, str(self._file_path))

    def save(self, document: dict[str, Any]) -> None:
        write_atomic(self._file_path, encode_document(document))


class InMemoryDocumentStorage(DocumentStorage):
    """Keeps the encoded document in memory. Used by tests and offline simulation."""

    def __init__(self, initial: bytes | None = None) -> None:
        self.content: bytes | None = initial
        self.save_count = 0

    def load(self) -> dict[str, Any] | None:
        if self.content is None:
            return None
        return decode_document(self.content, "memory")

    def save(self, document: dict[str, Any]) -> None:
        self.content = encode_document(document)
        self.save_count += 1
