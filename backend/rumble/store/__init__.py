from rumble.store.document import SCHEMA_VERSION, BattleDocument, parse_document, upgrade_document
from rumble.store.repository import BattleStore
from rumble.store.storage import DocumentCorruptError, DocumentStorage, FileDocumentStorage, InMemoryDocumentStorage

__all__ = [
    "SCHEMA_VERSION",
    "BattleDocument",
    "BattleStore",
    "DocumentCorruptError",
    "DocumentStorage",
    "FileDocumentStorage",
    "InMemoryDocumentStorage",
    "parse_document",
    "upgrade_document",
]
