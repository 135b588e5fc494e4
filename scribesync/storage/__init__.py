"""Server-side storage: chunk files and the session ledger."""

from .chunk_store import ChunkStore, chunk_filename
from .ledger import SessionLedger, InMemorySessionLedger
from .json_ledger import JsonFileSessionLedger

__all__ = [
    "ChunkStore",
    "chunk_filename",
    "SessionLedger",
    "InMemorySessionLedger",
    "JsonFileSessionLedger",
]
