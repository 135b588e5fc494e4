"""Server-side session and chunk records."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SessionStatus(Enum):
    """Lifecycle status of a ledger session."""
    ACTIVE = "active"


@dataclass
class Chunk:
    """One uploaded chunk of a session."""
    session_id: str
    chunk_number: int
    filename: str
    size: int
    storage_path: str
    uploaded_at: datetime = field(default_factory=datetime.now)
    confirmed: bool = False
    confirmed_at: Optional[datetime] = None
    checksum: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the wire field names."""
        return {
            "sessionId": self.session_id,
            "chunkNumber": self.chunk_number,
            "filename": self.filename,
            "size": self.size,
            "storagePath": self.storage_path,
            "uploadedAt": self.uploaded_at.isoformat(),
            "confirmed": self.confirmed,
            "confirmedAt": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        confirmed_at = data.get("confirmedAt")
        return cls(
            session_id=data["sessionId"],
            chunk_number=int(data["chunkNumber"]),
            filename=data["filename"],
            size=int(data["size"]),
            storage_path=data.get("storagePath", ""),
            uploaded_at=datetime.fromisoformat(data["uploadedAt"]),
            confirmed=bool(data.get("confirmed", False)),
            confirmed_at=datetime.fromisoformat(confirmed_at) if confirmed_at else None,
            checksum=data.get("checksum"),
        )


@dataclass
class Session:
    """A recording session tracked by the ledger.

    ``chunks`` keeps insertion order, which is arrival order at the server
    and may differ from chunk-number order when retries resolve out of order.
    """
    session_id: str
    created_at: datetime = field(default_factory=datetime.now)
    status: SessionStatus = SessionStatus.ACTIVE
    chunks: List[Chunk] = field(default_factory=list)

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    def find_chunk(self, chunk_number: int) -> Optional[Chunk]:
        for chunk in self.chunks:
            if chunk.chunk_number == chunk_number:
                return chunk
        return None

    def snapshot(self) -> "Session":
        """Return a deep copy detached from ledger state."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "createdAt": self.created_at.isoformat(),
            "status": self.status.value,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "totalChunks": self.total_chunks,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            session_id=data["sessionId"],
            created_at=datetime.fromisoformat(data["createdAt"]),
            status=SessionStatus(data.get("status", "active")),
            chunks=[Chunk.from_dict(c) for c in data.get("chunks", [])],
        )


@dataclass
class ChunkUpload:
    """An uploaded file staged on disk, not yet committed to a session."""
    filename: str
    size: int
    staged_path: str
