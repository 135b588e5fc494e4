"""Client-side chunk files and their upload bookkeeping."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class UploadStage(Enum):
    """Which request a pending chunk still needs."""
    UPLOAD = "upload"
    CONFIRM = "confirm"


class ChunkStatus(Enum):
    """User-visible status of a chunk on the device."""
    QUEUED = "queued"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    CONFIRMED = "confirmed"
    PENDING_RETRY = "pending_retry"
    FAILED = "failed"

    @property
    def label(self) -> str:
        if self is ChunkStatus.PENDING_RETRY:
            return "pending, will retry on reconnect"
        return self.value


@dataclass
class ChunkFile:
    """A finished capture segment ready for transfer."""
    session_id: str
    chunk_number: int
    path: str
    size: int
    checksum: str
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def key(self):
        return (self.session_id, self.chunk_number)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "chunk_number": self.chunk_number,
            "path": self.path,
            "size": self.size,
            "checksum": self.checksum,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkFile":
        return cls(
            session_id=data["session_id"],
            chunk_number=int(data["chunk_number"]),
            path=data["path"],
            size=int(data["size"]),
            checksum=data["checksum"],
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass
class PendingUpload:
    """A chunk whose upload or confirmation exhausted its attempts."""
    chunk: ChunkFile
    stage: UploadStage = UploadStage.UPLOAD
    attempts: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk": self.chunk.to_dict(),
            "stage": self.stage.value,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingUpload":
        return cls(
            chunk=ChunkFile.from_dict(data["chunk"]),
            stage=UploadStage(data.get("stage", "upload")),
            attempts=int(data.get("attempts", 0)),
            last_error=data.get("last_error"),
        )
