"""Data models for the scribe-sync application."""

from .session import Session, Chunk, ChunkUpload, SessionStatus
from .chunk import ChunkFile, ChunkStatus, PendingUpload, UploadStage
from .recording import RecordingState, RecordingEvent
from .results import ErrorKind, TransferResult
from .events import InterruptedRecording

__all__ = [
    "Session",
    "Chunk",
    "ChunkUpload",
    "SessionStatus",
    "ChunkFile",
    "ChunkStatus",
    "PendingUpload",
    "UploadStage",
    "RecordingState",
    "RecordingEvent",
    "ErrorKind",
    "TransferResult",
    "InterruptedRecording",
]
