"""Services layer for scribe-sync application logic."""

from .recording_service import RecordingService

__all__ = [
    "RecordingService"
]
