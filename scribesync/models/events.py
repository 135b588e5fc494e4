"""Pub/sub topics and event payloads."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

CHUNK_READY_TOPIC = "chunk_ready"
NETWORK_AVAILABLE_TOPIC = "network_available"
RECORDING_STATE_TOPIC = "recording_state"
RECORDING_INTERRUPTED_TOPIC = "recording_interrupted"


@dataclass
class InterruptedRecording:
    """Notice raised after restart when a recording was still intended to run.

    Capture cannot continue across a reboot, so this only tells the user the
    session ended early; chunks already on disk are still uploaded.
    """
    session_id: Optional[str]
    last_active_at: Optional[datetime]
    detected_at: datetime = field(default_factory=datetime.now)

    @property
    def message(self) -> str:
        when = self.last_active_at.strftime("%Y-%m-%d %H:%M:%S") if self.last_active_at else "unknown time"
        return f"Recording {self.session_id or '(unknown session)'} was interrupted at {when}"
