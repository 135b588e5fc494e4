"""Recording state machine values."""

from enum import Enum


class RecordingState(Enum):
    """Current state of audio recording on the device."""
    STOPPED = "stopped"
    RECORDING = "recording"
    PAUSED = "paused"
    ERROR = "error"

    @property
    def is_active(self) -> bool:
        return self is RecordingState.RECORDING


class RecordingEvent(Enum):
    """User or capture events that drive the recording state machine."""
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    CAPTURE_FAILURE = "capture_failure"
