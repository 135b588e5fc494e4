"""Pure transition function for the recording state machine."""

from dataclasses import dataclass
from typing import Optional

from ..errors import InvalidStateTransition
from ..models.recording import RecordingEvent, RecordingState

S = RecordingState
E = RecordingEvent

TRANSITIONS = {
    (S.STOPPED, E.START): S.RECORDING,
    (S.ERROR, E.START): S.RECORDING,
    (S.RECORDING, E.PAUSE): S.PAUSED,
    (S.PAUSED, E.RESUME): S.RECORDING,
    (S.RECORDING, E.STOP): S.STOPPED,
    (S.PAUSED, E.STOP): S.STOPPED,
}


@dataclass(frozen=True)
class TransitionResult:
    """New state, or the unchanged state plus the reason the event was rejected."""
    previous: RecordingState
    state: RecordingState
    error: Optional[InvalidStateTransition] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok


def transition(current: RecordingState, event: RecordingEvent) -> TransitionResult:
    """Apply an event to a state without side effects.

    A capture failure moves any state to ERROR. Events not listed in
    TRANSITIONS are rejected and leave the state unchanged.
    """
    if event is E.CAPTURE_FAILURE:
        return TransitionResult(current, S.ERROR)

    target = TRANSITIONS.get((current, event))
    if target is None:
        return TransitionResult(current, current, InvalidStateTransition(current, event))
    return TransitionResult(current, target)


def can_apply(current: RecordingState, event: RecordingEvent) -> bool:
    return transition(current, event).ok
