"""Error taxonomy shared by the ledger server and the upload client."""


class ScribeSyncError(Exception):
    """Base class for all scribe-sync errors.

    Subclasses carry the HTTP status the server answers with when the
    error escapes a request handler.
    """
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ScribeSyncError):
    """A required field is missing or malformed."""
    status = 400


class NotFoundError(ScribeSyncError):
    """Unknown session or chunk."""
    status = 404


class TransientTransportError(ScribeSyncError):
    """Network failure or timeout talking to the ledger server."""
    status = 503


class InvalidStateTransition(ScribeSyncError):
    """A recording event is not allowed from the current state."""
    status = 409

    def __init__(self, state, event):
        super().__init__(f"Cannot apply '{event.value}' while {state.value}")
        self.state = state
        self.event = event
