"""Explicit success/failure values returned by the transfer client."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """Why a request failed."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    SERVER = "server"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.TRANSIENT, ErrorKind.SERVER)


@dataclass
class TransferResult:
    """Outcome of one request against the ledger server.

    Truthiness mirrors ``ok`` so callers may keep treating a falsy result
    as "failed, decide whether to retry".
    """
    ok: bool
    value: Any = None
    error: Optional[ErrorKind] = None
    message: str = ""
    status: Optional[int] = None

    def __bool__(self) -> bool:
        return self.ok

    @property
    def retryable(self) -> bool:
        return not self.ok and self.error is not None and self.error.retryable

    @classmethod
    def success(cls, value: Any = None, status: int = 200) -> "TransferResult":
        return cls(ok=True, value=value, status=status)

    @classmethod
    def failure(cls, error: ErrorKind, message: str,
                status: Optional[int] = None) -> "TransferResult":
        return cls(ok=False, error=error, message=message, status=status)
