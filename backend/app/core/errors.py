"""Application Error — the one failure type raised by request-scoped code.

Invariants:
    - status is derived from status_code once, at construction, and never changes
    - status == "fail" iff str(status_code) starts with "4", otherwise "error"
    - Construction never fails; stack is stored verbatim or captured on the spot
    - errors/code hold only JSON-serializable values (copied into responses as-is)

Design Decisions:
    - Single flat class, no subclass tree: callers vary status_code/code instead
      of picking a subclass
    - ErrorKind mirrors is_operational for log routing (operational → warning,
      programming → error)
"""

import traceback
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Whether a failure was anticipated or is a defect."""
    OPERATIONAL = "operational"
    PROGRAMMING = "programming"


class AppError(Exception):
    """Failure carrying an HTTP status and an operational/programming flag."""

    def __init__(
        self,
        status_code: int,
        message: str,
        is_operational: bool = True,
        stack: str = "",
        *,
        errors: Any = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self._status_code = status_code
        self._status = "fail" if str(status_code).startswith("4") else "error"
        self.message = message
        self.is_operational = is_operational
        self.errors = errors
        self.code = code
        if stack:
            self.stack = stack
        else:
            # Drop this frame so the trace ends at the caller
            self.stack = "".join(traceback.format_stack()[:-1])

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def status(self) -> str:
        return self._status

    @property
    def kind(self) -> ErrorKind:
        if self.is_operational:
            return ErrorKind.OPERATIONAL
        return ErrorKind.PROGRAMMING

    def __repr__(self) -> str:
        return (
            f"AppError(status_code={self._status_code!r}, "
            f"message={self.message!r}, is_operational={self.is_operational!r})"
        )
