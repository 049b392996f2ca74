"""
Result objects returned by the auth service.

Expected failures (bad credentials, duplicate email, stale tokens) are values,
not exceptions: callers branch on `result.ok` and map `result.code` to an HTTP
status. `Err.internal` carries the real cause for the log and is never sent
to a client.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    EMAIL_IN_USE = "EMAIL_IN_USE"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    INVALID_OR_EXPIRED_TOKEN = "INVALID_OR_EXPIRED_TOKEN"
    INTERNAL_ERROR = "INTERNAL_ERROR"


DEFAULT_STATUS = {
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.EMAIL_IN_USE: 409,
    ErrorKind.AUTHENTICATION_FAILED: 401,
    ErrorKind.INVALID_REFRESH_TOKEN: 401,
    ErrorKind.INVALID_OR_EXPIRED_TOKEN: 400,
    ErrorKind.INTERNAL_ERROR: 500,
}

DEFAULT_MESSAGE = {
    ErrorKind.VALIDATION_ERROR: "Required fields missing.",
    ErrorKind.EMAIL_IN_USE: "Email already in use",
    ErrorKind.AUTHENTICATION_FAILED: "Invalid email or password",
    ErrorKind.INVALID_REFRESH_TOKEN: "Invalid refresh token",
    ErrorKind.INVALID_OR_EXPIRED_TOKEN: "Invalid or expired token",
    ErrorKind.INTERNAL_ERROR: "An unexpected error occurred",
}


@dataclass(frozen=True)
class Ok:
    data: Any = None
    code: int = 200

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    code: int
    internal: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def of(
        cls,
        kind: ErrorKind,
        message: Optional[str] = None,
        code: Optional[int] = None,
        internal: Optional[str] = None,
    ) -> "Err":
        return cls(
            kind=kind,
            message=message or DEFAULT_MESSAGE[kind],
            code=code or DEFAULT_STATUS[kind],
            internal=internal,
        )


Result = Union[Ok, Err]
