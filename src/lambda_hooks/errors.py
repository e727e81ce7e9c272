"""Error taxonomy for the extension lifecycle."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Kinds of failure raised by the client, registry, and controller."""

    INIT_ERROR = "INIT_ERROR"
    INVALID_EVENT_TYPE = "INVALID_EVENT_TYPE"
    INVALID_HANDLER = "INVALID_HANDLER"
    API_ERROR = "API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    INVALID_STATE = "INVALID_STATE"
    ALREADY_RUNNING = "ALREADY_RUNNING"
    HOOK_EXECUTION_ERROR = "HOOK_EXECUTION_ERROR"
    EXTENSION_REGISTRATION_FAILED = "EXTENSION_REGISTRATION_FAILED"


class LambdaHookError(Exception):
    """Error raised by the extension runtime.

    Attributes:
        code: Taxonomy entry describing the failure.
        message: Human-readable description.
        cause: Original exception or extra data (e.g. status code and body).
        is_fatal: Whether the poll loop must stop when it sees this error.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        cause: BaseException | Any | None = None,
        *,
        is_fatal: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause
        self.is_fatal = is_fatal
        if isinstance(cause, BaseException):
            self.__cause__ = cause

    def __repr__(self) -> str:
        return (
            f"LambdaHookError(code={self.code.value!r}, message={self.message!r}, "
            f"is_fatal={self.is_fatal})"
        )
