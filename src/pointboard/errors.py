"""Application error type shared by the ledger, workflows and HTTP layer.

Every failure raised by pointboard itself is an :class:`AppError` carrying an
:class:`ErrorKind`.  Callers branch on ``error.kind`` instead of probing for
subclasses or markers::

    try:
        await workflow.complete(task_id, caller)
    except AppError as exc:
        match exc.kind:
            case ErrorKind.NOT_FOUND:
                ...
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    FORBIDDEN = "forbidden"
    TRANSIENT = "transient"
    FATAL = "fatal"


_HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.TRANSIENT: 503,
    ErrorKind.FATAL: 500,
}


class AppError(Exception):
    """A classified application failure.

    Parameters
    ----------
    kind:
        Which branch of the error taxonomy this failure belongs to.
    message:
        Human-readable description, safe to return to API callers.
    details:
        Optional structured context (offending ids, counts, ...).
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.kind]

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.kind.value, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body

    def __repr__(self) -> str:
        return f"AppError({self.kind.value!r}, {self.message!r})"


def not_found(message: str, **details: Any) -> AppError:
    return AppError(ErrorKind.NOT_FOUND, message, details)


def validation(message: str, **details: Any) -> AppError:
    return AppError(ErrorKind.VALIDATION, message, details)


def forbidden(message: str, **details: Any) -> AppError:
    return AppError(ErrorKind.FORBIDDEN, message, details)


def transient(message: str, **details: Any) -> AppError:
    return AppError(ErrorKind.TRANSIENT, message, details)


def fatal(message: str, **details: Any) -> AppError:
    return AppError(ErrorKind.FATAL, message, details)
