"""Decide whether a failure is worth retrying.

Only transient I/O failures (connection resets, timeouts, a busy database)
are retryable.  Business failures and anything that cannot be positively
identified as transient are not.
"""

from __future__ import annotations

import errno
import logging
import socket
from enum import Enum

from pointboard.errors import AppError, ErrorKind

logger = logging.getLogger(__name__)


class Classification(str, Enum):
    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"


RETRYABLE_ERROR_CODES = frozenset({
    "econnreset",
    "econnrefused",
    "enotfound",
    "etimedout",
    "eai_again",
    "enetunreach",
    "ehostunreach",
    "sqlite_busy",
    "sqlite_locked",
})

NON_RETRYABLE_ERROR_CODES = frozenset({
    "pgrst116",  # PostgREST: no rows
    "23505",  # unique violation
    "23503",  # foreign key violation
    "23502",  # not null violation
    "p0001",  # raise exception
    "sqlite_constraint_unique",
    "sqlite_constraint_primarykey",
    "sqlite_constraint_foreignkey",
    "sqlite_constraint_notnull",
    "sqlite_notfound",
})

RETRYABLE_ERROR_NAMES = frozenset({
    "timeouterror",
    "networkerror",
    "connectionerror",
    "gaierror",
    "retryableerror",
})

NON_RETRYABLE_ERROR_NAMES = frozenset({
    "validationerror",
    "resourcenotfounderror",
    "notfounderror",
    "nonretryableerror",
})

_BUSINESS_PHRASES = ("already completed", "not found", "invalid", "validation")
_TRANSIENT_PHRASES = (
    "connection",
    "timeout",
    "network",
    "econnreset",
    "fetch failed",
    "failed to create",
    "failed to update",
)

# getaddrinfo() failures carry negative EAI_* values that errno.errorcode
# does not know about.
_RESOLVER_CODES = {
    getattr(socket, name): code
    for name, code in (
        ("EAI_AGAIN", "eai_again"),
        ("EAI_NONAME", "enotfound"),
        ("EAI_NODATA", "enotfound"),
    )
    if hasattr(socket, name)
}


def _error_codes(error: BaseException) -> list[str]:
    """Collect the machine error codes an exception carries, lower-cased."""
    codes: list[str] = []
    code = getattr(error, "code", None)
    if isinstance(code, (str, int)) and not isinstance(code, bool):
        codes.append(str(code).lower())
    # sqlite3.Error on Python 3.11+
    sqlite_name = getattr(error, "sqlite_errorname", None)
    if isinstance(sqlite_name, str):
        codes.append(sqlite_name.lower())
    if isinstance(error, socket.gaierror) and error.errno in _RESOLVER_CODES:
        codes.append(_RESOLVER_CODES[error.errno])
    elif isinstance(error, OSError) and error.errno in errno.errorcode:
        codes.append(errno.errorcode[error.errno].lower())
    return codes


def _type_names(error: BaseException) -> list[str]:
    names = [
        cls.__name__.lower()
        for cls in type(error).__mro__
        if cls not in (BaseException, Exception, object)
    ]
    # Builtins such as NameError and ImportError use .name for something else.
    explicit = getattr(error, "name", None)
    if isinstance(explicit, str) and type(error).__module__ != "builtins":
        names.insert(0, explicit.lower())
    return names


def classify(error: BaseException) -> Classification:
    """Classify *error* as retryable or not.

    Checks, in order: the application error kind, well-known error codes,
    well-known type names, an explicit ``retryable`` flag and finally the
    message text.  Unrecognised errors are non-retryable.
    """
    if isinstance(error, AppError):
        match error.kind:
            case ErrorKind.NOT_FOUND:
                return Classification.NON_RETRYABLE
            case ErrorKind.TRANSIENT:
                return Classification.RETRYABLE
            case _:
                return Classification.NON_RETRYABLE

    for code in _error_codes(error):
        if code in NON_RETRYABLE_ERROR_CODES:
            return Classification.NON_RETRYABLE
        if code in RETRYABLE_ERROR_CODES:
            return Classification.RETRYABLE

    for name in _type_names(error):
        if name in RETRYABLE_ERROR_NAMES:
            return Classification.RETRYABLE
        if name in NON_RETRYABLE_ERROR_NAMES:
            return Classification.NON_RETRYABLE

    flag = getattr(error, "retryable", None)
    if isinstance(flag, bool):
        return Classification.RETRYABLE if flag else Classification.NON_RETRYABLE

    message = str(error).lower()
    if any(phrase in message for phrase in _BUSINESS_PHRASES):
        return Classification.NON_RETRYABLE
    if any(phrase in message for phrase in _TRANSIENT_PHRASES):
        return Classification.RETRYABLE

    logger.debug("Unclassified error treated as non-retryable: %r", error)
    return Classification.NON_RETRYABLE


def is_retryable(error: BaseException) -> bool:
    return classify(error) is Classification.RETRYABLE
