"""Bearer-token authentication and caller roles for the API."""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from enum import Enum

from fastapi import Request

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"


@dataclass(frozen=True)
class Caller:
    """The authenticated user making a request."""

    id: str
    role: Role


def can_manage_tasks(role: Role | str) -> bool:
    """Managers and admins may act on any task."""
    return Role(role) in (Role.ADMIN, Role.MANAGER)


def can_manage_points(role: Role | str) -> bool:
    return Role(role) in (Role.ADMIN, Role.MANAGER)


class AuthManager:
    """Resolve the calling user id from a request.

    Parameters
    ----------
    enabled:
        Whether bearer tokens are enforced.  When disabled the caller id is
        read from the ``X-User-Id`` header (development only).
    tokens:
        Mapping of ``token -> user_id``.  Only token hashes are kept.
    """

    DEV_HEADER = "X-User-Id"

    @staticmethod
    def _hash_token(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def __init__(self, enabled: bool = False, tokens: dict[str, str] | None = None) -> None:
        self.enabled = enabled
        self._tokens: dict[str, str] = {
            self._hash_token(token): user_id for token, user_id in (tokens or {}).items()
        }
        if enabled and not self._tokens:
            logger.warning("Authentication enabled but no tokens are configured")

    def add_token(self, token: str, user_id: str) -> None:
        self._tokens[self._hash_token(token)] = user_id

    def user_id_for_token(self, token: str) -> str | None:
        hashed = self._hash_token(token)
        for known, user_id in self._tokens.items():
            if hmac.compare_digest(known, hashed):
                return user_id
        return None

    def resolve_user_id(self, request: Request) -> str | None:
        """Return the user id behind *request*, or ``None`` if unauthenticated."""
        if not self.enabled:
            return request.headers.get(self.DEV_HEADER) or None
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None
        return self.user_id_for_token(auth_header[7:])
