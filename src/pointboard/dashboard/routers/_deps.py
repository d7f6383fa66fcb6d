"""Shared dependencies: tracker reference set by app.py during create_app()."""

from __future__ import annotations

from fastapi import HTTPException, Request

from pointboard.auth import Caller, Role

_tracker = None


def set_tracker(tracker):
    """Called by app.py to inject the tracker (or fake) reference."""
    global _tracker
    _tracker = tracker


def get_tracker():
    """Return the current tracker or raise 503 if none is configured."""
    if _tracker is None:
        raise HTTPException(503, "Tracker not initialized")
    return _tracker


async def get_caller(request: Request) -> Caller:
    """Resolve the authenticated caller and their role, or raise 401."""
    tracker = get_tracker()
    user_id = tracker.auth.resolve_user_id(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or missing credentials")
    user = await tracker.board.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return Caller(id=user["id"], role=Role(user["role"]))
