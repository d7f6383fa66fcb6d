"""Leaderboard and points routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from pointboard.auth import Caller, can_manage_points
from pointboard.dashboard.models import ManualPointsBody
from pointboard.dashboard.routers._deps import get_caller, get_tracker

router = APIRouter()


@router.get("/api/leaderboard")
async def leaderboard(limit: int = 100, caller: Caller = Depends(get_caller)):
    limit = max(1, min(limit, 500))
    return await get_tracker().ledger.leaderboard(limit)


@router.get("/api/users/{user_id}/points")
async def user_points(user_id: str, caller: Caller = Depends(get_caller)):
    ledger = get_tracker().ledger
    balance = await ledger.balance_of(user_id)
    history = await ledger.history_for(user_id)
    return {"user_id": user_id, "total_points": balance, "history": history}


def _require_points_manager(caller: Caller) -> None:
    if not can_manage_points(caller.role):
        raise HTTPException(status_code=403, detail="Manager or admin role required")


@router.post("/api/points/award", status_code=201)
async def award_points(body: ManualPointsBody, caller: Caller = Depends(get_caller)):
    _require_points_manager(caller)
    return await get_tracker().ledger.grant_manual(
        body.user_id, body.amount, caller.id, note=body.note,
    )


@router.post("/api/points/deduct", status_code=201)
async def deduct_points(body: ManualPointsBody, caller: Caller = Depends(get_caller)):
    _require_points_manager(caller)
    return await get_tracker().ledger.deduct_manual(
        body.user_id, body.amount, caller.id, note=body.note,
    )
