"""Board list routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response

from pointboard.auth import Caller, can_manage_tasks
from pointboard.dashboard.models import ReorderListsBody
from pointboard.dashboard.routers._deps import get_caller, get_tracker

router = APIRouter()


@router.get("/api/boards/{board_id}/lists")
async def get_lists(board_id: str, caller: Caller = Depends(get_caller)):
    tracker = get_tracker()
    if await tracker.board.get_board(board_id) is None:
        raise HTTPException(status_code=404, detail=f"Board not found: {board_id}")
    return await tracker.board.get_lists_by_board(board_id)


@router.patch("/api/boards/{board_id}/lists/reorder", status_code=204)
async def reorder_lists(
    board_id: str,
    body: ReorderListsBody,
    caller: Caller = Depends(get_caller),
):
    if not can_manage_tasks(caller.role):
        raise HTTPException(status_code=403, detail="Manager or admin role required")
    await get_tracker().list_reorder.reorder(
        board_id,
        [lp.model_dump() for lp in body.list_positions],
        acting_user_id=caller.id,
    )
    return Response(status_code=204)
