"""Health and task routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from pointboard.auth import Caller
from pointboard.dashboard.routers._deps import get_caller, get_tracker

router = APIRouter()


@router.get("/api/health")
async def health():
    tracker = get_tracker()
    try:
        await tracker.db.execute_fetchone("SELECT 1")
        return {"status": "ok", "db": "connected"}
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "db": str(e)},
        )


@router.get("/api/tasks/{task_id}")
async def get_task(task_id: str, caller: Caller = Depends(get_caller)):
    task = await get_tracker().board.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return task


@router.patch("/api/tasks/{task_id}/complete")
async def complete_task(task_id: str, caller: Caller = Depends(get_caller)):
    return await get_tracker().task_completion.complete(task_id, caller)
