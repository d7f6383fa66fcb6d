"""Points shop routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from pointboard.auth import Caller, Role, can_manage_points
from pointboard.dashboard.models import ShopItemBody, ShopItemStatusBody
from pointboard.dashboard.routers._deps import get_caller, get_tracker

router = APIRouter()


def _require_admin(caller: Caller) -> None:
    if caller.role is not Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admin role required")


@router.get("/api/shop/items")
async def list_items(caller: Caller = Depends(get_caller)):
    return await get_tracker().shop.list_available_items()


@router.post("/api/shop/items", status_code=201)
async def create_item(body: ShopItemBody, caller: Caller = Depends(get_caller)):
    _require_admin(caller)
    return await get_tracker().shop.create_item(
        body.name,
        body.point_cost,
        category=body.category,
        description=body.description,
        image_url=body.image_url,
    )


@router.patch("/api/shop/items/{item_id}")
async def update_item_status(
    item_id: str, body: ShopItemStatusBody, caller: Caller = Depends(get_caller),
):
    _require_admin(caller)
    return await get_tracker().shop.set_item_active(item_id, body.is_active)


@router.post("/api/shop/items/{item_id}/redeem", status_code=201)
async def redeem_item(item_id: str, caller: Caller = Depends(get_caller)):
    return await get_tracker().shop.redeem(caller.id, item_id)


@router.get("/api/users/{user_id}/redemptions")
async def user_redemptions(user_id: str, caller: Caller = Depends(get_caller)):
    if user_id != caller.id and not can_manage_points(caller.role):
        raise HTTPException(status_code=403, detail="You can only view your own redemptions")
    return await get_tracker().shop.redemptions_for(user_id)
