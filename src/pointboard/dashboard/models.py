"""Pydantic models shared across API routers."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ListPosition(BaseModel):
    id: str = Field(min_length=1)
    position: int = Field(ge=0)


class ReorderListsBody(BaseModel):
    list_positions: list[ListPosition]


class ManualPointsBody(BaseModel):
    user_id: str
    amount: int = Field(gt=0)
    note: Optional[str] = None


class ShopItemBody(BaseModel):
    name: str = Field(min_length=1)
    point_cost: int = Field(gt=0)
    category: str = "item"
    description: Optional[str] = None
    image_url: Optional[str] = None


class ShopItemStatusBody(BaseModel):
    is_active: bool
