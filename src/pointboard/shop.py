"""Points shop: a catalogue of rewards users buy with their points."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pointboard.errors import not_found, validation
from pointboard.store.protocol import RemoteStore

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _item(row: dict) -> dict:
    row["is_active"] = bool(row["is_active"])
    return row


class PointsShop:
    """List shop items, redeem them and report redemption history.

    Redeeming runs the store's ``redeem_item_atomic`` procedure, which
    checks the balance, writes a ``manual_deduction`` ledger entry and
    records the redemption as one unit.

    Parameters
    ----------
    db:
        Store able to run ``redeem_item_atomic``.
    """

    def __init__(self, db: RemoteStore) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    async def create_item(
        self,
        name: str,
        point_cost: int,
        category: str = "item",
        description: str | None = None,
        image_url: str | None = None,
    ) -> dict:
        if not name:
            raise validation("Shop item name is required")
        if not isinstance(point_cost, int) or isinstance(point_cost, bool) or point_cost < 1:
            raise validation(
                f"Point cost must be a positive integer, got {point_cost!r}",
                point_cost=point_cost,
            )
        item_id = await self._db.generate_id("ITEM")
        rows = await self._db.execute_returning(
            "INSERT INTO shop_items "
            "(id, name, description, point_cost, category, image_url, is_active, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, 1, ?) RETURNING *",
            (item_id, name, description, point_cost, category, image_url, _utcnow()),
        )
        logger.info("Shop item %s created: %s (%d points)", item_id, name, point_cost)
        return _item(rows[0])

    async def get_item(self, item_id: str) -> dict | None:
        row = await self._db.execute_fetchone(
            "SELECT * FROM shop_items WHERE id = ?", (item_id,)
        )
        return _item(row) if row is not None else None

    async def list_available_items(self) -> list[dict]:
        """Active items, cheapest first."""
        rows = await self._db.execute_fetchall(
            "SELECT * FROM shop_items WHERE is_active = 1 ORDER BY point_cost, name"
        )
        return [_item(r) for r in rows]

    async def set_item_active(self, item_id: str, active: bool) -> dict:
        rows = await self._db.execute_returning(
            "UPDATE shop_items SET is_active = ? WHERE id = ? RETURNING *",
            (1 if active else 0, item_id),
        )
        if not rows:
            raise not_found(f"Shop item not found: {item_id}", item_id=item_id)
        return _item(rows[0])

    # ------------------------------------------------------------------
    # Redemptions
    # ------------------------------------------------------------------

    async def redeem(self, user_id: str, item_id: str) -> dict:
        """Spend *user_id*'s points on *item_id* and return the redemption.

        Raises VALIDATION for an inactive item or an insufficient balance,
        NOT_FOUND for an unknown user or item.
        """
        redemption = await self._db.call(
            "redeem_item_atomic", user_id=user_id, item_id=item_id,
        )
        logger.info(
            "%s redeemed %s for %d points",
            user_id, item_id, redemption["points_spent"],
        )
        return redemption

    async def redemptions_for(self, user_id: str) -> list[dict]:
        """Return the user's redemptions with item details, newest first."""
        return await self._db.execute_fetchall(
            "SELECT r.*, s.name AS item_name, s.category AS item_category, "
            "       s.image_url AS item_image_url "
            "FROM redemptions r JOIN shop_items s ON s.id = r.shop_item_id "
            "WHERE r.user_id = ? "
            "ORDER BY r.redeemed_at DESC, r.rowid DESC",
            (user_id,),
        )
