"""Append-only points ledger with a denormalized per-user balance.

Every grant or deduction is one call of the store's
``create_ledger_entry_atomic`` procedure, which writes the entry and moves
``users.total_points`` together.  Corrections are new entries; entries are
never edited.
"""

from __future__ import annotations

import logging

from pointboard.errors import not_found, validation
from pointboard.store.protocol import RemoteStore

logger = logging.getLogger(__name__)

DEFAULT_POINTS_PER_STORY_POINT = 10


def points_for_story_points(
    story_points: int, per_story_point: int = DEFAULT_POINTS_PER_STORY_POINT
) -> int:
    """Map a story-point estimate to a point award.

    Strictly increasing in *story_points* and deterministic.
    """
    if not isinstance(story_points, int) or isinstance(story_points, bool) or story_points < 1:
        raise validation(
            f"Story points must be a positive integer, got {story_points!r}",
            story_points=story_points,
        )
    return story_points * per_story_point


def _validate_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 1:
        raise validation(
            f"Invalid points amount: {amount!r} (must be a positive integer)",
            amount=amount,
        )


class PointsLedger:
    """Grant, deduct and query points.

    Parameters
    ----------
    db:
        Store able to run ``create_ledger_entry_atomic``.
    points_per_story_point:
        Multiplier used by :func:`points_for_story_points`.
    """

    def __init__(
        self,
        db: RemoteStore,
        points_per_story_point: int = DEFAULT_POINTS_PER_STORY_POINT,
    ) -> None:
        if points_per_story_point < 1:
            raise ValueError("points_per_story_point must be >= 1")
        self._db = db
        self.points_per_story_point = points_per_story_point

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    async def grant_for_task_completion(
        self, task_id: str, beneficiary_id: str, actor_id: str | None = None
    ) -> dict:
        """Award the completion points for *task_id* to *beneficiary_id*.

        Raises a VALIDATION error mentioning "already completed" when the
        task's completion has already been rewarded.
        """
        task = await self._db.execute_fetchone(
            "SELECT id, story_points FROM tasks WHERE id = ?", (task_id,)
        )
        if task is None:
            raise not_found(f"Task not found: {task_id}", task_id=task_id)

        existing = await self._db.execute_fetchone(
            "SELECT id FROM points_ledger WHERE task_id = ? AND reason = 'task_completion'",
            (task_id,),
        )
        if existing is not None:
            raise validation(
                f"Task already completed: points already awarded for {task_id}",
                task_id=task_id, entry_id=existing["id"],
            )

        amount = points_for_story_points(task["story_points"], self.points_per_story_point)
        entry = await self._db.call(
            "create_ledger_entry_atomic",
            user_id=beneficiary_id,
            amount=amount,
            reason="task_completion",
            task_id=task_id,
            awarded_by=actor_id,
        )
        logger.info(
            "Awarded %d points to %s for task %s", amount, beneficiary_id, task_id,
        )
        return entry

    async def grant_manual(
        self,
        beneficiary_id: str,
        amount: int,
        actor_id: str,
        note: str | None = None,
    ) -> dict:
        _validate_amount(amount)
        entry = await self._db.call(
            "create_ledger_entry_atomic",
            user_id=beneficiary_id,
            amount=amount,
            reason="manual_award",
            awarded_by=actor_id,
            note=note,
        )
        logger.info("%s awarded %d points to %s", actor_id, amount, beneficiary_id)
        return entry

    async def deduct_manual(
        self,
        beneficiary_id: str,
        amount: int,
        actor_id: str,
        note: str | None = None,
    ) -> dict:
        """Record a deduction of *amount* (given as a positive number)."""
        _validate_amount(amount)
        entry = await self._db.call(
            "create_ledger_entry_atomic",
            user_id=beneficiary_id,
            amount=-amount,
            reason="manual_deduction",
            awarded_by=actor_id,
            note=note,
        )
        logger.info("%s deducted %d points from %s", actor_id, amount, beneficiary_id)
        return entry

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def history_for(self, user_id: str) -> list[dict]:
        """Return the user's ledger entries, newest first."""
        return await self._db.execute_fetchall(
            "SELECT * FROM points_ledger WHERE user_id = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        )

    async def balance_of(self, user_id: str) -> int:
        row = await self._db.execute_fetchone(
            "SELECT total_points FROM users WHERE id = ?", (user_id,)
        )
        if row is None:
            raise not_found(f"User not found: {user_id}", user_id=user_id)
        return int(row["total_points"] or 0)

    async def leaderboard(self, limit: int = 100) -> list[dict]:
        """Rank users by total points, highest first (rank starts at 1)."""
        rows = await self._db.execute_fetchall(
            "SELECT id, display_name, email, total_points FROM users "
            "ORDER BY total_points DESC, display_name ASC LIMIT ?",
            (limit,),
        )
        return [
            {
                "user_id": row["id"],
                "display_name": row["display_name"],
                "email": row["email"],
                "total_points": row["total_points"],
                "rank": index + 1,
            }
            for index, row in enumerate(rows)
        ]
