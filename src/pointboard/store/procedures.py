"""Named atomic procedures run by :meth:`Database.call`.

Each procedure receives the connection of an already-open transaction; an
exception anywhere rolls the whole procedure back.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import aiosqlite

from pointboard.errors import forbidden, not_found, validation
from pointboard.store.database import next_id

logger = logging.getLogger(__name__)

LEDGER_REASONS = ("task_completion", "manual_award", "manual_deduction")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _fetchone(conn: aiosqlite.Connection, sql: str, params: tuple) -> dict | None:
    # fetchall() steps the statement to completion, which RETURNING needs
    # before the transaction can commit.
    cursor = await conn.execute(sql, params)
    rows = await cursor.fetchall()
    return dict(rows[0]) if rows else None


# ------------------------------------------------------------------
# Ledger
# ------------------------------------------------------------------


async def _insert_ledger_entry(
    conn: aiosqlite.Connection,
    *,
    user_id: str,
    amount: int,
    reason: str,
    task_id: str | None,
    awarded_by: str | None,
    note: str | None,
) -> dict:
    entry_id = await next_id(conn, "PTS")
    try:
        return await _fetchone(
            conn,
            "INSERT INTO points_ledger "
            "(id, user_id, amount, reason, task_id, awarded_by, note, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) RETURNING *",
            (entry_id, user_id, amount, reason, task_id, awarded_by, note, _utcnow()),
        )
    except aiosqlite.IntegrityError as exc:
        if reason == "task_completion" and "UNIQUE" in str(exc).upper():
            raise validation(
                f"Task already completed: points already awarded for {task_id}",
                task_id=task_id,
            ) from exc
        raise


async def create_ledger_entry_atomic(
    conn: aiosqlite.Connection,
    *,
    user_id: str,
    amount: int,
    reason: str,
    task_id: str | None = None,
    awarded_by: str | None = None,
    note: str | None = None,
) -> dict:
    """Insert a ledger entry; the balance trigger moves ``users.total_points``."""
    if reason not in LEDGER_REASONS:
        raise validation(f"Invalid ledger reason: {reason!r}")

    user = await _fetchone(conn, "SELECT id FROM users WHERE id = ?", (user_id,))
    if user is None:
        raise not_found(f"User not found: {user_id}", user_id=user_id)

    return await _insert_ledger_entry(
        conn,
        user_id=user_id,
        amount=amount,
        reason=reason,
        task_id=task_id,
        awarded_by=awarded_by,
        note=note,
    )


# ------------------------------------------------------------------
# Shop
# ------------------------------------------------------------------


async def redeem_item_atomic(
    conn: aiosqlite.Connection, *, user_id: str, item_id: str
) -> dict:
    """Debit the item's cost from the user and record the redemption.

    The balance check, the ``manual_deduction`` ledger entry and the
    redemption row commit together or not at all.
    """
    item = await _fetchone(conn, "SELECT * FROM shop_items WHERE id = ?", (item_id,))
    if item is None:
        raise not_found(f"Shop item not found: {item_id}", item_id=item_id)
    if not item["is_active"]:
        raise validation(f"Item is not available: {item['name']}", item_id=item_id)

    user = await _fetchone(conn, "SELECT total_points FROM users WHERE id = ?", (user_id,))
    if user is None:
        raise not_found(f"User not found: {user_id}", user_id=user_id)

    cost = item["point_cost"]
    if user["total_points"] < cost:
        raise validation(
            f"Insufficient points: {item['name']} costs {cost}, "
            f"balance is {user['total_points']}",
            user_id=user_id, item_id=item_id,
            point_cost=cost, balance=user["total_points"],
        )

    entry = await _insert_ledger_entry(
        conn,
        user_id=user_id,
        amount=-cost,
        reason="manual_deduction",
        task_id=None,
        awarded_by=user_id,
        note=f"Redeemed: {item['name']}",
    )
    redemption_id = await next_id(conn, "RDM")
    return await _fetchone(
        conn,
        "INSERT INTO redemptions "
        "(id, user_id, shop_item_id, points_spent, ledger_id, redeemed_at) "
        "VALUES (?, ?, ?, ?, ?, ?) RETURNING *",
        (redemption_id, user_id, item_id, cost, entry["id"], entry["created_at"]),
    )


# ------------------------------------------------------------------
# Tasks
# ------------------------------------------------------------------


async def complete_task_atomic(
    conn: aiosqlite.Connection, *, task_id: str
) -> dict | None:
    """Set ``completed_at`` only if it is still unset.

    Returns the updated row, or ``None`` when no row changed (the task is
    missing or somebody else completed it first).
    """
    return await _fetchone(
        conn,
        "UPDATE tasks SET completed_at = ? "
        "WHERE id = ? AND completed_at IS NULL RETURNING *",
        (_utcnow(), task_id),
    )


# ------------------------------------------------------------------
# Lists
# ------------------------------------------------------------------


async def reorder_lists(
    conn: aiosqlite.Connection,
    *,
    board_id: str,
    list_positions: list[dict],
    user_id: str | None = None,
) -> int:
    """Apply every ``{id, position}`` pair for *board_id* in one statement.

    Returns the number of list rows updated.
    """
    if user_id is not None:
        row = await _fetchone(
            conn,
            "SELECT u.role AS role, (u.team_id = b.team_id) AS same_team "
            "FROM users u, boards b WHERE u.id = ? AND b.id = ?",
            (user_id, board_id),
        )
        if row is None or not (row["same_team"] or row["role"] == "admin"):
            raise forbidden(
                f"User {user_id} does not have access to board {board_id}",
                user_id=user_id, board_id=board_id,
            )

    payload = json.dumps(
        [{"id": lp["id"], "position": lp["position"]} for lp in list_positions]
    )
    cursor = await conn.execute(
        "UPDATE lists SET position = lp.position "
        "FROM (SELECT json_extract(value, '$.id') AS id, "
        "             json_extract(value, '$.position') AS position "
        "      FROM json_each(?)) AS lp "
        "WHERE lists.id = lp.id AND lists.board_id = ?",
        (payload, board_id),
    )
    return cursor.rowcount


PROCEDURES: dict[str, Callable[..., Awaitable[Any]]] = {
    "create_ledger_entry_atomic": create_ledger_entry_atomic,
    "complete_task_atomic": complete_task_atomic,
    "reorder_lists": reorder_lists,
    "redeem_item_atomic": redeem_item_atomic,
}
