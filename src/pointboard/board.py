"""Board store: team, user, board, list and task CRUD."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pointboard.errors import not_found, validation
from pointboard.store.protocol import RemoteStore

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


ROLES = ("admin", "manager", "member")


class BoardStore:
    """High-level CRUD interface for teams, users, boards, lists and tasks.

    Parameters
    ----------
    db:
        An initialised store (normally :class:`pointboard.store.Database`).
    """

    def __init__(self, db: RemoteStore) -> None:
        self._db = db

    async def _new_id(self, prefix: str) -> str:
        return await self._db.generate_id(prefix)

    # ------------------------------------------------------------------
    # Teams and users
    # ------------------------------------------------------------------

    async def create_team(self, name: str) -> dict:
        team_id = await self._new_id("TEAM")
        now = _utcnow()
        await self._db.execute(
            "INSERT INTO teams (id, name, created_at) VALUES (?, ?, ?)",
            (team_id, name, now),
        )
        return {"id": team_id, "name": name, "created_at": now}

    async def create_user(
        self,
        email: str,
        display_name: str,
        role: str = "member",
        team_id: str | None = None,
    ) -> dict:
        """Create a user with a zero point balance."""
        if role not in ROLES:
            raise validation(f"Invalid role: {role!r}")
        user_id = await self._new_id("USR")
        now = _utcnow()
        await self._db.execute(
            "INSERT INTO users (id, email, display_name, role, team_id, total_points, created_at) "
            "VALUES (?, ?, ?, ?, ?, 0, ?)",
            (user_id, email, display_name, role, team_id, now),
        )
        return {
            "id": user_id,
            "email": email,
            "display_name": display_name,
            "role": role,
            "team_id": team_id,
            "total_points": 0,
            "created_at": now,
        }

    async def get_user(self, user_id: str) -> dict | None:
        return await self._db.execute_fetchone(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        )

    # ------------------------------------------------------------------
    # Boards and lists
    # ------------------------------------------------------------------

    async def create_board(
        self,
        name: str,
        team_id: str,
        created_by: str | None = None,
        description: str | None = None,
    ) -> dict:
        board_id = await self._new_id("BRD")
        now = _utcnow()
        await self._db.execute(
            "INSERT INTO boards (id, name, description, team_id, created_by, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (board_id, name, description, team_id, created_by, now),
        )
        return {
            "id": board_id,
            "name": name,
            "description": description,
            "team_id": team_id,
            "created_by": created_by,
            "created_at": now,
        }

    async def get_board(self, board_id: str) -> dict | None:
        return await self._db.execute_fetchone(
            "SELECT * FROM boards WHERE id = ?", (board_id,)
        )

    async def create_list(self, board_id: str, name: str, position: int = 0) -> dict:
        if position < 0:
            raise validation("List position must be non-negative", position=position)
        list_id = await self._new_id("LST")
        now = _utcnow()
        await self._db.execute(
            "INSERT INTO lists (id, board_id, name, position, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (list_id, board_id, name, position, now),
        )
        return {
            "id": list_id,
            "board_id": board_id,
            "name": name,
            "position": position,
            "created_at": now,
        }

    async def get_list(self, list_id: str) -> dict | None:
        return await self._db.execute_fetchone(
            "SELECT * FROM lists WHERE id = ?", (list_id,)
        )

    async def get_lists_by_board(self, board_id: str) -> list[dict]:
        """Return the board's lists ordered by position."""
        return await self._db.execute_fetchall(
            "SELECT * FROM lists WHERE board_id = ? ORDER BY position, id",
            (board_id,),
        )

    async def find_board_list_ids(self, board_id: str, list_ids: list[str]) -> set[str]:
        """Return which of *list_ids* belong to *board_id*."""
        if not list_ids:
            return set()
        placeholders = ",".join("?" * len(list_ids))
        rows = await self._db.execute_fetchall(
            f"SELECT id FROM lists WHERE board_id = ? AND id IN ({placeholders})",
            (board_id, *list_ids),
        )
        return {r["id"] for r in rows}

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(
        self,
        list_id: str,
        title: str,
        story_points: int = 1,
        assigned_to: str | None = None,
        position: int = 0,
        description: str | None = None,
        due_date: str | None = None,
    ) -> dict:
        """Create an incomplete task in *list_id*."""
        if not isinstance(story_points, int) or isinstance(story_points, bool) or story_points < 1:
            raise validation("story_points must be a positive integer", story_points=story_points)
        if position < 0:
            raise validation("Task position must be non-negative", position=position)
        task_id = await self._new_id("TSK")
        now = _utcnow()
        await self._db.execute(
            "INSERT INTO tasks "
            "(id, list_id, title, description, story_points, assigned_to, "
            " position, due_date, completed_at, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?)",
            (task_id, list_id, title, description, story_points, assigned_to,
             position, due_date, now),
        )
        return {
            "id": task_id,
            "list_id": list_id,
            "title": title,
            "description": description,
            "story_points": story_points,
            "assigned_to": assigned_to,
            "position": position,
            "due_date": due_date,
            "completed_at": None,
            "created_at": now,
        }

    async def get_task(self, task_id: str) -> dict | None:
        return await self._db.execute_fetchone(
            "SELECT * FROM tasks WHERE id = ?", (task_id,)
        )

    async def get_tasks_by_list(self, list_id: str) -> list[dict]:
        return await self._db.execute_fetchall(
            "SELECT * FROM tasks WHERE list_id = ? ORDER BY position, id",
            (list_id,),
        )

    async def assign_task(self, task_id: str, assigned_to: str | None) -> dict:
        """Assign (or unassign with ``None``) a task."""
        if assigned_to is not None and await self.get_user(assigned_to) is None:
            raise not_found(f"Assignee not found: {assigned_to}", user_id=assigned_to)
        rows = await self._db.execute_returning(
            "UPDATE tasks SET assigned_to = ? WHERE id = ? RETURNING *",
            (assigned_to, task_id),
        )
        if not rows:
            raise not_found(f"Task not found: {task_id}", task_id=task_id)
        return rows[0]

    async def move_task(self, task_id: str, list_id: str, position: int) -> dict:
        if position < 0:
            raise validation("Task position must be non-negative", position=position)
        rows = await self._db.execute_returning(
            "UPDATE tasks SET list_id = ?, position = ? WHERE id = ? RETURNING *",
            (list_id, position, task_id),
        )
        if not rows:
            raise not_found(f"Task not found: {task_id}", task_id=task_id)
        return rows[0]
