"""SQLite database layer with async access via aiosqlite."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS teams (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id            TEXT PRIMARY KEY,
    email         TEXT NOT NULL UNIQUE,
    display_name  TEXT NOT NULL,
    role          TEXT NOT NULL DEFAULT 'member'
                  CHECK (role IN ('admin', 'manager', 'member')),
    team_id       TEXT REFERENCES teams(id) ON DELETE SET NULL,
    total_points  INTEGER NOT NULL DEFAULT 0,
    created_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS boards (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    description  TEXT,
    team_id      TEXT NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
    created_by   TEXT REFERENCES users(id) ON DELETE SET NULL,
    created_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS lists (
    id          TEXT PRIMARY KEY,
    board_id    TEXT NOT NULL REFERENCES boards(id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    position    INTEGER NOT NULL DEFAULT 0 CHECK (position >= 0),
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id            TEXT PRIMARY KEY,
    list_id       TEXT NOT NULL REFERENCES lists(id) ON DELETE CASCADE,
    title         TEXT NOT NULL,
    description   TEXT,
    story_points  INTEGER NOT NULL DEFAULT 1 CHECK (story_points > 0),
    assigned_to   TEXT REFERENCES users(id) ON DELETE SET NULL,
    position      INTEGER NOT NULL DEFAULT 0 CHECK (position >= 0),
    due_date      TEXT,
    completed_at  TEXT,
    created_at    TEXT NOT NULL
);

-- task_id carries no foreign key: ledger rows outlive deleted tasks.
CREATE TABLE IF NOT EXISTS points_ledger (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL REFERENCES users(id),
    amount      INTEGER NOT NULL CHECK (amount <> 0),
    reason      TEXT NOT NULL
                CHECK (reason IN ('task_completion', 'manual_award', 'manual_deduction')),
    task_id     TEXT,
    awarded_by  TEXT,
    note        TEXT,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS shop_items (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    description  TEXT,
    point_cost   INTEGER NOT NULL CHECK (point_cost > 0),
    category     TEXT NOT NULL DEFAULT 'item',
    image_url    TEXT,
    is_active    INTEGER NOT NULL DEFAULT 1,
    created_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS redemptions (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    shop_item_id  TEXT NOT NULL REFERENCES shop_items(id) ON DELETE RESTRICT,
    points_spent  INTEGER NOT NULL CHECK (points_spent > 0),
    ledger_id     TEXT NOT NULL REFERENCES points_ledger(id),
    redeemed_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS id_sequences (
    prefix   TEXT PRIMARY KEY,
    next_val INTEGER NOT NULL DEFAULT 1
);
"""

_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_lists_board
    ON lists(board_id, position);

CREATE INDEX IF NOT EXISTS idx_tasks_list
    ON tasks(list_id, position);

CREATE INDEX IF NOT EXISTS idx_tasks_assignee
    ON tasks(assigned_to);

CREATE INDEX IF NOT EXISTS idx_users_points
    ON users(total_points);

CREATE INDEX IF NOT EXISTS idx_ledger_user
    ON points_ledger(user_id, created_at);

CREATE INDEX IF NOT EXISTS idx_shop_items_active
    ON shop_items(point_cost)
    WHERE is_active = 1;

CREATE INDEX IF NOT EXISTS idx_redemptions_user
    ON redemptions(user_id, redeemed_at);

CREATE UNIQUE INDEX IF NOT EXISTS idx_ledger_task_completion
    ON points_ledger(task_id)
    WHERE reason = 'task_completion';
"""

# The balance moves with the ledger insert inside the same statement, so
# total_points is never written on its own.
_TRIGGER_SQL = """
CREATE TRIGGER IF NOT EXISTS trg_points_ledger_balance
AFTER INSERT ON points_ledger
BEGIN
    UPDATE users SET total_points = total_points + NEW.amount
    WHERE id = NEW.user_id;
END;

CREATE TRIGGER IF NOT EXISTS trg_points_ledger_no_update
BEFORE UPDATE ON points_ledger
BEGIN
    SELECT RAISE(ABORT, 'points_ledger is append-only');
END;

CREATE TRIGGER IF NOT EXISTS trg_points_ledger_no_delete
BEFORE DELETE ON points_ledger
BEGIN
    SELECT RAISE(ABORT, 'points_ledger is append-only');
END;
"""


def _utcnow() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Async SQLite database wrapper using aiosqlite with connection pooling.

    Implements :class:`pointboard.store.protocol.RemoteStore`.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Use ``":memory:"`` for tests.
    pool_size:
        Number of read connections to keep in the pool (default 5).  Pooled
        connections only ever see committed data; all writes go through the
        primary connection.
    """

    def __init__(self, db_path: str, pool_size: int = 5) -> None:
        self.db_path = db_path
        self.pool_size = pool_size
        self._conn: aiosqlite.Connection | None = None
        self._pool: asyncio.Queue[aiosqlite.Connection] | None = None
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _create_connection(self) -> aiosqlite.Connection:
        """Create and configure a single aiosqlite connection."""
        # isolation_level=None enables autocommit mode; transactions are
        # opened explicitly by transaction().
        conn = await aiosqlite.connect(self.db_path, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA busy_timeout = 5000")
        await conn.execute("PRAGMA foreign_keys=ON")
        return conn

    async def initialize(self) -> None:
        """Open the connection pool, enable WAL mode and foreign keys, create schema."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = await self._create_connection()
        await self._conn.executescript(_SCHEMA_SQL)
        await self._conn.executescript(_INDEX_SQL)
        await self._conn.executescript(_TRIGGER_SQL)
        await self._conn.commit()

        self._pool = None
        if self.db_path != ":memory:":
            self._pool = asyncio.Queue(maxsize=self.pool_size)
            for _ in range(self.pool_size):
                conn = await self._create_connection()
                await self._pool.put(conn)
            logger.debug("Connection pool initialized with %d connections", self.pool_size)

    async def close(self) -> None:
        """Close all connections including the pool."""
        if self._pool is not None:
            while not self._pool.empty():
                try:
                    conn = self._pool.get_nowait()
                    await conn.close()
                except asyncio.QueueEmpty:
                    break
            self._pool = None
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def acquire(self):
        """Acquire a connection for reading.

        Usage::

            async with db.acquire() as conn:
                cursor = await conn.execute("SELECT ...")

        In-memory databases have no pool; reads then share the primary
        connection and wait for any open transaction to finish.
        """
        if self._pool is not None:
            conn = await self._pool.get()
            try:
                yield conn
            finally:
                await self._pool.put(conn)
        else:
            conn = self._require_conn()
            async with self._write_lock:
                yield conn

    @asynccontextmanager
    async def transaction(self):
        """Async context manager for an all-or-nothing unit of work.

        The write lock keeps concurrent coroutines from interleaving
        statements into the open transaction on the shared connection.
        """
        conn = self._require_conn()
        async with self._write_lock:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

    # ------------------------------------------------------------------
    # ID generation
    # ------------------------------------------------------------------

    async def generate_id(self, prefix: str) -> str:
        """Atomically increment the sequence for *prefix* and return an ID.

        The returned ID has the form ``"TSK-001"``.  Unknown prefixes are
        registered on first use.
        """
        async with self.transaction() as conn:
            return await next_id(conn, prefix)

    # ------------------------------------------------------------------
    # Generic query helpers
    # ------------------------------------------------------------------

    async def execute_fetchall(
        self, sql: str, params: tuple = ()
    ) -> list[dict]:
        """Execute a query and return all rows as dicts."""
        async with self.acquire() as conn:
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def execute_fetchone(
        self, sql: str, params: tuple = ()
    ) -> dict | None:
        """Execute a query and return the first row as a dict, or None."""
        async with self.acquire() as conn:
            cursor = await conn.execute(sql, params)
            row = await cursor.fetchone()
            return dict(row) if row is not None else None

    async def execute(self, sql: str, params: tuple = ()) -> int:
        """Execute a statement, commit, and return the affected row count."""
        conn = self._require_conn()
        async with self._write_lock:
            cursor = await conn.execute(sql, params)
            await conn.commit()
            return cursor.rowcount

    async def execute_returning(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a mutating query with RETURNING clause, commit, and return rows as dicts."""
        conn = self._require_conn()
        async with self._write_lock:
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()
            await conn.commit()
            return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Atomic procedures
    # ------------------------------------------------------------------

    async def call(self, procedure: str, **params: Any) -> Any:
        """Run the named atomic procedure inside one transaction.

        Raises
        ------
        KeyError
            If no procedure is registered under *procedure*.
        """
        from pointboard.store.procedures import PROCEDURES

        try:
            func = PROCEDURES[procedure]
        except KeyError:
            raise KeyError(f"Unknown procedure: {procedure!r}") from None
        async with self.transaction() as conn:
            return await func(conn, **params)


async def next_id(conn: aiosqlite.Connection, prefix: str) -> str:
    """Allocate the next ``PREFIX-NNN`` id on *conn* (caller owns the transaction)."""
    await conn.execute(
        "INSERT OR IGNORE INTO id_sequences (prefix, next_val) VALUES (?, 1)",
        (prefix,),
    )
    cursor = await conn.execute(
        "UPDATE id_sequences SET next_val = next_val + 1 "
        "WHERE prefix = ? RETURNING next_val - 1 AS val",
        (prefix,),
    )
    rows = await cursor.fetchall()
    return f"{prefix}-{rows[0][0]:03d}"
