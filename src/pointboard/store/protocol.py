"""Narrow interface the ledger and workflows need from the relational store."""

from __future__ import annotations

from typing import Any, Protocol


class RemoteStore(Protocol):
    """Lookup, filtered listing, single writes and named atomic procedures.

    :class:`pointboard.store.database.Database` is the SQLite implementation.
    Any backend that can run a procedure as one all-or-nothing unit can
    stand in for it.
    """

    async def execute_fetchone(self, sql: str, params: tuple = ()) -> dict | None:
        """Return the first matching row, or ``None``."""
        ...

    async def execute_fetchall(self, sql: str, params: tuple = ()) -> list[dict]:
        """Return every matching row."""
        ...

    async def execute(self, sql: str, params: tuple = ()) -> int:
        """Run a single write and return the affected row count."""
        ...

    async def execute_returning(self, sql: str, params: tuple = ()) -> list[dict]:
        """Run a single write with a ``RETURNING`` clause."""
        ...

    async def generate_id(self, prefix: str) -> str:
        """Allocate a new ``PREFIX-NNN`` identifier."""
        ...

    async def call(self, procedure: str, **params: Any) -> Any:
        """Invoke a named atomic procedure.

        Either every effect of the procedure is applied or none is.
        """
        ...
