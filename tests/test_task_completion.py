"""Tests for the task completion workflow."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from pointboard.auth import Caller, Role
from pointboard.errors import AppError, ErrorKind
from pointboard.retry import RetryExecutor
from pointboard.workflows.task_completion import RECONCILIATION_CONTEXT, TaskCompletionWorkflow


class FlakyLedger:
    """Wrap a real ledger and fail the first *failures* grants with *error*."""

    def __init__(self, ledger, failures: int, error: Exception) -> None:
        self._ledger = ledger
        self._failures = failures
        self._error = error
        self.calls = 0

    async def grant_for_task_completion(self, task_id, beneficiary_id, actor_id=None):
        self.calls += 1
        if self.calls <= self._failures:
            raise self._error
        return await self._ledger.grant_for_task_completion(
            task_id, beneficiary_id, actor_id=actor_id,
        )


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def workflow(db, board, ledger, sleep) -> TaskCompletionWorkflow:
    return TaskCompletionWorkflow(db, board, ledger, executor=RetryExecutor(sleep=sleep))


def _caller(user: dict) -> Caller:
    return Caller(id=user["id"], role=Role(user["role"]))


async def _ledger_rows(db, task_id: str) -> list[dict]:
    return await db.execute_fetchall(
        "SELECT * FROM points_ledger WHERE task_id = ?", (task_id,)
    )


# ------------------------------------------------------------------
# Happy path and idempotence
# ------------------------------------------------------------------


async def test_assignee_completes_task_and_earns_points(workflow, seeded, ledger, db):
    alice, t1 = seeded["alice"], seeded["t1"]

    task = await workflow.complete(t1["id"], _caller(alice))

    assert task["id"] == t1["id"]
    assert task["completed_at"] is not None
    assert await ledger.balance_of(alice["id"]) == 50
    rows = await _ledger_rows(db, t1["id"])
    assert len(rows) == 1
    assert rows[0]["reason"] == "task_completion"
    assert rows[0]["awarded_by"] == alice["id"]


async def test_completing_twice_awards_once(workflow, seeded, ledger, db):
    alice, t1 = seeded["alice"], seeded["t1"]

    first = await workflow.complete(t1["id"], _caller(alice))
    second = await workflow.complete(t1["id"], _caller(alice))

    assert second["completed_at"] == first["completed_at"]
    assert len(await _ledger_rows(db, t1["id"])) == 1
    assert await ledger.balance_of(alice["id"]) == 50


async def test_concurrent_completions_award_once(workflow, seeded, ledger, db):
    alice, manager, t1 = seeded["alice"], seeded["manager"], seeded["t1"]

    results = await asyncio.gather(
        workflow.complete(t1["id"], _caller(alice)),
        workflow.complete(t1["id"], _caller(manager)),
    )

    assert all(r["completed_at"] is not None for r in results)
    assert len(await _ledger_rows(db, t1["id"])) == 1
    assert await ledger.balance_of(alice["id"]) == 50


async def test_manager_completion_credits_the_assignee(workflow, seeded, ledger):
    alice, manager, t1 = seeded["alice"], seeded["manager"], seeded["t1"]

    await workflow.complete(t1["id"], _caller(manager))

    assert await ledger.balance_of(alice["id"]) == 50
    assert await ledger.balance_of(manager["id"]) == 0


async def test_unassigned_task_credits_the_caller(workflow, board, seeded, ledger):
    manager = seeded["manager"]
    task = await board.create_task(seeded["l2"]["id"], "Write runbook", story_points=2)

    await workflow.complete(task["id"], _caller(manager))

    assert await ledger.balance_of(manager["id"]) == 20


# ------------------------------------------------------------------
# Rejections
# ------------------------------------------------------------------


async def test_non_assignee_member_is_forbidden(workflow, seeded, db):
    bob, t1 = seeded["bob"], seeded["t1"]

    with pytest.raises(AppError) as exc_info:
        await workflow.complete(t1["id"], _caller(bob))

    assert exc_info.value.kind is ErrorKind.FORBIDDEN
    task = await db.execute_fetchone("SELECT completed_at FROM tasks WHERE id = ?", (t1["id"],))
    assert task["completed_at"] is None
    assert await _ledger_rows(db, t1["id"]) == []


async def test_unknown_task_is_not_found(workflow, seeded):
    with pytest.raises(AppError) as exc_info:
        await workflow.complete("TSK-999", _caller(seeded["admin"]))
    assert exc_info.value.kind is ErrorKind.NOT_FOUND


# ------------------------------------------------------------------
# Best-effort award
# ------------------------------------------------------------------


async def test_transient_award_failure_is_retried(db, board, ledger, seeded, sleep):
    flaky = FlakyLedger(ledger, failures=2, error=ConnectionResetError("connection reset"))
    workflow = TaskCompletionWorkflow(db, board, flaky, executor=RetryExecutor(sleep=sleep))
    alice, t1 = seeded["alice"], seeded["t1"]

    await workflow.complete(t1["id"], _caller(alice))

    assert flaky.calls == 3
    assert sleep.await_count == 2
    assert await ledger.balance_of(alice["id"]) == 50


async def test_exhausted_award_logs_reconciliation(db, board, ledger, seeded, sleep, caplog):
    flaky = FlakyLedger(ledger, failures=10, error=TimeoutError("ledger timeout"))
    workflow = TaskCompletionWorkflow(db, board, flaky, executor=RetryExecutor(sleep=sleep))
    alice, t1 = seeded["alice"], seeded["t1"]

    with caplog.at_level(logging.ERROR, logger="pointboard.reconciliation"):
        task = await workflow.complete(t1["id"], _caller(alice))

    # The completion stands even though the award never landed.
    assert task["completed_at"] is not None
    assert flaky.calls == 3
    assert await ledger.balance_of(alice["id"]) == 0

    records = [r for r in caplog.records if r.name == "pointboard.reconciliation"]
    assert len(records) == 1
    record = records[0]
    assert "requires reconciliation" in record.getMessage()
    assert record.task_id == t1["id"]
    assert record.user_id == alice["id"]
    assert record.error_name == "TimeoutError"
    assert record.error_message == "ledger timeout"
    assert record.context == RECONCILIATION_CONTEXT


async def test_permanent_award_failure_is_not_retried(db, board, ledger, seeded, sleep, caplog):
    flaky = FlakyLedger(ledger, failures=10, error=RuntimeError("Invalid points amount"))
    workflow = TaskCompletionWorkflow(db, board, flaky, executor=RetryExecutor(sleep=sleep))

    with caplog.at_level(logging.ERROR, logger="pointboard.reconciliation"):
        task = await workflow.complete(seeded["t1"]["id"], _caller(seeded["alice"]))

    assert task["completed_at"] is not None
    assert flaky.calls == 1
    sleep.assert_not_awaited()
    assert any(r.name == "pointboard.reconciliation" for r in caplog.records)


async def test_custom_reconciliation_logger(db, board, ledger, seeded, sleep):
    recorder = MagicMock(spec=logging.Logger)
    flaky = FlakyLedger(ledger, failures=10, error=TimeoutError("slow"))
    workflow = TaskCompletionWorkflow(
        db, board, flaky,
        executor=RetryExecutor(sleep=sleep),
        reconciliation_logger=recorder,
        award_attempts=2,
    )

    await workflow.complete(seeded["t1"]["id"], _caller(seeded["alice"]))

    assert flaky.calls == 2
    recorder.error.assert_called_once()
    assert recorder.error.call_args.kwargs["extra"]["context"] == RECONCILIATION_CONTEXT
