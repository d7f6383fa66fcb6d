"""Complete a task, then award its points on a best-effort basis.

Completion is the committed effect.  The points award runs afterwards under
the retry executor; if it still fails, a reconciliation record is logged and
the task stays completed.
"""

from __future__ import annotations

import logging

from pointboard.auth import Caller, can_manage_tasks
from pointboard.board import BoardStore
from pointboard.errors import fatal, forbidden, not_found
from pointboard.points_ledger import PointsLedger
from pointboard.retry import RetryExecutor
from pointboard.store.protocol import RemoteStore

logger = logging.getLogger(__name__)

RECONCILIATION_CONTEXT = "task_completion_points_award_failed_after_retries"


class TaskCompletionWorkflow:
    """Drive a task from incomplete to completed and award its points.

    Parameters
    ----------
    db:
        Store running the ``complete_task_atomic`` procedure.
    board:
        Task accessor.
    ledger:
        Ledger that grants the completion points.
    executor:
        Retry executor wrapping the award (a default one is built if omitted).
    reconciliation_logger:
        Where failed awards are recorded for operators.
    award_attempts, award_initial_delay:
        Retry budget for the award step (seconds for the delay).
    """

    def __init__(
        self,
        db: RemoteStore,
        board: BoardStore,
        ledger: PointsLedger,
        executor: RetryExecutor | None = None,
        reconciliation_logger: logging.Logger | None = None,
        award_attempts: int = 3,
        award_initial_delay: float = 0.1,
    ) -> None:
        self._db = db
        self._board = board
        self._ledger = ledger
        self._executor = executor or RetryExecutor()
        self._reconciliation = reconciliation_logger or logging.getLogger(
            "pointboard.reconciliation"
        )
        self.award_attempts = award_attempts
        self.award_initial_delay = award_initial_delay

    async def complete(self, task_id: str, caller: Caller) -> dict:
        """Complete *task_id* on behalf of *caller* and return the task.

        Completing an already-completed task returns it unchanged and
        awards nothing.
        """
        task = await self._board.get_task(task_id)
        if task is None:
            raise not_found(f"Task not found: {task_id}", task_id=task_id)

        if task["assigned_to"] != caller.id and not can_manage_tasks(caller.role):
            raise forbidden(
                "You can only complete tasks assigned to you, or you must be a manager",
                task_id=task_id, user_id=caller.id,
            )

        if task["completed_at"] is not None:
            return task

        completed = await self._db.call("complete_task_atomic", task_id=task_id)
        if completed is None:
            # The conditional update changed nothing: re-read to find out why.
            current = await self._board.get_task(task_id)
            if current is None:
                raise not_found(f"Task not found: {task_id}", task_id=task_id)
            if current["completed_at"] is None:
                raise fatal(
                    f"Task {task_id} was neither completed nor updated",
                    task_id=task_id,
                )
            logger.info("Task %s was completed concurrently; skipping award", task_id)
            return current

        logger.info("Task %s completed by %s", task_id, caller.id)
        beneficiary_id = completed["assigned_to"] or caller.id
        await self._award_points(task_id, beneficiary_id, caller.id)
        return completed

    async def _award_points(self, task_id: str, beneficiary_id: str, actor_id: str) -> None:
        try:
            await self._executor.run(
                lambda: self._ledger.grant_for_task_completion(
                    task_id, beneficiary_id, actor_id=actor_id,
                ),
                max_attempts=self.award_attempts,
                initial_delay=self.award_initial_delay,
            )
        except Exception as exc:
            self._reconciliation.error(
                "Failed to award points for task completion after retries "
                "- requires reconciliation",
                extra={
                    "task_id": task_id,
                    "user_id": beneficiary_id,
                    "error_name": type(exc).__name__,
                    "error_message": str(exc),
                    "context": RECONCILIATION_CONTEXT,
                },
            )
