from pointboard.workflows.list_reorder import ListReorderWorkflow
from pointboard.workflows.task_completion import TaskCompletionWorkflow

__all__ = ["ListReorderWorkflow", "TaskCompletionWorkflow"]
