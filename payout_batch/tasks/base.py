"""
PayoutTask protocol and TaskRegistry.

Contract:
    ``PayoutTask`` is what the scheduler fires: a named unit of work that
    takes the firing time and returns a result for the log.
    ``TaskRegistry`` maps ``task_type`` strings to task instances, one each.

Architecture:
    payout_batch/tasks.  No kernel imports; tasks delegate to the run service.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PayoutTask(Protocol):
    """Interface every scheduled payout task implements.

    Contract:
        - ``task_type``: unique key registered in TaskRegistry.
        - ``description``: human-readable label for logs and the CLI.
        - ``run()``: does the work, owns its own transactions, and returns a
          DTO describing the result.  Exceptions propagate to the scheduler,
          which logs them and keeps ticking.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def run(self, as_of: datetime) -> Any: ...


class TaskRegistry:
    """Registry mapping task_type strings to PayoutTask implementations.

    Contract:
        - ``register()`` adds a task; raises ValueError on duplicate.
        - ``get()`` retrieves by task_type; raises KeyError if missing.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, PayoutTask] = {}

    def register(self, task: PayoutTask) -> None:
        if task.task_type in self._tasks:
            raise ValueError(f"Task type '{task.task_type}' is already registered")
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> PayoutTask:
        try:
            return self._tasks[task_type]
        except KeyError:
            raise KeyError(
                f"No task registered for type '{task_type}'. "
                f"Available: {sorted(self._tasks)}"
            ) from None

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks
