"""
tasks.py - Task store interface consumed by the step executor.

The executor only needs a task's identity and title (to seed
``{{task.title}}`` style placeholders). Task persistence lives elsewhere;
anything with these two methods can be passed in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


@dataclass
class Task:
    """A unit of work a workflow run operates on."""

    id: str
    title: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


def task_ref(task: Task) -> Dict[str, Any]:
    """The task reference stored in ``run.context["task"]``."""
    return {"id": task.id, "title": task.title}


class TaskStore(Protocol):
    def get_task(self, task_id: str) -> Optional[Task]: ...

    def update_task(self, task_id: str, patch: Dict[str, Any]) -> Optional[Task]: ...


class InMemoryTaskStore:
    """Dictionary-backed TaskStore for the CLI and tests."""

    def __init__(self, tasks: Optional[Dict[str, Task]] = None):
        self._tasks: Dict[str, Task] = dict(tasks or {})

    def add(self, task: Task) -> Task:
        self._tasks[task.id] = task
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def update_task(self, task_id: str, patch: Dict[str, Any]) -> Optional[Task]:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        if "title" in patch:
            task.title = patch["title"]
        task.extra.update({k: v for k, v in patch.items() if k not in ("id", "title")})
        return task
