from __future__ import annotations

from src.orthomap.domain.exceptions import TaskNotFoundError
from src.orthomap.domain.models.task import Task
from src.orthomap.domain.repositories import TaskRepository


class InMemoryTaskRepository(TaskRepository):
    """Process-local task store; hands out copies so callers never share state."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    async def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task.model_copy(deep=True)

    async def save(self, task: Task) -> None:
        self._tasks[task.id] = task.model_copy(deep=True)

    async def delete(self, task_id: str) -> None:
        if self._tasks.pop(task_id, None) is None:
            raise TaskNotFoundError(task_id)

    async def list_by_project(self, project_id: str) -> list[Task]:
        return [
            task.model_copy(deep=True)
            for task in self._tasks.values()
            if task.project_id == project_id
        ]
