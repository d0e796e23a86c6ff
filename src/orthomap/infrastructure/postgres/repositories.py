from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from src.orthomap.domain.exceptions import PersistenceError, TaskNotFoundError
from src.orthomap.domain.models.task import Task
from src.orthomap.domain.repositories import TaskRepository
from src.orthomap.infrastructure.postgres.mappers import OrmMapper
from src.orthomap.infrastructure.postgres.orm import PostgresOrm, TaskRow


def _with_children():
    return (
        selectinload(TaskRow.task_metadata),
        selectinload(TaskRow.status),
        selectinload(TaskRow.result),
    )


class PostgresTaskRepository(TaskRepository):
    """Postgres-backed task storage using SQLAlchemy async sessions."""

    def __init__(self, orm: PostgresOrm) -> None:
        self._orm = orm

    async def get(self, task_id: str) -> Task:
        """Fetch a task by id."""
        try:
            async with self._orm.session_factory() as session:
                result = await session.execute(
                    select(TaskRow).options(*_with_children()).where(TaskRow.id == task_id)
                )
                task_row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load task {task_id}: {exc}") from exc

        if task_row is None:
            raise TaskNotFoundError(task_id)
        return OrmMapper.to_domain_task(task_row)

    async def save(self, task: Task) -> None:
        """Insert the task or replace all of its mutable fields."""
        task_row = OrmMapper.to_task_row(task)
        try:
            async with self._orm.session_factory() as session:
                async with session.begin():
                    # One transaction keeps status and results in step.
                    await session.merge(task_row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not save task {task.id}: {exc}") from exc

    async def delete(self, task_id: str) -> None:
        try:
            async with self._orm.session_factory() as session:
                async with session.begin():
                    task_row = await session.get(TaskRow, task_id)
                    if task_row is None:
                        raise TaskNotFoundError(task_id)
                    await session.delete(task_row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not delete task {task_id}: {exc}") from exc

    async def list_by_project(self, project_id: str) -> list[Task]:
        """List a project's tasks in id order."""
        statement = (
            select(TaskRow)
            .options(*_with_children())
            .where(TaskRow.project_id == project_id)
            .order_by(TaskRow.id)
        )
        try:
            async with self._orm.session_factory() as session:
                result = await session.execute(statement)
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not list tasks of project {project_id}: {exc}") from exc

        return [OrmMapper.to_domain_task(row) for row in rows]

    async def create_schema(self) -> None:
        try:
            await self._orm.create_schema()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not create task tables: {exc}") from exc
