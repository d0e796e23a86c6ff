from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from src.orthomap.domain.models.external_job import ExternalJobStatus
from src.orthomap.domain.models.geo import BoundingBox
from src.orthomap.domain.models.payloads import InputFile, ProcessingOption
from src.orthomap.domain.models.task import Task
from src.orthomap.domain.models.task_status import TaskStatus


class TaskRepository(Protocol):
    """Key-value-by-id task store; every write replaces the mutable fields."""

    async def get(self, task_id: str) -> Task:
        """Load a task, raising ``TaskNotFoundError`` when it does not exist."""

    async def save(self, task: Task) -> None:
        """Insert or fully replace the task record."""

    async def delete(self, task_id: str) -> None:
        """Remove the task record."""

    async def list_by_project(self, project_id: str) -> list[Task]:
        """Return every task belonging to ``project_id``."""


class NotificationSink(Protocol):
    async def progress(self, task_id: str, percent: float) -> None:
        """Report external job progress for a task."""

    async def status_changed(self, task_id: str, status: TaskStatus) -> None:
        """Report a lifecycle status change."""

    async def completed(self, task_id: str, bounding_box: BoundingBox) -> None:
        """Report that the task's products are ready."""


class ExternalJobClient(Protocol):
    """Client for the reconstruction job runner."""

    async def create_job(
        self, name: str | None = None, options: Sequence[ProcessingOption] = ()
    ) -> str:
        """Create a job and return its identifier."""

    async def upload_inputs(self, job_id: str, files: Sequence[InputFile]) -> None:
        """Upload the capture files of a job."""

    async def commit(self, job_id: str) -> None:
        """Start processing of an uploaded job."""

    async def get_status(self, job_id: str) -> ExternalJobStatus:
        """Fetch the current job status."""

    def fetch_result_archive(self, job_id: str) -> AsyncIterator[bytes]:
        """Stream the compressed result archive of a completed job."""

    async def cancel(self, job_id: str) -> None:
        """Ask the runner to stop a job."""
