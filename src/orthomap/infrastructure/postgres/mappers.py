from __future__ import annotations

from datetime import UTC, datetime

from src.orthomap.domain.models.geo import BoundingBox
from src.orthomap.domain.models.payloads import ProcessingOption
from src.orthomap.domain.models.task import Task
from src.orthomap.domain.models.task_status import TaskStatus
from src.orthomap.infrastructure.postgres.orm import (
    TaskMetadataRow,
    TaskResultRow,
    TaskRow,
    TaskStatusRow,
)


class OrmMapper:
    @staticmethod
    def to_task_row(task: Task) -> TaskRow:
        row = TaskRow(
            id=task.id,
            project_id=task.project_id,
            name=task.name,
            description=task.description,
            input_kind=task.input_kind,
            options=[option.model_dump() for option in task.options],
        )
        row.task_metadata = OrmMapper.to_metadata_row(task)
        row.status = OrmMapper.to_status_row(task)
        row.result = OrmMapper.to_result_row(task)
        return row

    @staticmethod
    def to_metadata_row(task: Task) -> TaskMetadataRow:
        return TaskMetadataRow(
            task_id=task.id,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )

    @staticmethod
    def to_status_row(task: Task) -> TaskStatusRow:
        return TaskStatusRow(
            task_id=task.id,
            state=task.status,
            progress=task.progress,
            external_job_id=task.external_job_id,
            error=task.error,
        )

    @staticmethod
    def to_result_row(task: Task) -> TaskResultRow:
        return TaskResultRow(
            task_id=task.id,
            source_raster_path=task.source_raster_path,
            result_raster_path=task.result_raster_path,
            spectral_images=list(task.spectral_images),
            bounding_box=task.bounding_box.as_pairs() if task.bounding_box else None,
        )

    @staticmethod
    def to_domain_task(row: TaskRow) -> Task:
        status = row.status
        result = row.result
        metadata = row.task_metadata
        timestamps = {}
        if metadata is not None:
            if metadata.created_at is not None:
                timestamps["created_at"] = OrmMapper._aware(metadata.created_at)
            if metadata.updated_at is not None:
                timestamps["updated_at"] = OrmMapper._aware(metadata.updated_at)

        return Task(
            id=row.id,
            project_id=row.project_id,
            name=row.name,
            description=row.description,
            input_kind=row.input_kind,
            options=[ProcessingOption(**option) for option in row.options or []],
            status=status.state if status else TaskStatus.PENDING,
            progress=status.progress if status else 0.0,
            external_job_id=status.external_job_id if status else None,
            error=status.error if status else None,
            source_raster_path=result.source_raster_path if result else None,
            result_raster_path=result.result_raster_path if result else None,
            spectral_images=list(result.spectral_images or []) if result else [],
            bounding_box=(
                BoundingBox.from_pairs(result.bounding_box)
                if result and result.bounding_box
                else None
            ),
            **timestamps,
        )

    @staticmethod
    def _aware(value: datetime) -> datetime:
        # Some backends (SQLite) drop the offset on the way back.
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
