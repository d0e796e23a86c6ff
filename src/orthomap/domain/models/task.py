from datetime import UTC, datetime

from pydantic import BaseModel, Field

from src.orthomap.domain.exceptions import InvalidStateError
from src.orthomap.domain.models.geo import BoundingBox
from src.orthomap.domain.models.input_kind import InputKind
from src.orthomap.domain.models.payloads import ProcessingOption
from src.orthomap.domain.models.task_status import TaskStatus


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Task(BaseModel):
    id: str = Field(description="Unique task identifier.")
    project_id: str = Field(description="Identifier of the owning project.")
    name: str | None = Field(default=None, description="Human readable task name.")
    description: str | None = Field(default=None, description="Free-form description.")
    input_kind: InputKind = Field(description="Capture set or pre-built raster.")
    options: list[ProcessingOption] = Field(
        default_factory=list, description="Options forwarded to the external job."
    )
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Lifecycle status.")
    external_job_id: str | None = Field(
        default=None, description="Identifier of the external reconstruction job."
    )
    source_raster_path: str | None = Field(
        default=None, description="Staged user raster for the pre-built raster path."
    )
    result_raster_path: str | None = Field(
        default=None, description="Final orthophoto raster."
    )
    spectral_images: list[str] = Field(
        default_factory=list, description="Derived index images, RGB/NDVI/INFRARED/VARI."
    )
    bounding_box: BoundingBox | None = Field(
        default=None, description="Geographic extent of the result raster."
    )
    error: str | None = Field(default=None, description="Failure detail, if any.")
    progress: float = Field(default=0.0, description="Progress percentage, 0-100.")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def start_processing(self, *, source_raster_path: str | None = None) -> None:
        self._require_transition(TaskStatus.PROCESSING, "start processing")
        self.status = TaskStatus.PROCESSING
        self.source_raster_path = source_raster_path
        self.progress = 0.0
        self.error = None
        self._touch()

    def assign_external_job(self, job_id: str) -> None:
        if self.status is not TaskStatus.PROCESSING:
            raise InvalidStateError(self.id, self.status, "assign an external job to")
        if self.external_job_id is not None and self.external_job_id != job_id:
            raise InvalidStateError(self.id, self.status, "reassign the external job of")
        self.external_job_id = job_id
        self._touch()

    def record_progress(self, percent: float) -> None:
        if self.status is not TaskStatus.PROCESSING:
            raise InvalidStateError(self.id, self.status, "record progress for")
        self.progress = min(max(float(percent), 0.0), 100.0)
        self._touch()

    def complete(
        self,
        raster_path: str,
        spectral_images: list[str],
        bounding_box: BoundingBox,
    ) -> None:
        self._require_transition(TaskStatus.COMPLETED, "complete")
        self.result_raster_path = raster_path
        self.spectral_images = list(spectral_images)
        self.bounding_box = bounding_box
        self.progress = 100.0
        self.error = None
        self.status = TaskStatus.COMPLETED
        self._touch()

    def fail(self, detail: str) -> None:
        self._require_transition(TaskStatus.FAILED, "fail")
        self.status = TaskStatus.FAILED
        self.error = detail
        self._touch()

    def reset(self) -> None:
        """Explicit re-submission: the only way out of a terminal status."""
        if not self.status.is_terminal:
            raise InvalidStateError(self.id, self.status, "reset")
        self.status = TaskStatus.PENDING
        self.external_job_id = None
        self.source_raster_path = None
        self.result_raster_path = None
        self.spectral_images = []
        self.bounding_box = None
        self.error = None
        self.progress = 0.0
        self._touch()

    def _require_transition(self, target: TaskStatus, operation: str) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidStateError(self.id, self.status, operation)

    def _touch(self) -> None:
        self.updated_at = _utcnow()
