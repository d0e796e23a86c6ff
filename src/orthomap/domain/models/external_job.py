from enum import IntEnum

from pydantic import BaseModel, Field


class ExternalJobCode(IntEnum):
    QUEUED = 10
    RUNNING = 20
    FAILED = 30
    COMPLETED = 40
    CANCELED = 50


class ExternalJobStatus(BaseModel):
    job_id: str = Field(description="Identifier assigned by the job runner.")
    code: int = Field(description="Raw status code reported by the job runner.")
    progress: float = Field(default=0.0, description="Reported progress, 0-100.")
    error_message: str | None = Field(
        default=None, description="Failure detail reported by the job runner."
    )

    @property
    def known_code(self) -> ExternalJobCode | None:
        try:
            return ExternalJobCode(self.code)
        except ValueError:
            return None

    @property
    def is_running(self) -> bool:
        return self.known_code in (ExternalJobCode.QUEUED, ExternalJobCode.RUNNING)

    @property
    def is_completed(self) -> bool:
        return self.known_code is ExternalJobCode.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.known_code in (ExternalJobCode.FAILED, ExternalJobCode.CANCELED)
