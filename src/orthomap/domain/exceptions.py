class OrthomapError(Exception):
    """Base class for errors raised by the processing core."""


class TaskNotFoundError(OrthomapError):
    """Raised when a task identifier does not exist in the task store."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id '{task_id}' was not found.")
        self.task_id = task_id


class InvalidStateError(OrthomapError):
    """Raised when an operation is not valid for the task's current status."""

    def __init__(self, task_id: str | None, status: object, operation: str) -> None:
        status_value = getattr(status, "value", status)
        super().__init__(
            f"Cannot {operation} task '{task_id}' while it is {status_value}."
        )
        self.task_id = task_id
        self.status = status
        self.operation = operation


class UploadError(OrthomapError):
    """Raised when submitted input files are malformed or missing."""


class ExternalJobError(OrthomapError):
    """Raised when the external reconstruction job reports failure or cancellation."""

    def __init__(self, job_id: str | None, detail: str) -> None:
        super().__init__(detail)
        self.job_id = job_id
        self.detail = detail


class ExternalCommunicationError(OrthomapError):
    """Raised when the external job runner cannot be reached or answers garbage."""

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class DecodeError(OrthomapError):
    """Raised when a raster cannot be parsed or lacks a band an index needs."""


class PersistenceError(OrthomapError):
    """Raised when the task store is unreachable or rejects a write."""
