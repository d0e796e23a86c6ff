from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from src.orthomap.domain.models.geo import BoundingBox
from src.orthomap.domain.models.task_status import TaskStatus


class EventType(str, Enum):
    TASK_PROGRESS = "task:progress"
    TASK_STATUS = "task:status"
    TASK_COMPLETE = "task:complete"


class TaskEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    type: EventType
    task_id: str
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def progress(cls, task_id: str, percent: float) -> TaskEvent:
        return cls(type=EventType.TASK_PROGRESS, task_id=task_id, payload={"progress": percent})

    @classmethod
    def status(cls, task_id: str, status: TaskStatus) -> TaskEvent:
        return cls(type=EventType.TASK_STATUS, task_id=task_id, payload={"status": status.value})

    @classmethod
    def complete(cls, task_id: str, bounding_box: BoundingBox) -> TaskEvent:
        return cls(
            type=EventType.TASK_COMPLETE,
            task_id=task_id,
            payload={
                "status": TaskStatus.COMPLETED.value,
                "boundingBox": bounding_box.as_pairs(),
            },
        )
