from __future__ import annotations

from src.orthomap.domain.events.task_event import TaskEvent
from src.orthomap.domain.models.geo import BoundingBox
from src.orthomap.domain.models.task_status import TaskStatus
from src.orthomap.domain.repositories import NotificationSink
from src.orthomap.infrastructure.streams.client import StreamsClient
from src.orthomap.infrastructure.streams.serializers import encode_event


class StreamsPublisher:
    def __init__(self, client: StreamsClient, stream: str) -> None:
        self._client = client
        self._stream = stream

    async def publish(
        self,
        event: TaskEvent,
        *,
        maxlen: int | None = None,
        approximate: bool = True,
    ) -> None:
        await self._client.redis.xadd(
            self._stream,
            encode_event(event),
            maxlen=maxlen,
            approximate=approximate,
        )


class StreamsNotificationSink(NotificationSink):
    """Publishes task lifecycle events to a Redis stream for UI gateways to fan out."""

    def __init__(self, publisher: StreamsPublisher, *, maxlen: int | None = None) -> None:
        self._publisher = publisher
        self._maxlen = maxlen

    async def progress(self, task_id: str, percent: float) -> None:
        await self._publisher.publish(TaskEvent.progress(task_id, percent), maxlen=self._maxlen)

    async def status_changed(self, task_id: str, status: TaskStatus) -> None:
        await self._publisher.publish(TaskEvent.status(task_id, status), maxlen=self._maxlen)

    async def completed(self, task_id: str, bounding_box: BoundingBox) -> None:
        await self._publisher.publish(
            TaskEvent.complete(task_id, bounding_box), maxlen=self._maxlen
        )
