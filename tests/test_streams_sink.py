from __future__ import annotations

import json
from datetime import datetime

import pytest

from src.orthomap.domain.events.task_event import TaskEvent
from src.orthomap.domain.models.geo import BoundingBox, LatLng
from src.orthomap.domain.models.task_status import TaskStatus
from src.orthomap.infrastructure.streams.publisher import (
    StreamsNotificationSink,
    StreamsPublisher,
)
from src.orthomap.infrastructure.streams.serializers import encode_event


class FakeRedis:
    def __init__(self) -> None:
        self.entries: list[tuple[str, dict[str, str], int | None, bool]] = []

    async def xadd(self, name, fields, maxlen=None, approximate=True):
        self.entries.append((name, fields, maxlen, approximate))
        return f"{len(self.entries)}-0"


class FakeStreamsClient:
    def __init__(self) -> None:
        self.redis = FakeRedis()


BOX = BoundingBox(
    south_west=LatLng(lat=36.14, lng=-81.0),
    north_east=LatLng(lat=36.15, lng=-80.99),
)


def _sink(maxlen: int | None = 500) -> tuple[StreamsNotificationSink, FakeRedis]:
    client = FakeStreamsClient()
    publisher = StreamsPublisher(client, "task-events")
    return StreamsNotificationSink(publisher, maxlen=maxlen), client.redis


@pytest.mark.asyncio
async def test_sink_publishes_lifecycle_events() -> None:
    sink, redis = _sink()

    await sink.progress("task-1", 42.0)
    await sink.status_changed("task-1", TaskStatus.PROCESSING)
    await sink.completed("task-1", BOX)

    assert [entry[0] for entry in redis.entries] == ["task-events"] * 3
    assert [entry[2] for entry in redis.entries] == [500] * 3
    fields = [entry[1] for entry in redis.entries]
    assert [field["type"] for field in fields] == [
        "task:progress",
        "task:status",
        "task:complete",
    ]
    assert {field["task_id"] for field in fields} == {"task-1"}
    payloads = [json.loads(field["payload"]) for field in fields]
    assert payloads[0] == {"progress": 42.0}
    assert payloads[1] == {"status": "PROCESSING"}
    assert payloads[2] == {
        "status": "COMPLETED",
        "boundingBox": [[36.14, -81.0], [36.15, -80.99]],
    }


@pytest.mark.asyncio
async def test_unbounded_stream_passes_no_maxlen() -> None:
    sink, redis = _sink(maxlen=None)

    await sink.status_changed("task-1", TaskStatus.FAILED)

    assert redis.entries[0][2] is None


def test_encoded_event_fields_are_strings() -> None:
    event = TaskEvent.status("task-9", TaskStatus.FAILED)

    fields = encode_event(event)

    assert fields["type"] == "task:status"
    assert fields["event_id"] == event.event_id
    assert json.loads(fields["payload"]) == {"status": "FAILED"}
    assert datetime.fromisoformat(fields["ts"]) == event.ts
    assert all(isinstance(value, str) for value in fields.values())
