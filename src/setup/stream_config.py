from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from src.orthomap.infrastructure.streams.client import StreamsClient
from src.orthomap.infrastructure.streams.publisher import (
    StreamsNotificationSink,
    StreamsPublisher,
)

STREAM_TASK_EVENTS = "task-events"


class StreamSettings(BaseSettings):
    """Configuration for publishing task events to Redis Streams."""
    REDIS_URL: str = "redis://redis:6379/0"
    STREAM_NAME: str = STREAM_TASK_EVENTS
    STREAM_MAXLEN: int | None = 10000

    model_config = ConfigDict(env_file=".env", extra="ignore")


def build_stream_publisher(settings: StreamSettings | None = None) -> StreamsPublisher:
    if settings is None:
        settings = StreamSettings()
    client = StreamsClient(settings.REDIS_URL)
    return StreamsPublisher(client, settings.STREAM_NAME)


def build_notification_sink(settings: StreamSettings | None = None) -> StreamsNotificationSink:
    """Create the sink the orchestrator reports progress and completion through."""
    if settings is None:
        settings = StreamSettings()
    return StreamsNotificationSink(
        build_stream_publisher(settings), maxlen=settings.STREAM_MAXLEN
    )
