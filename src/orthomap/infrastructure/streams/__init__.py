from src.orthomap.infrastructure.streams.client import StreamsClient
from src.orthomap.infrastructure.streams.publisher import StreamsNotificationSink, StreamsPublisher

__all__ = [
    "StreamsClient",
    "StreamsPublisher",
    "StreamsNotificationSink",
]
