from __future__ import annotations

import json

from src.orthomap.domain.events.task_event import TaskEvent


def encode_event(event: TaskEvent) -> dict[str, str]:
    """Flatten an event into string stream fields; the payload travels as JSON."""
    return {
        "event_id": event.event_id,
        "type": event.type.value,
        "task_id": event.task_id,
        "ts": event.ts.isoformat(),
        "payload": json.dumps(event.payload),
    }
