"""In-process event log for selections, ratings and chat traffic; oldest events fall off first."""
from __future__ import annotations

import time
from collections import deque
from typing import Any, Literal, get_args

EventType = Literal["next_name", "rating", "chat", "contact"]
EVENT_TYPES: frozenset[str] = frozenset(get_args(EventType))

MAX_EVENTS = 10_000

_events: deque[dict[str, Any]] = deque(maxlen=MAX_EVENTS)


def record_event(event_type: EventType, data: dict[str, Any]) -> None:
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown analytics event type: {event_type!r}")
    _events.append({
        "type": event_type,
        "timestamp": time.time(),
        **data,
    })


def get_events(event_type: EventType | None = None) -> list[dict[str, Any]]:
    """Snapshot of recorded events, optionally of one type, oldest first."""
    events = list(_events)
    if event_type is None:
        return events
    return [e for e in events if e["type"] == event_type]


def clear_events() -> None:
    _events.clear()
