"""
Duration metrics emitted as JSONL events.

- Monotonic clock for durations, wall clock for ts_ms
- One measurement = one METRIC_TIMER event, no aggregation
- Use timed() so a timer is always stopped
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator
from uuid import uuid4

from observability.logger import log_event


# timer_id -> (metric name, start monotonic ns)
_active_timers: dict[str, tuple[str, int]] = {}


def start_timer(name: str) -> str:
    """Start a timer; pass the returned id to stop_timer() in a finally block."""
    timer_id = f"timer_{uuid4().hex[:12]}"
    _active_timers[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    connection_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """
    Emit the elapsed time for `timer_id`.

    Returns:
        duration_ms, or None for an unknown or already stopped timer
    """
    entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, start_ns = entry
    duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

    log_event({
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ms,
        "connection_id": connection_id,
        "details": details or {},
    })
    return duration_ms


@contextmanager
def timed(
    name: str,
    *,
    connection_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Time the enclosed block. The metric is emitted even if the block raises.

        with timed("export_encode", details={"format": "csv"}):
            result = encode_export(...)
    """
    timer_id = start_timer(name)
    try:
        yield
    finally:
        stop_timer(timer_id, connection_id=connection_id, details=details)
