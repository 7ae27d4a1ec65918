"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- Fill in ts_ms when the caller did not supply one
- Drop events below the configured level
- No side effects beyond logging
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


_LEVELS: dict[str, int] = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
}


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_min_level: int = _LEVELS["INFO"]


def configure(level: str) -> None:
    """Set the minimum level; unknown names fall back to INFO."""
    global _min_level  # pylint: disable=global-statement
    _min_level = _LEVELS.get(level.upper(), _LEVELS["INFO"])


def log_event(event: Mapping[str, Any], *, level: str = "INFO") -> None:
    """
    Write a single JSONL event to stdout.

    The caller supplies an event dict with at least `event_type`.
    `ts_ms` and `level` are added when missing.

    Never raises: an event that cannot be serialized is replaced by a
    LOGGER_SERIALIZATION_ERROR record.
    """
    if _LEVELS.get(level, _LEVELS["INFO"]) < _min_level:
        return

    record: dict[str, Any] = {
        "ts_ms": time.time_ns() // 1_000_000,
        "level": level,
        **event,
    }

    try:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        fallback: dict[str, Any] = {
            "ts_ms": record.get("ts_ms"),
            "level": "ERROR",
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
