"""
Global time display mode.

One value for the whole show (not per user). Clients use it to decide
whether notes are stamped against the show clock or the wall clock.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class TimeMode(str, Enum):
    """
    EXTERNAL_CLOCK:
        Notes follow the show timecode (MTC or synthetic).

    WALL_CLOCK:
        Notes follow the local time of day.
    """

    EXTERNAL_CLOCK = "external-clock"
    WALL_CLOCK = "wall-clock"

    @classmethod
    def parse(cls, value: Any) -> TimeMode | None:
        """Return the matching mode, or None for anything else."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return _LEGACY_ALIASES.get(value)


# Wire values used by earlier clients
_LEGACY_ALIASES: dict[str, TimeMode] = {
    "midi": TimeMode.EXTERNAL_CLOCK,
    "realtime": TimeMode.WALL_CLOCK,
}
