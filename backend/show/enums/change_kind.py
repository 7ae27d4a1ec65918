"""
Store change kinds.

Each externally visible store mutation produces exactly one StoreChange
tagged with one of these kinds. The broadcast layer maps kinds to the
collections it re-sends.
"""

from __future__ import annotations

from enum import Enum


class ChangeKind(str, Enum):
    TIMECODE = "TIMECODE"
    TIME_MODE = "TIME_MODE"
    USER_JOINED = "USER_JOINED"
    USER_LEFT = "USER_LEFT"
    USERS = "USERS"
    USER_RENAMED = "USER_RENAMED"
    NOTE_ADDED = "NOTE_ADDED"
    NOTES = "NOTES"
    TAGS = "TAGS"
