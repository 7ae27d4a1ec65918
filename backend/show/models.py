"""
Shared show state data model.

Rules:
- Every entity is a frozen dataclass; the store swaps in updated copies.
- No behavior beyond wire serialization.
- Display names on notes and comments are snapshots, rewritten by the
  store when the author renames.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from timecode.model import Timecode


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(dt: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# =============================================================================
# Tags
# =============================================================================

@dataclass(frozen=True)
class Tag:
    id: str
    name: str
    color: str

    def to_wire(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color}


# =============================================================================
# Users
# =============================================================================

@dataclass(frozen=True)
class ShowUser:
    """A connected client. id is the connection identity."""

    id: str
    display_name: str
    joined_at: datetime
    is_typing: bool = False
    draft_timecode: Timecode | None = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.display_name,
            "isTyping": self.is_typing,
            "currentTimecode": (
                self.draft_timecode.to_wire() if self.draft_timecode else None
            ),
            "joinedAt": iso_timestamp(self.joined_at),
        }


# =============================================================================
# Notes
# =============================================================================

@dataclass(frozen=True)
class Comment:
    id: str
    author_user_id: str
    author_name: str
    text: str
    created_at: datetime

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.author_user_id,
            "user": self.author_name,
            "text": self.text,
            "timestamp": iso_timestamp(self.created_at),
        }


@dataclass(frozen=True)
class Note:
    """
    A timestamped note.

    Only tag_ids (replaced wholesale) and comments (appended) ever change
    after creation.
    """

    id: str
    author_user_id: str
    author_name: str
    text: str
    timecode: Timecode
    created_at: datetime
    tag_ids: tuple[str, ...] = ()
    comments: tuple[Comment, ...] = ()
    lx_cue: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.author_user_id,
            "user": self.author_name,
            "text": self.text,
            "timecode": self.timecode.to_wire(),
            "frameRate": self.timecode.frame_rate,
            "tagIds": list(self.tag_ids),
            "comments": [c.to_wire() for c in self.comments],
            "lxCue": self.lx_cue,
            "timestamp": iso_timestamp(self.created_at),
        }
