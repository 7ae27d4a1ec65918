"""
Timecode value type.

Rules:
- Timecode is an immutable value; advancing produces a new instance.
- 29.97 rolls over at 30 frames (no drop-frame correction).
- Formatting never raises: malformed input renders as 00:00:00:00.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from constants import (
    DEFAULT_FRAME_RATE,
    HOURS_PER_DAY,
    MINUTES_PER_HOUR,
    NTSC_FRAME_RATE,
    NTSC_ROLLOVER_FRAMES,
    SECONDS_PER_MINUTE,
    SUPPORTED_FRAME_RATES,
    TIMECODE_FALLBACK_TEXT,
)


class TimecodeSource(str, Enum):
    """
    Where a timecode value came from.

    EXTERNAL:
        Decoded from an external MTC stream.

    SYNTHETIC:
        Produced by the internal fallback clock.
    """

    EXTERNAL = "external"
    SYNTHETIC = "synthetic"


def rollover_frames(frame_rate: float) -> int:
    """Number of frames in one second for carry purposes."""
    if frame_rate == NTSC_FRAME_RATE:
        return NTSC_ROLLOVER_FRAMES
    return int(frame_rate)


@dataclass(frozen=True)
class Timecode:
    """Show clock position in HH:MM:SS:FF at a given frame rate."""

    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    frames: int = 0
    frame_rate: float = DEFAULT_FRAME_RATE
    source: TimecodeSource = TimecodeSource.SYNTHETIC

    def same_position(self, other: Timecode | None) -> bool:
        """True if hours/minutes/seconds/frames all match."""
        if other is None:
            return False
        return (
            self.hours == other.hours
            and self.minutes == other.minutes
            and self.seconds == other.seconds
            and self.frames == other.frames
        )

    def is_within_range(self) -> bool:
        return (
            0 <= self.hours < HOURS_PER_DAY
            and 0 <= self.minutes < MINUTES_PER_HOUR
            and 0 <= self.seconds < SECONDS_PER_MINUTE
            and 0 <= self.frames < rollover_frames(self.frame_rate)
        )

    def advance(self) -> Timecode:
        """Return the timecode one frame later, wrapping at 24 hours."""
        frames = self.frames + 1
        seconds = self.seconds
        minutes = self.minutes
        hours = self.hours

        if frames >= rollover_frames(self.frame_rate):
            frames = 0
            seconds += 1
        if seconds >= SECONDS_PER_MINUTE:
            seconds = 0
            minutes += 1
        if minutes >= MINUTES_PER_HOUR:
            minutes = 0
            hours += 1
        if hours >= HOURS_PER_DAY:
            hours = 0

        return replace(
            self,
            hours=hours,
            minutes=minutes,
            seconds=seconds,
            frames=frames,
        )

    def formatted(self) -> str:
        return format_timecode(self)

    def to_wire(self) -> dict[str, Any]:
        return {
            "hours": self.hours,
            "minutes": self.minutes,
            "seconds": self.seconds,
            "frames": self.frames,
            "frameRate": self.frame_rate,
            "source": self.source.value,
        }

    @staticmethod
    def from_wire(
        data: Any,
        *,
        default_frame_rate: float = DEFAULT_FRAME_RATE,
        source: TimecodeSource = TimecodeSource.SYNTHETIC,
    ) -> Timecode | None:
        """
        Build a Timecode from a client-supplied dict.

        Missing fields default to 0. Returns None when `data` is not a dict,
        any field is not an integer, or a field is outside its modulus
        (negative, or past 23:59:59 and the last frame of the second).
        Frame rates outside the supported set fall back to
        `default_frame_rate`.
        """
        if not isinstance(data, dict):
            return None

        fields: dict[str, int] = {}
        for key in ("hours", "minutes", "seconds", "frames"):
            value = data.get(key, 0)
            if isinstance(value, bool) or not isinstance(value, int):
                return None
            fields[key] = value

        frame_rate = data.get("frameRate", default_frame_rate)
        if frame_rate not in SUPPORTED_FRAME_RATES:
            frame_rate = default_frame_rate

        try:
            parsed_source = TimecodeSource(data.get("source", source.value))
        except ValueError:
            parsed_source = source

        tc = Timecode(frame_rate=frame_rate, source=parsed_source, **fields)
        if not tc.is_within_range():
            return None
        return tc


def format_timecode(tc: Any) -> str:
    """
    Render HH:MM:SS:FF, zero-padded to two digits per field.

    Accepts a Timecode or a wire dict; anything else, or a wire dict that
    Timecode.from_wire() rejects, yields 00:00:00:00. Timecode instances
    render as-is so out-of-range decoder output stays visible in logs.
    """
    if isinstance(tc, dict):
        tc = Timecode.from_wire(tc)

    if not isinstance(tc, Timecode):
        return TIMECODE_FALLBACK_TEXT

    parts = (tc.hours, tc.minutes, tc.seconds, tc.frames)

    if not all(isinstance(p, int) and not isinstance(p, bool) for p in parts):
        return TIMECODE_FALLBACK_TEXT

    return ":".join(f"{p:02d}" for p in parts)
