"""
CONSTANTS
---------
Single source of truth for all behavioral constants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# MIDI Time Code (MTC)
# =============================================================================

MTC_QUARTER_FRAME_STATUS: Final[int] = 0xF1
SYSEX_START: Final[int] = 0xF0
SYSEX_END: Final[int] = 0xF7

# Full-frame message: F0 7F <device> 01 01 hr mn sc fr F7
SYSEX_REALTIME_UNIVERSAL: Final[int] = 0x7F
SYSEX_MTC_SUB_ID: Final[int] = 0x01
SYSEX_MTC_FULL_FRAME: Final[int] = 0x01
SYSEX_FULL_FRAME_LENGTH: Final[int] = 10

QUARTER_FRAME_SLOTS: Final[int] = 8
QUARTER_FRAME_MAX_NIBBLE: Final[int] = 0x0F

HOURS_MASK: Final[int] = 0x1F
RATE_CODE_SHIFT: Final[int] = 5
RATE_CODE_MASK: Final[int] = 0x03

# 2-bit rate code -> frames per second
MTC_FRAME_RATES: Final[dict[int, float]] = {
    0: 24,
    1: 25,
    2: 29.97,
    3: 30,
}
DEFAULT_FRAME_RATE: Final[float] = 30
DEFAULT_RATE_CODE: Final[int] = 3
SUPPORTED_FRAME_RATES: Final[tuple[float, ...]] = (24, 25, 29.97, 30)

# No drop-frame correction: 29.97 rolls over like 30
NTSC_FRAME_RATE: Final[float] = 29.97
NTSC_ROLLOVER_FRAMES: Final[int] = 30

SECONDS_PER_MINUTE: Final[int] = 60
MINUTES_PER_HOUR: Final[int] = 60
HOURS_PER_DAY: Final[int] = 24

TIMECODE_FALLBACK_TEXT: Final[str] = "00:00:00:00"

# =============================================================================
# Users
# =============================================================================

DEFAULT_USER_NAME_PREFIX: Final[str] = "User"
DEFAULT_USER_NAME_SUFFIX_MAX: Final[int] = 999

# =============================================================================
# Tags
# =============================================================================

DEFAULT_TAGS: Final[tuple[tuple[str, str, str], ...]] = (
    ("safety", "Safety", "#96CEB4"),
    ("technical", "Technical", "#FFEAA7"),
    ("artistic", "Artistic", "#DDA0DD"),
    ("lighting", "Lighting", "#FF6B6B"),
    ("sound", "Sound", "#4ECDC4"),
    ("stage", "Stage", "#45B7D1"),
    ("dsm", "DSM", "#98D8C8"),
)

TAG_COLOR_PALETTE: Final[tuple[str, ...]] = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEAA7",
    "#DDA0DD",
    "#98D8C8",
    "#F7DC6F",
)

TAG_ID_LENGTH: Final[int] = 9

# =============================================================================
# Export
# =============================================================================

EXPORT_FILENAME_PREFIX: Final[str] = "timecoded-notes"
CSV_HEADER: Final[tuple[str, ...]] = (
    "User",
    "Timecode",
    "Frame Rate",
    "LX Cue",
    "Note",
    "Tags",
    "Comments",
    "Timestamp",
)
CSV_TAG_SEPARATOR: Final[str] = ", "
CSV_COMMENT_SEPARATOR: Final[str] = "; "

# =============================================================================
# Logging
# =============================================================================

LOG_TEXT_PREVIEW_CHARS: Final[int] = 50

# =============================================================================
# Client connections
# =============================================================================

# Pending outbound frames before a client is considered stalled and dropped
CLIENT_OUTBOX_MAX_MESSAGES: Final[int] = 5_000
