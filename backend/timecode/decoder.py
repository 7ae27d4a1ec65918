"""
MIDI Time Code quarter-frame decoder.

Eight quarter-frame messages carry one timecode value, one nibble each:

    slot 0: frames low       slot 4: minutes low
    slot 1: frames high      slot 5: minutes high
    slot 2: seconds low      slot 6: hours low
    slot 3: seconds high     slot 7: rate code + hours high

Accumulator policy (reset on sequence break):
- A cycle starts at slot 0 and must continue 1, 2, ... 7 without gaps.
- Any fragment that is not (previous + 1) % 8 clears the buffer and the
  cycle restarts; a slot 0 fragment starts a fresh cycle immediately.
- Slot 7 completes a cycle only when slots 0..6 were seen in order, so a
  decoded value never mixes nibbles from two different frames.

Usage example:

    decoder = QuarterFrameDecoder(emit=store.set_timecode)
    decoder.feed_raw(0xF1, 0x25)     # slot 2, nibble 5
    decoder.feed_sysex(message_bytes)
"""

from __future__ import annotations

from typing import Callable, Sequence

from constants import (
    DEFAULT_FRAME_RATE,
    DEFAULT_RATE_CODE,
    HOURS_MASK,
    MTC_FRAME_RATES,
    MTC_QUARTER_FRAME_STATUS,
    QUARTER_FRAME_MAX_NIBBLE,
    QUARTER_FRAME_SLOTS,
    RATE_CODE_MASK,
    RATE_CODE_SHIFT,
    SYSEX_END,
    SYSEX_FULL_FRAME_LENGTH,
    SYSEX_MTC_FULL_FRAME,
    SYSEX_MTC_SUB_ID,
    SYSEX_REALTIME_UNIVERSAL,
    SYSEX_START,
)
from observability.logger import log_event
from timecode.model import Timecode, TimecodeSource


# -------------------------
# Exceptions
# -------------------------

class InvalidFragment(ValueError):
    """
    Raised when a quarter-frame fragment is outside the valid range
    (slot not in 0..7 or nibble not in 0..15).
    """


# -------------------------
# Helpers
# -------------------------

def frame_rate_for_code(rate_code: int) -> float:
    """Map the 2-bit MTC rate code to frames per second (30 if unmapped)."""
    return MTC_FRAME_RATES.get(rate_code, DEFAULT_FRAME_RATE)


def rate_code_for(frame_rate: float) -> int:
    for code, rate in MTC_FRAME_RATES.items():
        if rate == frame_rate:
            return code
    return DEFAULT_RATE_CODE


def split_hours_and_rate(hours_and_rate: int) -> tuple[int, float]:
    hours = hours_and_rate & HOURS_MASK
    rate_code = (hours_and_rate >> RATE_CODE_SHIFT) & RATE_CODE_MASK
    return hours, frame_rate_for_code(rate_code)


def encode_quarter_frames(tc: Timecode) -> tuple[int, ...]:
    """
    The eight quarter-frame data bytes (slot << 4 | nibble) carrying `tc`.

    Inverse of the decoder; used by the MTC generator tool and tests.
    """
    hours_and_rate = (rate_code_for(tc.frame_rate) << RATE_CODE_SHIFT) | (tc.hours & HOURS_MASK)
    values = (tc.frames, tc.seconds, tc.minutes, hours_and_rate)

    data: list[int] = []
    for i, value in enumerate(values):
        data.append(((2 * i) << 4) | (value & QUARTER_FRAME_MAX_NIBBLE))
        data.append(((2 * i + 1) << 4) | ((value >> 4) & QUARTER_FRAME_MAX_NIBBLE))
    return tuple(data)


def encode_full_frame(tc: Timecode, *, device_id: int = SYSEX_REALTIME_UNIVERSAL) -> tuple[int, ...]:
    """Full-frame SysEx message for `tc` (all-call device by default)."""
    hours_and_rate = (rate_code_for(tc.frame_rate) << RATE_CODE_SHIFT) | (tc.hours & HOURS_MASK)
    return (
        SYSEX_START,
        SYSEX_REALTIME_UNIVERSAL,
        device_id,
        SYSEX_MTC_SUB_ID,
        SYSEX_MTC_FULL_FRAME,
        hours_and_rate,
        tc.minutes,
        tc.seconds,
        tc.frames,
        SYSEX_END,
    )


# -------------------------
# Accumulator
# -------------------------

class QuarterFrameAccumulator:
    """
    Fixed 8-slot buffer assembling one timecode value.

    Tracks the last slot written and how many consecutive slots (starting
    at slot 0) the current cycle has collected.
    """

    def __init__(self) -> None:
        self._slots: list[int] = [0] * QUARTER_FRAME_SLOTS
        self._last_slot: int | None = None
        self._collected = 0

    @property
    def slots(self) -> tuple[int, ...]:
        return tuple(self._slots)

    @property
    def last_slot(self) -> int | None:
        return self._last_slot

    def reset(self) -> None:
        self._slots = [0] * QUARTER_FRAME_SLOTS
        self._last_slot = None
        self._collected = 0

    def write(self, slot: int, nibble: int) -> bool:
        """
        Store one nibble. Returns True when a full in-order cycle completed.

        Returns:
            False if the fragment broke the sequence (buffer was reset and
            the fragment retained only if it starts a new cycle) or the
            cycle is still incomplete.
        """
        in_sequence = (
            self._last_slot is not None
            and slot == (self._last_slot + 1) % QUARTER_FRAME_SLOTS
        )

        if slot == 0:
            # Slot 0 always opens a new cycle
            self._slots = [0] * QUARTER_FRAME_SLOTS
            self._collected = 0
        elif not in_sequence or self._collected == 0:
            self.reset()
            self._last_slot = slot
            return False

        self._slots[slot] = nibble
        self._last_slot = slot
        self._collected += 1

        return slot == QUARTER_FRAME_SLOTS - 1 and self._collected == QUARTER_FRAME_SLOTS

    def to_timecode(self) -> Timecode:
        acc = self._slots
        frames = (acc[1] << 4) | acc[0]
        seconds = (acc[3] << 4) | acc[2]
        minutes = (acc[5] << 4) | acc[4]
        hours, frame_rate = split_hours_and_rate((acc[7] << 4) | acc[6])

        return Timecode(
            hours=hours,
            minutes=minutes,
            seconds=seconds,
            frames=frames,
            frame_rate=frame_rate,
            source=TimecodeSource.EXTERNAL,
        )


# -------------------------
# Decoder
# -------------------------

class QuarterFrameDecoder:
    """
    Turns MTC fragments into Timecode values.

    `emit` is called only when hours/minutes/seconds/frames differ from the
    last emitted value; eight fragments per frame otherwise flood clients
    with identical updates.
    """

    def __init__(self, *, emit: Callable[[Timecode], None]) -> None:
        self._emit = emit
        self._accumulator = QuarterFrameAccumulator()
        self._last_emitted: Timecode | None = None

    @property
    def accumulator(self) -> QuarterFrameAccumulator:
        return self._accumulator

    @property
    def last_emitted(self) -> Timecode | None:
        return self._last_emitted

    def feed(self, slot: int, nibble: int) -> Timecode | None:
        """
        Consume one quarter-frame fragment.

        Returns the newly emitted Timecode, or None if nothing was emitted.

        Raises:
            InvalidFragment if slot or nibble is out of range.
        """
        if not 0 <= slot < QUARTER_FRAME_SLOTS:
            raise InvalidFragment(f"Invalid quarter-frame slot: {slot}")
        if not 0 <= nibble <= QUARTER_FRAME_MAX_NIBBLE:
            raise InvalidFragment(f"Invalid quarter-frame nibble: {nibble}")

        if not self._accumulator.write(slot, nibble):
            return None

        return self._publish(self._accumulator.to_timecode())

    def feed_raw(self, status: int, data: int) -> Timecode | None:
        """Consume a two-byte MIDI message; non-MTC statuses are ignored."""
        if status != MTC_QUARTER_FRAME_STATUS:
            return None
        return self.feed(data >> 4, data & QUARTER_FRAME_MAX_NIBBLE)

    def feed_sysex(self, message: Sequence[int]) -> Timecode | None:
        """
        Consume a full-frame MTC SysEx message.

        Full-frame messages are sent after a locate, so the quarter-frame
        cycle in progress is discarded.
        """
        if (
            len(message) != SYSEX_FULL_FRAME_LENGTH
            or message[0] != SYSEX_START
            or message[1] != SYSEX_REALTIME_UNIVERSAL
            or message[3] != SYSEX_MTC_SUB_ID
            or message[4] != SYSEX_MTC_FULL_FRAME
            or message[-1] != SYSEX_END
        ):
            return None

        self._accumulator.reset()

        hours, frame_rate = split_hours_and_rate(message[5])
        return self._publish(
            Timecode(
                hours=hours,
                minutes=message[6],
                seconds=message[7],
                frames=message[8],
                frame_rate=frame_rate,
                source=TimecodeSource.EXTERNAL,
            )
        )

    def _publish(self, tc: Timecode) -> Timecode | None:
        if tc.same_position(self._last_emitted):
            return None

        if not tc.is_within_range():
            log_event({
                "event_type": "MTC_TIMECODE_OUT_OF_RANGE",
                "timecode": tc.formatted(),
                "frame_rate": tc.frame_rate,
            }, level="WARNING")

        self._last_emitted = tc
        self._emit(tc)
        return tc
