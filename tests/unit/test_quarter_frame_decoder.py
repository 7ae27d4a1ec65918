# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from timecode.decoder import (
    InvalidFragment,
    QuarterFrameDecoder,
    encode_full_frame,
    encode_quarter_frames,
)
from timecode.model import Timecode, TimecodeSource


class Sink:
    def __init__(self) -> None:
        self.emitted: list[Timecode] = []

    def __call__(self, tc: Timecode) -> None:
        self.emitted.append(tc)


def make_decoder() -> tuple[QuarterFrameDecoder, Sink]:
    sink = Sink()
    return QuarterFrameDecoder(emit=sink), sink


def feed_nibbles(decoder: QuarterFrameDecoder, nibbles: list[int]) -> None:
    for slot, nibble in enumerate(nibbles):
        decoder.feed(slot, nibble)


def feed_timecode(decoder: QuarterFrameDecoder, tc: Timecode) -> None:
    for data in encode_quarter_frames(tc):
        decoder.feed_raw(0xF1, data)


# ---------------------------------------------------------------------
# Reconstruction
# ---------------------------------------------------------------------

def test_eight_in_order_fragments_produce_one_timecode() -> None:
    decoder, sink = make_decoder()
    # frames=0x14, seconds=0x2B, minutes=0x07, hoursAndRate=0x61
    nibbles = [0x4, 0x1, 0xB, 0x2, 0x7, 0x0, 0x1, 0x6]

    feed_nibbles(decoder, nibbles)

    assert len(sink.emitted) == 1
    tc = sink.emitted[0]
    assert tc.frames == 0x14
    assert tc.seconds == 0x2B
    assert tc.minutes == 0x07
    assert tc.hours == 0x61 & 0x1F
    assert tc.frame_rate == 30  # rate code 3
    assert tc.source is TimecodeSource.EXTERNAL


@pytest.mark.parametrize(
    ("rate_code", "frame_rate"),
    [(0, 24), (1, 25), (2, 29.97), (3, 30)],
)
def test_rate_code_selects_frame_rate(rate_code: int, frame_rate: float) -> None:
    decoder, sink = make_decoder()
    hours_and_rate = (rate_code << 5) | 1

    feed_nibbles(decoder, [0, 0, 0, 0, 0, 0, hours_and_rate & 0x0F, hours_and_rate >> 4])

    assert sink.emitted[-1].frame_rate == frame_rate
    assert sink.emitted[-1].hours == 1


def test_nothing_emitted_before_slot_seven() -> None:
    decoder, sink = make_decoder()

    feed_nibbles(decoder, [1, 0, 2, 0, 3, 0, 4])

    assert sink.emitted == []


def test_encoded_timecode_round_trips_through_raw_messages() -> None:
    decoder, sink = make_decoder()
    tc = Timecode(1, 2, 3, 4, 25, TimecodeSource.EXTERNAL)

    feed_timecode(decoder, tc)

    assert sink.emitted == [tc]


# ---------------------------------------------------------------------
# De-duplication
# ---------------------------------------------------------------------

def test_identical_timecode_is_not_re_emitted() -> None:
    decoder, sink = make_decoder()
    tc = Timecode(0, 0, 10, 0, 30, TimecodeSource.EXTERNAL)

    feed_timecode(decoder, tc)
    feed_timecode(decoder, tc)

    assert len(sink.emitted) == 1


def test_changed_frame_is_emitted() -> None:
    decoder, sink = make_decoder()

    feed_timecode(decoder, Timecode(0, 0, 10, 0, 30))
    feed_timecode(decoder, Timecode(0, 0, 10, 2, 30))

    assert [t.frames for t in sink.emitted] == [0, 2]


def test_rate_change_alone_does_not_re_emit() -> None:
    decoder, sink = make_decoder()

    feed_timecode(decoder, Timecode(0, 1, 0, 0, 30))
    feed_timecode(decoder, Timecode(0, 1, 0, 0, 25))

    assert len(sink.emitted) == 1


# ---------------------------------------------------------------------
# Sequence breaks (reset policy)
# ---------------------------------------------------------------------

def test_sequence_break_discards_partial_cycle() -> None:
    decoder, sink = make_decoder()

    for slot in range(4):
        decoder.feed(slot, 1)
    decoder.feed(6, 1)  # skipped 4 and 5
    decoder.feed(7, 1)

    assert sink.emitted == []
    assert decoder.accumulator.slots == (0,) * 8


def test_joining_mid_cycle_waits_for_slot_zero() -> None:
    decoder, sink = make_decoder()
    tc = Timecode(0, 0, 5, 5, 30)
    data = encode_quarter_frames(tc)

    for byte in data[3:]:
        decoder.feed_raw(0xF1, byte)
    assert sink.emitted == []

    feed_timecode(decoder, tc)
    assert len(sink.emitted) == 1


def test_recovers_after_break_on_next_full_cycle() -> None:
    decoder, sink = make_decoder()
    tc = Timecode(0, 0, 7, 3, 30)

    decoder.feed(0, 9)
    decoder.feed(1, 9)
    decoder.feed(5, 9)
    feed_timecode(decoder, tc)

    assert sink.emitted == [Timecode(0, 0, 7, 3, 30, TimecodeSource.EXTERNAL)]


# ---------------------------------------------------------------------
# Raw / SysEx forms
# ---------------------------------------------------------------------

def test_raw_form_splits_slot_and_nibble() -> None:
    decoder, _ = make_decoder()

    decoder.feed_raw(0xF1, 0x0A)
    decoder.feed_raw(0xF1, 0x13)

    assert decoder.accumulator.slots[:2] == (0xA, 0x3)
    assert decoder.accumulator.last_slot == 1


def test_raw_form_ignores_other_status_bytes() -> None:
    decoder, _ = make_decoder()

    assert decoder.feed_raw(0x90, 0x0A) is None
    assert decoder.accumulator.last_slot is None


def test_full_frame_sysex_sets_timecode_directly() -> None:
    decoder, sink = make_decoder()
    tc = Timecode(10, 20, 30, 12, 24, TimecodeSource.EXTERNAL)

    decoder.feed(0, 1)
    decoder.feed_sysex(encode_full_frame(tc))

    assert sink.emitted == [tc]
    assert decoder.accumulator.last_slot is None


def test_unrelated_sysex_is_ignored() -> None:
    decoder, sink = make_decoder()

    assert decoder.feed_sysex((0xF0, 0x43, 0x10, 0xF7)) is None
    assert sink.emitted == []


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------

@pytest.mark.parametrize(("slot", "nibble"), [(8, 0), (-1, 0), (0, 16), (3, -1)])
def test_out_of_range_fragment_raises(slot: int, nibble: int) -> None:
    decoder, _ = make_decoder()

    with pytest.raises(InvalidFragment):
        decoder.feed(slot, nibble)
