# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from timecode.model import Timecode, TimecodeSource, format_timecode, rollover_frames


# ---------------------------------------------------------------------
# Frame advance / rollover
# ---------------------------------------------------------------------

@pytest.mark.parametrize("frame_rate", [24, 25, 29.97, 30])
def test_end_of_day_rolls_over_to_zero(frame_rate: float) -> None:
    last = Timecode(23, 59, 59, rollover_frames(frame_rate) - 1, frame_rate)

    tc = last.advance()

    assert (tc.hours, tc.minutes, tc.seconds, tc.frames) == (0, 0, 0, 0)
    assert tc.frame_rate == frame_rate


def test_ntsc_rate_rolls_over_like_thirty() -> None:
    assert rollover_frames(29.97) == 30

    tc = Timecode(0, 0, 0, 29, 29.97).advance()

    assert (tc.seconds, tc.frames) == (1, 0)


def test_frames_carry_into_seconds_at_frame_rate() -> None:
    tc = Timecode(0, 0, 0, 24, 25).advance()
    assert (tc.seconds, tc.frames) == (1, 0)


def test_seconds_carry_into_minutes_and_hours() -> None:
    tc = Timecode(1, 59, 59, 23, 24).advance()
    assert (tc.hours, tc.minutes, tc.seconds, tc.frames) == (2, 0, 0, 0)


def test_advance_keeps_source() -> None:
    tc = Timecode(source=TimecodeSource.EXTERNAL).advance()
    assert tc.source is TimecodeSource.EXTERNAL
    assert tc.frames == 1


# ---------------------------------------------------------------------
# Comparison / range
# ---------------------------------------------------------------------

def test_same_position_ignores_rate_and_source() -> None:
    a = Timecode(1, 2, 3, 4, 30, TimecodeSource.EXTERNAL)
    b = Timecode(1, 2, 3, 4, 25, TimecodeSource.SYNTHETIC)

    assert a.same_position(b)
    assert not a.same_position(Timecode(1, 2, 3, 5))
    assert not a.same_position(None)


def test_is_within_range() -> None:
    assert Timecode(23, 59, 59, 29, 30).is_within_range()
    assert not Timecode(24, 0, 0, 0).is_within_range()
    assert not Timecode(0, 0, 0, 25, 25).is_within_range()


# ---------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------

def test_format_zero_pads_each_field() -> None:
    assert format_timecode(Timecode(1, 2, 3, 4)) == "01:02:03:04"


def test_format_accepts_wire_dict_with_missing_fields() -> None:
    assert format_timecode({"hours": 10, "frames": 7}) == "10:00:00:07"


@pytest.mark.parametrize("bad", [None, "01:02:03:04", 42, {"hours": "x"}])
def test_format_falls_back_for_malformed_values(bad: object) -> None:
    assert format_timecode(bad) == "00:00:00:00"


@pytest.mark.parametrize(
    "bad",
    [
        {"minutes": -5},
        {"seconds": 600},
        {"hours": 24},
        {"frames": 25, "frameRate": 25},
    ],
)
def test_format_falls_back_for_out_of_range_wire_values(bad: dict[str, int]) -> None:
    assert format_timecode(bad) == "00:00:00:00"


# ---------------------------------------------------------------------
# Wire conversion
# ---------------------------------------------------------------------

def test_to_wire_uses_client_field_names() -> None:
    wire = Timecode(1, 2, 3, 4, 25, TimecodeSource.EXTERNAL).to_wire()

    assert wire == {
        "hours": 1,
        "minutes": 2,
        "seconds": 3,
        "frames": 4,
        "frameRate": 25,
        "source": "external",
    }


def test_from_wire_defaults_missing_fields() -> None:
    tc = Timecode.from_wire({"hours": 1, "minutes": 2}, default_frame_rate=25)

    assert tc == Timecode(1, 2, 0, 0, 25, TimecodeSource.SYNTHETIC)


def test_from_wire_replaces_unsupported_frame_rate() -> None:
    tc = Timecode.from_wire({"frameRate": 60}, default_frame_rate=24)

    assert tc is not None
    assert tc.frame_rate == 24


@pytest.mark.parametrize("bad", [None, [], "x", {"hours": "1"}, {"frames": 1.5}, {"hours": True}])
def test_from_wire_rejects_malformed_input(bad: object) -> None:
    assert Timecode.from_wire(bad) is None


@pytest.mark.parametrize(
    "bad",
    [
        {"hours": 99, "minutes": -5, "seconds": 600, "frames": 1000},
        {"minutes": -1},
        {"hours": 24},
        {"minutes": 60},
        {"seconds": 60},
        {"frames": 30},
        {"frames": 24, "frameRate": 24},
    ],
)
def test_from_wire_rejects_out_of_range_fields(bad: dict[str, int]) -> None:
    assert Timecode.from_wire(bad) is None


def test_from_wire_accepts_last_frame_of_the_day() -> None:
    tc = Timecode.from_wire(
        {"hours": 23, "minutes": 59, "seconds": 59, "frames": 29, "frameRate": 29.97},
    )

    assert tc is not None
    assert tc.formatted() == "23:59:59:29"
