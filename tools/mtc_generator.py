"""
Send MIDI Time Code to an output port for rehearsals without a desk.

    pip install -e ".[midi]"
    python tools/mtc_generator.py --list
    python tools/mtc_generator.py --port "IAC Driver Bus 1" --rate 25 --start 01:00:00:00

Sends a full-frame SysEx first, then quarter frames at 4 per frame.
"""

from __future__ import annotations

import argparse
import sys
import time

import mido

from constants import MTC_QUARTER_FRAME_STATUS, SUPPORTED_FRAME_RATES
from timecode.decoder import encode_full_frame, encode_quarter_frames
from timecode.model import Timecode, TimecodeSource


def parse_timecode(text: str, frame_rate: float) -> Timecode:
    parts = text.split(":")
    if len(parts) != 4 or not all(p.isdigit() for p in parts):
        raise argparse.ArgumentTypeError(f"expected HH:MM:SS:FF, got {text!r}")
    hours, minutes, seconds, frames = (int(p) for p in parts)
    tc = Timecode(hours, minutes, seconds, frames, frame_rate, TimecodeSource.EXTERNAL)
    if not tc.is_within_range():
        raise argparse.ArgumentTypeError(f"timecode out of range: {text}")
    return tc


def run(port_name: str, start: Timecode) -> None:
    quarter_interval = 1.0 / (start.frame_rate * 4)

    with mido.open_output(port_name) as port:
        port.send(mido.Message("sysex", data=encode_full_frame(start)[1:-1]))

        tc = start
        next_send = time.perf_counter()
        while True:
            # One full cycle spans two frames
            for data in encode_quarter_frames(tc):
                next_send += quarter_interval
                time.sleep(max(0.0, next_send - time.perf_counter()))
                port.send(mido.Message.from_bytes([MTC_QUARTER_FRAME_STATUS, data]))
            tc = tc.advance().advance()
            print(f"\r{tc.formatted()}", end="", flush=True)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--list", action="store_true", help="list output ports and exit")
    parser.add_argument("--port", help="output port name (default: first port)")
    parser.add_argument("--rate", type=float, default=30, choices=SUPPORTED_FRAME_RATES)
    parser.add_argument("--start", default="00:00:00:00")
    args = parser.parse_args()

    names = mido.get_output_names()
    if args.list:
        for i, name in enumerate(names):
            print(f"{i}: {name}")
        return 0

    if not names and not args.port:
        print("No MIDI output ports available", file=sys.stderr)
        return 1

    try:
        run(args.port or names[0], parse_timecode(args.start, args.rate))
    except KeyboardInterrupt:
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
