"""
Time sources driving the show clock.

Two implementations of one capability:
- ExternalTimecodeSource: MTC from a MIDI input port, via the decoder
- SyntheticClock: self-advancing clock when no external source exists

Exactly one source drives the store at a time. The choice is made at
startup by start_time_source(); both share the TimeSource contract so a
later runtime switch only needs stop() on one and start() on the other.

All emission happens on the event loop thread. Transport callbacks are
re-scheduled with call_soon_threadsafe before reaching the decoder.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Callable, Sequence

from constants import MTC_QUARTER_FRAME_STATUS, SYSEX_START
from observability.logger import log_event
from timecode.decoder import InvalidFragment, QuarterFrameDecoder
from timecode.midi_transport import MidiTransport, SourceUnavailable, resolve_port_name
from timecode.model import Timecode, TimecodeSource


# Resynchronise instead of bursting ticks after a long event-loop stall
_MAX_CLOCK_LAG_S = 1.0


@dataclass(frozen=True)
class SourceStatus:
    """What clients are told in system-status."""
    source_available: bool
    port_count: int
    source_name: str | None
    time_source: TimecodeSource

    def to_wire(self) -> dict[str, Any]:
        return {
            "sourceAvailable": self.source_available,
            "portCount": self.port_count,
            "sourceName": self.source_name,
            "timeSource": self.time_source.value,
        }


class TimeSource(ABC):
    """A producer of Timecode values for the store."""

    @property
    @abstractmethod
    def kind(self) -> TimecodeSource:
        raise NotImplementedError

    @property
    @abstractmethod
    def running(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def start(self) -> None:
        """
        Start producing timecode. Must be called from the event loop.

        Restarting a running source stops it first.
        """
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Stop producing timecode. Idempotent."""
        raise NotImplementedError

    async def shutdown(self) -> None:
        self.stop()


# ---------------------------------------------------------------------
# Synthetic clock
# ---------------------------------------------------------------------

class SyntheticClock(TimeSource):
    """
    Advances one frame every 1/frame_rate seconds.

    Starts from the timecode returned by `current` so a restart continues
    where the show clock stands.
    """

    def __init__(
        self,
        *,
        current: Callable[[], Timecode],
        emit: Callable[[Timecode], None],
        frame_rate: float,
    ) -> None:
        self._current = current
        self._emit = emit
        self._frame_rate = frame_rate
        self._timecode: Timecode | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def kind(self) -> TimecodeSource:
        return TimecodeSource.SYNTHETIC

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def period_s(self) -> float:
        return 1.0 / self._frame_rate

    def start(self) -> None:
        self.stop()
        self._sync_from_current()
        self._task = asyncio.get_running_loop().create_task(self._run())
        log_event({
            "event_type": "SYNTHETIC_CLOCK_STARTED",
            "frame_rate": self._frame_rate,
            "timecode": self._timecode.formatted() if self._timecode else None,
        })

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            log_event({"event_type": "SYNTHETIC_CLOCK_STOPPED"})

    async def shutdown(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def tick(self) -> Timecode:
        """Advance exactly one frame and emit the result."""
        if self._timecode is None:
            self._sync_from_current()
        assert self._timecode is not None

        self._timecode = self._timecode.advance()
        self._emit(self._timecode)
        return self._timecode

    def _sync_from_current(self) -> None:
        self._timecode = replace(
            self._current(),
            frame_rate=self._frame_rate,
            source=TimecodeSource.SYNTHETIC,
        )

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        period = self.period_s
        deadline = loop.time() + period

        try:
            while True:
                await asyncio.sleep(max(0.0, deadline - loop.time()))

                try:
                    self.tick()
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    log_event({
                        "event_type": "SYNTHETIC_CLOCK_TICK_FAILED",
                        "exception": type(exc).__name__,
                        "message": str(exc),
                    }, level="ERROR")

                deadline += period
                if loop.time() - deadline > _MAX_CLOCK_LAG_S:
                    deadline = loop.time() + period
        except asyncio.CancelledError:
            return


# ---------------------------------------------------------------------
# External MTC source
# ---------------------------------------------------------------------

class ExternalTimecodeSource(TimeSource):
    """Feeds MTC from a MIDI input port into the decoder."""

    def __init__(
        self,
        *,
        transport: MidiTransport,
        decoder: QuarterFrameDecoder,
        port: str | None = None,
    ) -> None:
        self._transport = transport
        self._decoder = decoder
        self._wanted_port = port
        self._port_name: str | None = None
        self._port_count = 0
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def kind(self) -> TimecodeSource:
        return TimecodeSource.EXTERNAL

    @property
    def running(self) -> bool:
        return self._port_name is not None

    @property
    def port_name(self) -> str | None:
        return self._port_name

    @property
    def port_count(self) -> int:
        return self._port_count

    def start(self) -> None:
        """
        Open the configured port.

        Raises:
            SourceUnavailable if no port can be opened.
        """
        self.stop()
        self._loop = asyncio.get_running_loop()

        available = self._transport.list_available_sources()
        self._port_count = len(available)
        log_event({
            "event_type": "MIDI_PORTS_LISTED",
            "port_count": len(available),
            "ports": available,
        })

        name = resolve_port_name(available, self._wanted_port)
        self._transport.open(name, self._on_transport_message)
        self._port_name = name

        log_event({"event_type": "MIDI_PORT_OPENED", "port": name})

    def stop(self) -> None:
        if self._port_name is None:
            return
        self._transport.close()
        log_event({"event_type": "MIDI_PORT_CLOSED", "port": self._port_name})
        self._port_name = None

    def _on_transport_message(self, message: Sequence[int]) -> None:
        # Transport thread: hand over to the event loop
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.handle_message, tuple(message))

    def handle_message(self, message: Sequence[int]) -> None:
        """Dispatch one raw MIDI message on the event loop."""
        if not message:
            return

        status = message[0]
        try:
            if status == MTC_QUARTER_FRAME_STATUS and len(message) >= 2:
                self._decoder.feed_raw(status, message[1])
            elif status == SYSEX_START:
                if self._decoder.feed_sysex(message) is not None:
                    log_event({"event_type": "MTC_FULL_FRAME_RECEIVED"})
        except InvalidFragment as exc:
            log_event({
                "event_type": "MTC_FRAGMENT_DROPPED",
                "error": str(exc),
            }, level="WARNING")


# ---------------------------------------------------------------------
# Startup selection
# ---------------------------------------------------------------------

def start_time_source(
    *,
    transport: MidiTransport | None,
    decoder: QuarterFrameDecoder,
    clock: SyntheticClock,
    port: str | None = None,
) -> tuple[TimeSource, SourceStatus]:
    """
    Start the external source if possible, otherwise the synthetic clock.

    `transport=None` skips MIDI entirely (disabled by configuration).
    Must be called from the event loop.
    """
    if transport is not None:
        external = ExternalTimecodeSource(
            transport=transport,
            decoder=decoder,
            port=port,
        )
        try:
            external.start()
            return external, SourceStatus(
                source_available=True,
                port_count=external.port_count,
                source_name=external.port_name,
                time_source=TimecodeSource.EXTERNAL,
            )
        except SourceUnavailable as exc:
            log_event({
                "event_type": "TIME_SOURCE_UNAVAILABLE",
                "reason": str(exc),
                "fallback": TimecodeSource.SYNTHETIC.value,
            }, level="WARNING")
            port_count = external.port_count
    else:
        port_count = 0

    clock.start()
    return clock, SourceStatus(
        source_available=False,
        port_count=port_count,
        source_name=None,
        time_source=TimecodeSource.SYNTHETIC,
    )
