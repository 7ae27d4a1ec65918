"""
MIDI input transport contract.

This module defines the port-level interface the external timecode source
talks to, plus the mido-backed implementation used in production.

Key invariants:
- The transport only moves bytes; decoding lives in timecode.decoder.
- Callbacks may run on a transport-owned thread. Consumers must hop back
  onto their event loop before touching shared state.
- close() is idempotent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

import mido


MessageCallback = Callable[[Sequence[int]], None]


class SourceUnavailable(Exception):
    """
    Raised when no external time source can be opened (no MIDI backend,
    no input ports, or the requested port does not exist).

    Never fatal: the server falls back to the synthetic clock.
    """


class MidiTransport(ABC):
    """Abstract MIDI input port access."""

    @abstractmethod
    def list_available_sources(self) -> list[str]:
        """Return the names of input ports currently visible."""
        raise NotImplementedError

    @abstractmethod
    def open(self, source: str, callback: MessageCallback) -> None:
        """
        Open `source` and deliver every incoming message's raw bytes to
        `callback`.

        Raises:
            SourceUnavailable if the port cannot be opened.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Close the open port, if any."""
        raise NotImplementedError


class MidoTransport(MidiTransport):
    """MidiTransport on top of mido (python-rtmidi backend by default)."""

    def __init__(self) -> None:
        self._port: Any = None

    def list_available_sources(self) -> list[str]:
        try:
            return list(mido.get_input_names())
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # ImportError without rtmidi; rtmidi's own errors without a sequencer
            raise SourceUnavailable(
                f"MIDI backend unavailable: {type(exc).__name__}: {exc}"
            ) from exc

    def open(self, source: str, callback: MessageCallback) -> None:
        self.close()

        def _on_message(message: mido.Message) -> None:
            callback(message.bytes())

        try:
            self._port = mido.open_input(source, callback=_on_message)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise SourceUnavailable(
                f"Cannot open MIDI port {source!r}: {type(exc).__name__}: {exc}"
            ) from exc

    def close(self) -> None:
        if self._port is not None:
            self._port.close()
            self._port = None


def resolve_port_name(available: list[str], wanted: str | None) -> str:
    """
    Pick the port to open.

    `wanted` may be a port name, a zero-based index, or None for the first
    port.

    Raises:
        SourceUnavailable if nothing matches.
    """
    if not available:
        raise SourceUnavailable("No MIDI input ports available")

    if wanted is None or wanted == "":
        return available[0]

    if wanted in available:
        return wanted

    if wanted.isdigit() and int(wanted) < len(available):
        return available[int(wanted)]

    raise SourceUnavailable(f"MIDI port {wanted!r} not found")
