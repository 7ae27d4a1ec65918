"""
Per-client outbound channel.

The coordinator enqueues already-encoded frames synchronously (no await),
so the order frames enter each outbox is the order state changed. A writer
task owned by the transport drains the outbox to the socket.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from uuid import uuid4

from constants import CLIENT_OUTBOX_MAX_MESSAGES
from observability.logger import log_event


def new_connection_id() -> str:
    return f"conn_{uuid4().hex[:12]}"


@dataclass
class OutboxCounters:
    sent: int = 0
    dropped: int = 0


class ClientConnection:
    """
    FIFO of encoded frames for one client.

    A None entry is the close marker: the writer stops after it.
    """

    def __init__(
        self,
        connection_id: str | None = None,
        *,
        max_pending: int = CLIENT_OUTBOX_MAX_MESSAGES,
    ) -> None:
        self.id = connection_id or new_connection_id()
        self._outbox: asyncio.Queue[str | None] = asyncio.Queue()
        self._max_pending = max_pending
        self._closed = False
        self.counters = OutboxCounters()

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._outbox.qsize()

    def send(self, frame: str) -> bool:
        """
        Enqueue one encoded frame.

        Returns:
            True if enqueued
            False if the connection is closed or was just closed because
            the client stopped draining its outbox
        """
        if self._closed:
            self.counters.dropped += 1
            return False

        if self._outbox.qsize() >= self._max_pending:
            log_event({
                "event_type": "CLIENT_OUTBOX_OVERFLOW",
                "connection_id": self.id,
                "pending": self._outbox.qsize(),
            }, level="WARNING")
            self.counters.dropped += 1
            self.close()
            return False

        self._outbox.put_nowait(frame)
        self.counters.sent += 1
        return True

    def close(self) -> None:
        """Idempotent. Frames already queued are still delivered."""
        if self._closed:
            return
        self._closed = True
        self._outbox.put_nowait(None)

    async def next_frame(self) -> str | None:
        """Wait for the next frame; None means the connection is closing."""
        return await self._outbox.get()

    def drain(self) -> tuple[str, ...]:
        """Take every queued frame without waiting (close marker excluded)."""
        frames: list[str] = []
        while not self._outbox.empty():
            frame = self._outbox.get_nowait()
            if frame is not None:
                frames.append(frame)
        return tuple(frames)


@dataclass
class ConnectionRegistry:
    """Connected clients in join order."""
    connections: dict[str, ClientConnection] = field(default_factory=dict)

    def add(self, connection: ClientConnection) -> None:
        self.connections[connection.id] = connection

    def pop(self, connection_id: str) -> ClientConnection | None:
        return self.connections.pop(connection_id, None)

    def get(self, connection_id: str) -> ClientConnection | None:
        return self.connections.get(connection_id)

    def __len__(self) -> int:
        return len(self.connections)

    def all(self) -> tuple[ClientConnection, ...]:
        return tuple(self.connections.values())
