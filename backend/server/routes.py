"""
Route registration for the show notes API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire each WebSocket to one ClientConnection in the coordinator
- Pump each connection's outbox to its socket
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio

from fastapi import FastAPI, HTTPException, Response, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from broadcast.connection import ClientConnection
from broadcast.coordinator import BroadcastCoordinator
from export.encoder import UnsupportedExportFormat, encode_export
from observability.logger import log_event
from show.models import utc_now
from show.store import ShowStore


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    if app.state.config.enable_debug_endpoint:
        @app.get("/api/state")
        async def debug_state() -> dict[str, object]: # pyright: ignore[reportUnusedFunction]
            store: ShowStore = app.state.store
            coordinator: BroadcastCoordinator = app.state.coordinator
            return {
                **store.snapshot(),
                "systemStatus": coordinator.source_status.to_wire(),
                "connections": coordinator.connection_count,
            }

    @app.get("/api/export/{fmt}")
    async def export_notes(fmt: str) -> Response: # pyright: ignore[reportUnusedFunction]
        store: ShowStore = app.state.store
        try:
            result = encode_export(
                fmt,
                notes=store.notes,
                users=store.users,
                tags=store.tags,
                now=utc_now(),
            )
        except UnsupportedExportFormat as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        return Response(
            content=result.data,
            media_type=result.mime_type,
            headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
        )

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        coordinator: BroadcastCoordinator = app.state.coordinator
        connection = ClientConnection()

        coordinator.connect(connection)
        writer = asyncio.create_task(_pump_outbox(ws, connection))
        reason = "client_disconnect"

        try:
            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                text = msg.get("text")
                if text is not None:
                    coordinator.handle_message(connection.id, text)
                else:
                    log_event({
                        "event_type": "BINARY_FRAME_IGNORED",
                        "connection_id": connection.id,
                    }, level="WARNING")

        except WebSocketDisconnect:
            pass

        except Exception as exc:  # pylint: disable=broad-exception-caught
            reason = "server_error"
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "connection_id": connection.id,
                "exception": type(exc).__name__,
                "message": str(exc),
            }, level="ERROR")

        finally:
            coordinator.disconnect(connection.id)
            await asyncio.gather(writer, return_exceptions=True)
            log_event({
                "event_type": "WS_CLOSED",
                "connection_id": connection.id,
                "reason": reason,
            })


async def _pump_outbox(ws: WebSocket, connection: ClientConnection) -> None:
    """
    Forward queued frames to the socket until the close marker.

    If the connection was closed from our side (outbox overflow) the socket
    is closed too, which ends the receive loop.
    """
    try:
        while True:
            frame = await connection.next_frame()
            if frame is None:
                break
            await ws.send_text(frame)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        log_event({
            "event_type": "WS_SEND_FAILED",
            "connection_id": connection.id,
            "exception": type(exc).__name__,
            "message": str(exc),
        }, level="WARNING")
        return

    if (
        ws.client_state is WebSocketState.CONNECTED
        and ws.application_state is WebSocketState.CONNECTED
    ):
        await ws.close()
