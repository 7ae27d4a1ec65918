"""
Broadcast coordinator.

Responsibilities:
- Register and unregister client connections
- Send the full state snapshot to a joining client, then announce the join
- Translate inbound client events into store operations
- Turn every store change into whole-collection broadcasts
- Answer rename failures and export requests to the requester only

Not responsible for:
- Socket IO (connections are outboxes; the transport drains them)
- State rules (owned by ShowStore)

Ordering: store mutations and the resulting enqueue calls happen in one
synchronous step, so every client sees the same order of state changes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from broadcast.connection import ClientConnection, ConnectionRegistry
from export.encoder import UnsupportedExportFormat, encode_export
from observability.logger import log_event
from observability.metrics import timed
from protocol.messages import (
    Envelope,
    InboundEvent,
    InvalidPayload,
    OutboundEvent,
    ProtocolError,
    decode_message,
    encode_message,
    optional_str,
    require_dict,
    require_str,
    str_list,
)
from show.enums.change_kind import ChangeKind
from show.errors import ShowStateError
from show.models import utc_now
from show.store import MutationResult, ShowStore, StoreChange
from timecode.model import Timecode
from timecode.sources import SourceStatus


Handler = Callable[[ClientConnection, Any], None]


class BroadcastCoordinator:
    """Bridges client connections and the show store."""

    def __init__(
        self,
        *,
        store: ShowStore,
        source_status: SourceStatus,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._source_status = source_status
        self._now = now
        self._registry = ConnectionRegistry()
        self._unsubscribe = store.subscribe(self._on_store_change)

        self._handlers: dict[InboundEvent, Handler] = {
            InboundEvent.NOTE_SUBMIT: self._on_note_submit,
            InboundEvent.NOTE_UPDATE_TAGS: self._on_note_update_tags,
            InboundEvent.COMMENT_SUBMIT: self._on_comment_submit,
            InboundEvent.CREATE_TAG: self._on_create_tag,
            InboundEvent.DELETE_TAG: self._on_delete_tag,
            InboundEvent.TYPING_START: self._on_typing_start,
            InboundEvent.TYPING_STOP: self._on_typing_stop,
            InboundEvent.TIME_MODE_CHANGE: self._on_time_mode_change,
            InboundEvent.USER_NAME_CHANGE: self._on_user_name_change,
            InboundEvent.EXPORT_REQUEST: self._on_export_request,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def connection_count(self) -> int:
        return len(self._registry)

    @property
    def source_status(self) -> SourceStatus:
        return self._source_status

    def set_source_status(self, status: SourceStatus) -> None:
        """Record the active time source and tell every client."""
        self._source_status = status
        self._broadcast(OutboundEvent.SYSTEM_STATUS, status.to_wire())

    def connect(self, connection: ClientConnection) -> None:
        """
        Register a client. The snapshot reaches the joiner before the join
        announcement reaches anyone (see _on_store_change).
        """
        self._registry.add(connection)
        user = self._store.add_user(connection.id)
        log_event({
            "event_type": "CLIENT_CONNECTED",
            "connection_id": connection.id,
            "user": user.display_name,
            "count": self._store.user_count,
        })

    def disconnect(self, connection_id: str) -> None:
        connection = self._registry.pop(connection_id)
        if connection is not None:
            connection.close()

        user = self._store.remove_user(connection_id)
        log_event({
            "event_type": "CLIENT_DISCONNECTED",
            "connection_id": connection_id,
            "user": user.display_name if user else None,
            "count": self._store.user_count,
        })

    def shutdown(self) -> None:
        self._unsubscribe()
        for connection in self._registry.all():
            connection.close()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, connection_id: str, text: str) -> None:
        """Decode and apply one inbound frame. Bad frames are logged and dropped."""
        connection = self._registry.get(connection_id)
        if connection is None:
            log_event({
                "event_type": "MESSAGE_WITHOUT_CONNECTION",
                "connection_id": connection_id,
                "payload_preview": text[:100],
            }, level="WARNING")
            return

        try:
            envelope = decode_message(text)
            self.dispatch(connection, envelope)
        except ProtocolError as exc:
            log_event({
                "event_type": "PROTOCOL_ERROR",
                "connection_id": connection_id,
                "error_class": type(exc).__name__,
                "error": str(exc),
                "payload_preview": text[:100],
            }, level="WARNING")

    def dispatch(self, connection: ClientConnection, envelope: Envelope) -> None:
        """
        Raises:
            InvalidPayload if the event's data is malformed.
        """
        self._handlers[envelope.event](connection, envelope.data)

    def _on_note_submit(self, connection: ClientConnection, data: Any) -> None:
        payload = require_dict(data)
        text = require_str(payload, "text")
        if not text.strip():
            raise InvalidPayload("'text' must not be empty")

        # Older clients send the tag list as "tags"
        tag_key = "tagIds" if "tagIds" in payload else "tags"

        self._store.submit_note(
            connection.id,
            text,
            tag_ids=str_list(payload, tag_key),
            timecode_override=self._client_timecode(payload.get("timecode")),
            lx_cue=optional_str(payload, "lxCue"),
        )

    def _on_note_update_tags(self, connection: ClientConnection, data: Any) -> None:
        payload = require_dict(data)
        note_id = require_str(payload, "noteId")
        result = self._store.update_note_tags(note_id, str_list(payload, "tags"))
        self._log_result("NOTE_TAGS_UPDATED", connection, result, note_id=note_id)

    def _on_comment_submit(self, connection: ClientConnection, data: Any) -> None:
        payload = require_dict(data)
        note_id = require_str(payload, "noteId")
        text = require_str(payload, "text")
        if not text.strip():
            raise InvalidPayload("'text' must not be empty")

        result = self._store.add_comment(note_id, connection.id, text)
        self._log_result("COMMENT_ADDED", connection, result, note_id=note_id)

    def _on_create_tag(self, connection: ClientConnection, data: Any) -> None:
        payload = require_dict(data)
        name = require_str(payload, "name").strip()
        if not name:
            raise InvalidPayload("'name' must not be empty")

        tag = self._store.make_tag(
            name,
            tag_id=optional_str(payload, "id"),
            color=optional_str(payload, "color"),
        )
        created = self._store.upsert_tag(tag)
        log_event({
            "event_type": "TAG_CREATED" if created else "TAG_UPDATED",
            "connection_id": connection.id,
            "tag_id": tag.id,
            "name": tag.name,
        })

    def _on_delete_tag(self, connection: ClientConnection, data: Any) -> None:
        tag_id = require_str(require_dict(data), "tagId")
        result = self._store.delete_tag(tag_id)
        self._log_result("TAG_DELETED", connection, result, tag_id=tag_id)

    def _on_typing_start(self, connection: ClientConnection, data: Any) -> None:
        payload = data if isinstance(data, dict) else {}
        draft = self._client_timecode(payload.get("timecode"))
        self._store.start_typing(connection.id, draft)

    def _on_typing_stop(self, connection: ClientConnection, data: Any) -> None:
        del data
        self._store.stop_typing(connection.id)

    def _on_time_mode_change(self, connection: ClientConnection, data: Any) -> None:
        mode = require_dict(data).get("mode")
        result = self._store.set_time_mode(mode)
        self._log_result("TIME_MODE_CHANGED", connection, result, mode=repr(mode))

    def _on_user_name_change(self, connection: ClientConnection, data: Any) -> None:
        new_name = require_dict(data).get("newName")

        try:
            result = self._store.rename_user(connection.id, new_name)
        except ShowStateError as exc:
            log_event({
                "event_type": "NAME_CHANGE_REJECTED",
                "connection_id": connection.id,
                "error_class": type(exc).__name__,
                "requested": repr(new_name),
            })
            self._send(connection, OutboundEvent.NAME_CHANGE_ERROR, {"message": str(exc)})
            return

        if result is MutationResult.OK:
            user = self._store.get_user(connection.id)
            assert user is not None
            self._send(
                connection,
                OutboundEvent.NAME_CHANGE_SUCCESS,
                {"message": f'Name changed to "{user.display_name}"'},
            )

    def _on_export_request(self, connection: ClientConnection, data: Any) -> None:
        fmt = require_dict(data).get("format")
        try:
            with timed(
                "export_encode",
                connection_id=connection.id,
                details={"format": repr(fmt), "notes": len(self._store.notes)},
            ):
                result = encode_export(
                    fmt,
                    notes=self._store.notes,
                    users=self._store.users,
                    tags=self._store.tags,
                    now=self._now(),
                )
        except UnsupportedExportFormat as exc:
            log_event({
                "event_type": "EXPORT_REJECTED",
                "connection_id": connection.id,
                "error": str(exc),
            }, level="WARNING")
            return

        self._send(connection, OutboundEvent.EXPORT_DATA, result.to_wire())
        log_event({
            "event_type": "EXPORT_SENT",
            "connection_id": connection.id,
            "filename": result.filename,
            "notes": len(self._store.notes),
        })

    def _client_timecode(self, raw: Any) -> Timecode | None:
        if raw is None:
            return None

        current = self._store.timecode
        tc = Timecode.from_wire(
            raw,
            default_frame_rate=current.frame_rate,
            source=current.source,
        )
        if tc is None:
            log_event({
                "event_type": "CLIENT_TIMECODE_IGNORED",
                "raw": repr(raw)[:100],
            }, level="WARNING")
        return tc

    def _log_result(
        self,
        event_type: str,
        connection: ClientConnection,
        result: MutationResult,
        **fields: Any,
    ) -> None:
        log_event({
            "event_type": event_type if result is MutationResult.OK else f"{event_type}_IGNORED",
            "connection_id": connection.id,
            "result": result.value,
            **fields,
        })

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def send_snapshot(self, connection: ClientConnection) -> None:
        store = self._store
        self._send(connection, OutboundEvent.TIMECODE_UPDATE, store.timecode.to_wire())
        self._send(connection, OutboundEvent.NOTES_UPDATE, self._notes_wire())
        self._send(connection, OutboundEvent.USERS_UPDATE, self._users_wire())
        self._send(connection, OutboundEvent.TAGS_UPDATE, self._tags_wire())
        self._send(connection, OutboundEvent.TIME_MODE_UPDATE, store.time_mode.value)
        self._send(connection, OutboundEvent.SYSTEM_STATUS, self._source_status.to_wire())

    def _on_store_change(self, change: StoreChange) -> None:
        kind = change.kind

        if kind is ChangeKind.TIMECODE:
            self._broadcast(OutboundEvent.TIMECODE_UPDATE, self._store.timecode.to_wire())

        elif kind is ChangeKind.TIME_MODE:
            self._broadcast(OutboundEvent.TIME_MODE_UPDATE, self._store.time_mode.value)

        elif kind is ChangeKind.USER_JOINED:
            assert change.user is not None
            joiner = self._registry.get(change.user.id)
            if joiner is not None:
                with timed("join_snapshot", connection_id=joiner.id):
                    self.send_snapshot(joiner)
            self._broadcast(OutboundEvent.USER_JOINED, {
                "name": change.user.display_name,
                "count": self._store.user_count,
            })
            self._broadcast(OutboundEvent.USERS_UPDATE, self._users_wire())

        elif kind is ChangeKind.USER_LEFT:
            assert change.user is not None
            self._broadcast(OutboundEvent.USER_LEFT, {
                "name": change.user.display_name,
                "count": self._store.user_count,
            })
            self._broadcast(OutboundEvent.USERS_UPDATE, self._users_wire())

        elif kind is ChangeKind.USERS:
            self._broadcast(OutboundEvent.USERS_UPDATE, self._users_wire())

        elif kind is ChangeKind.USER_RENAMED:
            self._broadcast(OutboundEvent.USERS_UPDATE, self._users_wire())
            self._broadcast(OutboundEvent.NOTES_UPDATE, self._notes_wire())

        elif kind is ChangeKind.NOTE_ADDED:
            assert change.note is not None
            self._broadcast(OutboundEvent.NOTE_ADDED, change.note.to_wire())
            self._broadcast(OutboundEvent.NOTES_UPDATE, self._notes_wire())

        elif kind is ChangeKind.NOTES:
            self._broadcast(OutboundEvent.NOTES_UPDATE, self._notes_wire())

        elif kind is ChangeKind.TAGS:
            self._broadcast(OutboundEvent.TAGS_UPDATE, self._tags_wire())

    def _send(self, connection: ClientConnection, event: OutboundEvent, data: Any) -> None:
        connection.send(encode_message(event, data))

    def _broadcast(self, event: OutboundEvent, data: Any) -> None:
        frame = encode_message(event, data)
        for connection in self._registry.all():
            connection.send(frame)

    def _notes_wire(self) -> list[dict[str, Any]]:
        return [n.to_wire() for n in self._store.notes]

    def _users_wire(self) -> list[dict[str, Any]]:
        return [u.to_wire() for u in self._store.users]

    def _tags_wire(self) -> list[dict[str, Any]]:
        return [t.to_wire() for t in self._store.tags]
