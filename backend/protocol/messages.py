"""
JSON message envelope for the show WebSocket.

Every text frame, in both directions, is one JSON object:

    {"event": "<event name>", "data": <payload>}

Usage example:

    envelope = decode_message(text)
    if envelope.event is InboundEvent.NOTE_SUBMIT:
        ...

    ws_text = encode_message(OutboundEvent.NOTES_UPDATE, [n.to_wire() for n in notes])
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


# -------------------------
# Event names
# -------------------------

class InboundEvent(str, Enum):
    """Client -> server requests."""

    NOTE_SUBMIT = "note-submit"
    NOTE_UPDATE_TAGS = "note-update-tags"
    COMMENT_SUBMIT = "comment-submit"
    CREATE_TAG = "create-tag"
    DELETE_TAG = "delete-tag"
    TYPING_START = "typing-start"
    TYPING_STOP = "typing-stop"
    TIME_MODE_CHANGE = "time-mode-change"
    USER_NAME_CHANGE = "user-name-change"
    EXPORT_REQUEST = "export-request"


class OutboundEvent(str, Enum):
    """Server -> client notifications."""

    TIMECODE_UPDATE = "timecode-update"
    NOTES_UPDATE = "notes-update"
    NOTE_ADDED = "note-added"
    USERS_UPDATE = "users-update"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    TAGS_UPDATE = "tags-update"
    TIME_MODE_UPDATE = "time-mode-update"
    SYSTEM_STATUS = "system-status"
    NAME_CHANGE_ERROR = "name-change-error"
    NAME_CHANGE_SUCCESS = "name-change-success"
    EXPORT_DATA = "export-data"


# -------------------------
# Exceptions
# -------------------------

class ProtocolError(Exception):
    """Base class for message protocol errors."""


class InvalidEnvelope(ProtocolError):
    """The frame is not JSON, or not an object with a string `event`."""


class UnknownEvent(ProtocolError):
    """The envelope names an event this server does not handle."""


class InvalidPayload(ProtocolError):
    """The envelope's data does not match what the event requires."""


# -------------------------
# Codec
# -------------------------

@dataclass(frozen=True)
class Envelope:
    event: InboundEvent
    data: Any


def decode_message(text: str) -> Envelope:
    """
    Parse one inbound text frame.

    Raises:
        InvalidEnvelope, UnknownEvent
    """
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidEnvelope(f"Not JSON: {exc}") from exc

    if not isinstance(obj, dict) or not isinstance(obj.get("event"), str):
        raise InvalidEnvelope("Envelope must be an object with a string 'event'")

    try:
        event = InboundEvent(obj["event"])
    except ValueError as exc:
        raise UnknownEvent(f"Unknown event: {obj['event']!r}") from exc

    data = obj.get("data")
    return Envelope(event=event, data={} if data is None else data)


def outbound(event: OutboundEvent, data: Any) -> dict[str, Any]:
    """Build an outbound envelope (not yet serialized)."""
    return {"event": event.value, "data": data}


def encode_message(event: OutboundEvent, data: Any) -> str:
    return json.dumps(outbound(event, data), ensure_ascii=False)


# -------------------------
# Payload helpers
# -------------------------

def require_dict(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise InvalidPayload(f"Expected an object, got {type(data).__name__}")
    return data


def require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise InvalidPayload(f"'{key}' must be a string")
    return value


def optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidPayload(f"'{key}' must be a string")
    return value


def str_list(data: dict[str, Any], key: str) -> list[str]:
    """A list of strings; missing or null means empty."""
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidPayload(f"'{key}' must be a list of strings")
    return value
