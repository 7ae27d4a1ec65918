# pylint: disable=missing-module-docstring,missing-function-docstring

import json
import random
from datetime import datetime, timezone
from typing import Any, Iterable

from broadcast.connection import ClientConnection
from broadcast.coordinator import BroadcastCoordinator
from persistence.tag_file import TagRepository
from show.models import Tag
from show.store import ShowStore
from timecode.model import Timecode, TimecodeSource
from timecode.sources import SourceStatus


NOW = datetime(2024, 5, 1, 19, 30, 0, tzinfo=timezone.utc)
SYNTHETIC_STATUS = SourceStatus(
    source_available=False,
    port_count=0,
    source_name=None,
    time_source=TimecodeSource.SYNTHETIC,
)


class MemoryTags(TagRepository):
    def __init__(self) -> None:
        self.saved: list[list[Tag]] = []

    def load(self) -> list[Tag]:
        return []

    def save(self, tags: Iterable[Tag]) -> None:
        self.saved.append(list(tags))


class Harness:
    def __init__(self) -> None:
        self.store = ShowStore(
            tag_repository=MemoryTags(),
            tags=[Tag("lighting", "Lighting", "#FF6B6B"), Tag("sound", "Sound", "#4ECDC4")],
            rng=random.Random(3),
            now=lambda: NOW,
        )
        self.coordinator = BroadcastCoordinator(
            store=self.store,
            source_status=SYNTHETIC_STATUS,
            now=lambda: NOW,
        )

    def join(self, connection_id: str) -> ClientConnection:
        connection = ClientConnection(connection_id)
        self.coordinator.connect(connection)
        return connection

    def send(self, connection: ClientConnection, event: str, data: Any = None) -> None:
        self.coordinator.handle_message(connection.id, json.dumps({"event": event, "data": data}))


def received(connection: ClientConnection) -> list[dict[str, Any]]:
    return [json.loads(frame) for frame in connection.drain()]


def events(messages: list[dict[str, Any]]) -> list[str]:
    return [m["event"] for m in messages]


def last(messages: list[dict[str, Any]], event: str) -> Any:
    return [m["data"] for m in messages if m["event"] == event][-1]


# ---------------------------------------------------------------------
# Join / leave
# ---------------------------------------------------------------------

def test_joiner_gets_snapshot_before_join_announcement() -> None:
    h = Harness()

    alice = h.join("a")

    assert events(received(alice)) == [
        "timecode-update",
        "notes-update",
        "users-update",
        "tags-update",
        "time-mode-update",
        "system-status",
        "user-joined",
        "users-update",
    ]


def test_existing_clients_see_join_and_leave() -> None:
    h = Harness()
    alice = h.join("a")
    received(alice)

    bob = h.join("b")
    bob_name = h.store.get_user("b").display_name  # type: ignore[union-attr]
    on_join = received(alice)

    assert events(on_join) == ["user-joined", "users-update"]
    assert on_join[0]["data"] == {"name": bob_name, "count": 2}

    h.coordinator.disconnect(bob.id)
    on_leave = received(alice)

    assert events(on_leave) == ["user-left", "users-update"]
    assert on_leave[0]["data"] == {"name": bob_name, "count": 1}
    assert bob.closed
    assert h.coordinator.connection_count == 1


def test_snapshot_lists_existing_notes_and_users() -> None:
    h = Harness()
    alice = h.join("a")
    h.send(alice, "note-submit", {"text": "earlier"})

    bob = h.join("b")
    snapshot = received(bob)

    assert [n["text"] for n in last(snapshot, "notes-update")] == ["earlier"]
    assert {u["id"] for u in last(snapshot, "users-update")} == {"a", "b"}
    assert last(snapshot, "time-mode-update") == "external-clock"
    assert last(snapshot, "system-status")["timeSource"] == "synthetic"


# ---------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------

def test_note_reaches_every_client_with_submission_timecode() -> None:
    h = Harness()
    alice, bob, carol = h.join("a"), h.join("b"), h.join("c")
    for c in (alice, bob, carol):
        received(c)
    h.store.set_timecode(Timecode(1, 2, 3, 4, 30, TimecodeSource.EXTERNAL))

    h.send(alice, "note-submit", {"text": "Check cue 12", "tagIds": ["lighting"]})
    h.store.set_timecode(Timecode(1, 2, 3, 5, 30, TimecodeSource.EXTERNAL))

    for client in (alice, bob, carol):
        messages = received(client)
        assert events(messages) == [
            "timecode-update",
            "note-added",
            "notes-update",
            "timecode-update",
        ]
        note = last(messages, "note-added")
        assert note["text"] == "Check cue 12"
        assert note["tagIds"] == ["lighting"]
        assert note["userId"] == "a"
        tc = note["timecode"]
        assert (tc["hours"], tc["minutes"], tc["seconds"], tc["frames"]) == (1, 2, 3, 4)


def test_note_accepts_legacy_tags_key_and_client_timecode() -> None:
    h = Harness()
    alice = h.join("a")
    received(alice)

    h.send(alice, "note-submit", {
        "text": "late",
        "tags": ["sound"],
        "timecode": {"hours": 0, "minutes": 1, "seconds": 2, "frames": 3},
        "lxCue": "Q7",
    })

    note = h.store.notes[0]
    assert note.tag_ids == ("sound",)
    assert note.timecode.formatted() == "00:01:02:03"
    assert note.lx_cue == "Q7"


def test_out_of_range_client_timecode_falls_back_to_show_clock() -> None:
    h = Harness()
    alice = h.join("a")
    received(alice)
    h.store.set_timecode(Timecode(0, 0, 5, 0, 30, TimecodeSource.EXTERNAL))

    h.send(alice, "note-submit", {
        "text": "bad stamp",
        "timecode": {"hours": 99, "minutes": -5, "seconds": 600, "frames": 1000},
    })
    h.send(alice, "typing-start", {"timecode": {"frames": 99}})

    note = h.store.notes[0]
    assert note.timecode.formatted() == "00:00:05:00"
    assert note.timecode.is_within_range()
    draft = h.store.get_user("a").draft_timecode  # type: ignore[union-attr]
    assert draft is not None and draft.formatted() == "00:00:05:00"


def test_empty_or_malformed_notes_are_dropped() -> None:
    h = Harness()
    alice = h.join("a")
    received(alice)

    h.send(alice, "note-submit", {"text": "   "})
    h.send(alice, "note-submit", {"text": 5})
    h.send(alice, "note-submit", "just text")
    h.coordinator.handle_message(alice.id, "not json")
    h.coordinator.handle_message(alice.id, '{"event": "self-destruct"}')

    assert h.store.notes == ()
    assert received(alice) == []


def test_tag_update_and_comment_broadcast_notes() -> None:
    h = Harness()
    alice, bob = h.join("a"), h.join("b")
    h.send(alice, "note-submit", {"text": "x"})
    note_id = h.store.notes[0].id
    received(alice)
    received(bob)

    h.send(bob, "note-update-tags", {"noteId": note_id, "tags": ["sound"]})
    h.send(bob, "comment-submit", {"noteId": note_id, "text": "agreed"})
    h.send(bob, "comment-submit", {"noteId": "note_missing", "text": "lost"})

    messages = received(alice)
    assert events(messages) == ["notes-update", "notes-update"]
    final = last(messages, "notes-update")[0]
    assert final["tagIds"] == ["sound"]
    assert [c["text"] for c in final["comments"]] == ["agreed"]


# ---------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------

def test_create_and_delete_tag_broadcast_tag_list() -> None:
    h = Harness()
    alice, bob = h.join("a"), h.join("b")
    received(alice)
    received(bob)

    h.send(alice, "create-tag", {"name": "Pyro", "color": "#123456"})
    created = last(received(bob), "tags-update")
    pyro = [t for t in created if t["name"] == "Pyro"][0]
    assert pyro["color"] == "#123456"

    h.send(alice, "delete-tag", {"tagId": pyro["id"]})
    h.send(alice, "delete-tag", {"tagId": "never-existed"})

    messages = received(bob)
    assert events(messages) == ["tags-update"]
    assert [t["id"] for t in messages[0]["data"]] == ["lighting", "sound"]


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------

def test_duplicate_rename_is_answered_only_to_requester() -> None:
    h = Harness()
    alice, bob = h.join("a"), h.join("b")
    h.send(alice, "user-name-change", {"newName": "Alex"})
    received(alice)
    received(bob)

    h.send(bob, "user-name-change", {"newName": "alex"})

    assert received(bob) == [{
        "event": "name-change-error",
        "data": {"message": 'The name "alex" is already taken by another user'},
    }]
    assert received(alice) == []
    assert h.store.get_user("a").display_name == "Alex"  # type: ignore[union-attr]


def test_rename_success_updates_everyone() -> None:
    h = Harness()
    alice, bob = h.join("a"), h.join("b")
    h.send(alice, "note-submit", {"text": "mine"})
    received(alice)
    received(bob)

    h.send(alice, "user-name-change", {"newName": "Alex"})

    mine = received(alice)
    theirs = received(bob)
    assert events(mine) == ["users-update", "notes-update", "name-change-success"]
    assert mine[-1]["data"] == {"message": 'Name changed to "Alex"'}
    assert events(theirs) == ["users-update", "notes-update"]
    assert last(theirs, "notes-update")[0]["user"] == "Alex"


def test_blank_rename_is_rejected() -> None:
    h = Harness()
    alice = h.join("a")
    received(alice)

    h.send(alice, "user-name-change", {"newName": "  "})

    assert received(alice) == [{"event": "name-change-error", "data": {"message": "Name cannot be empty"}}]


def test_typing_indicators_broadcast_users() -> None:
    h = Harness()
    alice, bob = h.join("a"), h.join("b")
    received(alice)
    received(bob)

    h.send(alice, "typing-start")
    typing = last(received(bob), "users-update")
    assert [u["isTyping"] for u in typing if u["id"] == "a"] == [True]

    h.send(alice, "typing-stop")
    stopped = last(received(bob), "users-update")
    assert [u["currentTimecode"] for u in stopped if u["id"] == "a"] == [None]


# ---------------------------------------------------------------------
# Mode, export, status
# ---------------------------------------------------------------------

def test_time_mode_change_broadcasts_and_ignores_unknown() -> None:
    h = Harness()
    alice, bob = h.join("a"), h.join("b")
    received(alice)
    received(bob)

    h.send(alice, "time-mode-change", {"mode": "wall-clock"})
    h.send(alice, "time-mode-change", {"mode": "sundial"})

    assert received(bob) == [{"event": "time-mode-update", "data": "wall-clock"}]


def test_export_goes_to_requester_only() -> None:
    h = Harness()
    alice, bob = h.join("a"), h.join("b")
    h.send(alice, "note-submit", {"text": 'He said "hi"', "tagIds": ["lighting", "sound"]})
    received(alice)
    received(bob)

    h.send(alice, "export-request", {"format": "csv"})
    h.send(alice, "export-request", {"format": "pdf"})

    messages = received(alice)
    assert events(messages) == ["export-data"]
    export = messages[0]["data"]
    assert export["mimeType"] == "text/csv"
    assert export["filename"] == "timecoded-notes-2024-05-01T19-30-00-000Z.csv"
    assert '"He said ""hi""","Lighting, Sound"' in export["data"]
    assert received(bob) == []


def test_source_status_is_broadcast() -> None:
    h = Harness()
    alice = h.join("a")
    received(alice)
    status = SourceStatus(True, 2, "Desk", TimecodeSource.EXTERNAL)

    h.coordinator.set_source_status(status)

    assert received(alice) == [{"event": "system-status", "data": status.to_wire()}]


def test_message_for_unknown_connection_is_ignored() -> None:
    h = Harness()

    h.coordinator.handle_message("conn_ghost", '{"event": "typing-start"}')

    assert h.store.users == ()


def test_slow_client_is_closed_without_affecting_others() -> None:
    h = Harness()
    # Room for both join sequences plus one timecode update
    slow = ClientConnection("slow", max_pending=11)
    h.coordinator.connect(slow)
    fast = h.join("fast")
    received(fast)
    assert not slow.closed

    for frame in range(3):
        h.store.set_timecode(Timecode(0, 0, 0, frame + 1))

    assert slow.closed
    assert len(received(fast)) == 3
