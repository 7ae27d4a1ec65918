"""
Authoritative shared show state.

Responsibilities:
- Own the current timecode, time mode, users, notes and tags
- Apply mutations one at a time, synchronously, never half-done
- Report each externally visible change to listeners exactly once
- Persist the tag list after every tag change

Non-responsibilities:
- No sockets, no message formats, no per-client addressing
- No timers (time sources call set_timecode)

Mutations that find no target return MutationResult.NOT_FOUND and notify
nobody. Rejected renames raise ShowStateError subclasses.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable
from uuid import uuid4

from constants import (
    DEFAULT_USER_NAME_PREFIX,
    DEFAULT_USER_NAME_SUFFIX_MAX,
    LOG_TEXT_PREVIEW_CHARS,
    TAG_COLOR_PALETTE,
    TAG_ID_LENGTH,
)
from observability.logger import log_event
from persistence.tag_file import PersistenceWriteError, TagRepository
from show.enums.change_kind import ChangeKind
from show.enums.time_mode import TimeMode
from show.errors import InvalidName, NameConflict
from show.models import Comment, Note, ShowUser, Tag, utc_now
from timecode.model import Timecode


class MutationResult(str, Enum):
    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    INVALID = "INVALID"


@dataclass(frozen=True)
class StoreChange:
    """One externally visible state transition."""
    kind: ChangeKind
    user: ShowUser | None = None
    note: Note | None = None


StoreListener = Callable[[StoreChange], None]


def _new_note_id() -> str:
    return f"note_{uuid4().hex[:12]}"


def _new_comment_id() -> str:
    return f"cmt_{uuid4().hex[:12]}"


class ShowStore:
    """
    Single in-process record of show state.

    Constructed once at startup and handed to the time source and the
    broadcast coordinator. Not thread-safe: call only from the event loop.
    """

    def __init__(
        self,
        *,
        tag_repository: TagRepository,
        tags: Iterable[Tag] = (),
        initial_timecode: Timecode | None = None,
        time_mode: TimeMode = TimeMode.EXTERNAL_CLOCK,
        rng: random.Random | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._tag_repository = tag_repository
        self._rng = rng or random.Random()
        self._now = now

        self._timecode = initial_timecode or Timecode()
        self._time_mode = time_mode
        self._users: dict[str, ShowUser] = {}
        self._notes: list[Note] = []
        self._note_index: dict[str, int] = {}
        self._tags: list[Tag] = list(tags)

        self._listeners: list[StoreListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            listener(change)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def timecode(self) -> Timecode:
        return self._timecode

    @property
    def time_mode(self) -> TimeMode:
        return self._time_mode

    @property
    def users(self) -> tuple[ShowUser, ...]:
        return tuple(self._users.values())

    @property
    def user_count(self) -> int:
        return len(self._users)

    @property
    def notes(self) -> tuple[Note, ...]:
        return tuple(self._notes)

    @property
    def tags(self) -> tuple[Tag, ...]:
        return tuple(self._tags)

    def get_user(self, user_id: str) -> ShowUser | None:
        return self._users.get(user_id)

    def get_note(self, note_id: str) -> Note | None:
        index = self._note_index.get(note_id)
        return None if index is None else self._notes[index]

    def snapshot(self) -> dict[str, Any]:
        """Full wire view of the current state."""
        return {
            "timecode": self._timecode.to_wire(),
            "timeMode": self._time_mode.value,
            "users": [u.to_wire() for u in self._users.values()],
            "notes": [n.to_wire() for n in self._notes],
            "tags": [t.to_wire() for t in self._tags],
        }

    # ------------------------------------------------------------------
    # Timecode / mode
    # ------------------------------------------------------------------

    def set_timecode(self, tc: Timecode) -> MutationResult:
        self._timecode = tc
        self._notify(StoreChange(kind=ChangeKind.TIMECODE))
        return MutationResult.OK

    def set_time_mode(self, mode: Any) -> MutationResult:
        """Unknown mode values are ignored."""
        parsed = TimeMode.parse(mode)
        if parsed is None:
            return MutationResult.INVALID

        self._time_mode = parsed
        self._notify(StoreChange(kind=ChangeKind.TIME_MODE))
        return MutationResult.OK

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def add_user(self, user_id: str) -> ShowUser:
        """Add a user with a random default name (duplicates allowed)."""
        suffix = self._rng.randint(0, DEFAULT_USER_NAME_SUFFIX_MAX)
        user = ShowUser(
            id=user_id,
            display_name=f"{DEFAULT_USER_NAME_PREFIX}{suffix}",
            joined_at=self._now(),
        )
        self._users[user_id] = user
        self._notify(StoreChange(kind=ChangeKind.USER_JOINED, user=user))
        return user

    def remove_user(self, user_id: str) -> ShowUser | None:
        user = self._users.pop(user_id, None)
        if user is None:
            return None
        self._notify(StoreChange(kind=ChangeKind.USER_LEFT, user=user))
        return user

    def rename_user(self, user_id: str, new_name: Any) -> MutationResult:
        """
        Rename a user and rewrite their name on every note and comment.

        Raises:
            InvalidName if new_name is not a non-blank string.
            NameConflict if another connected user already has the name
            (case-insensitive). State is left untouched.
        """
        user = self._users.get(user_id)
        if user is None:
            return MutationResult.NOT_FOUND

        if not isinstance(new_name, str) or not new_name.strip():
            raise InvalidName()
        name = new_name.strip()

        folded = name.casefold()
        for other in self._users.values():
            if other.id != user_id and other.display_name.casefold() == folded:
                raise NameConflict(name)

        renamed = replace(user, display_name=name)
        self._users[user_id] = renamed
        self._cascade_author_name(user_id, name)

        self._notify(StoreChange(kind=ChangeKind.USER_RENAMED, user=renamed))
        return MutationResult.OK

    def _cascade_author_name(self, user_id: str, name: str) -> None:
        for i, note in enumerate(self._notes):
            updated = note
            if note.author_user_id == user_id:
                updated = replace(updated, author_name=name)
            if any(c.author_user_id == user_id for c in note.comments):
                updated = replace(
                    updated,
                    comments=tuple(
                        replace(c, author_name=name) if c.author_user_id == user_id else c
                        for c in note.comments
                    ),
                )
            if updated is not note:
                self._notes[i] = updated

    def start_typing(
        self,
        user_id: str,
        draft_timecode: Timecode | None = None,
    ) -> MutationResult:
        """Mark a user as typing; the draft defaults to the current timecode."""
        user = self._users.get(user_id)
        if user is None:
            return MutationResult.NOT_FOUND

        self._users[user_id] = replace(
            user,
            is_typing=True,
            draft_timecode=draft_timecode or self._timecode,
        )
        self._notify(StoreChange(kind=ChangeKind.USERS))
        return MutationResult.OK

    def stop_typing(self, user_id: str) -> MutationResult:
        user = self._users.get(user_id)
        if user is None:
            return MutationResult.NOT_FOUND

        self._users[user_id] = replace(user, is_typing=False, draft_timecode=None)
        self._notify(StoreChange(kind=ChangeKind.USERS))
        return MutationResult.OK

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def submit_note(
        self,
        author_user_id: str,
        text: str,
        tag_ids: Iterable[str] = (),
        timecode_override: Timecode | None = None,
        lx_cue: str | None = None,
    ) -> Note | None:
        """
        Append a note stamped with the override or the current timecode.

        The timecode is captured here, at call time. Returns None if the
        author is not a connected user.
        """
        author = self._users.get(author_user_id)
        if author is None:
            return None

        note = Note(
            id=_new_note_id(),
            author_user_id=author_user_id,
            author_name=author.display_name,
            text=text,
            timecode=timecode_override or self._timecode,
            created_at=self._now(),
            tag_ids=tuple(tag_ids),
            lx_cue=lx_cue,
        )
        self._note_index[note.id] = len(self._notes)
        self._notes.append(note)

        log_event({
            "event_type": "NOTE_SUBMITTED",
            "note_id": note.id,
            "user": author.display_name,
            "timecode": note.timecode.formatted(),
            "tags": list(note.tag_ids),
            "text_preview": text[:LOG_TEXT_PREVIEW_CHARS],
        })

        self._notify(StoreChange(kind=ChangeKind.NOTE_ADDED, note=note))
        return note

    def update_note_tags(self, note_id: str, tag_ids: Iterable[str]) -> MutationResult:
        index = self._note_index.get(note_id)
        if index is None:
            return MutationResult.NOT_FOUND

        self._notes[index] = replace(self._notes[index], tag_ids=tuple(tag_ids))
        self._notify(StoreChange(kind=ChangeKind.NOTES, note=self._notes[index]))
        return MutationResult.OK

    def add_comment(self, note_id: str, author_user_id: str, text: str) -> MutationResult:
        index = self._note_index.get(note_id)
        author = self._users.get(author_user_id)
        if index is None or author is None:
            return MutationResult.NOT_FOUND

        comment = Comment(
            id=_new_comment_id(),
            author_user_id=author_user_id,
            author_name=author.display_name,
            text=text,
            created_at=self._now(),
        )
        note = self._notes[index]
        self._notes[index] = replace(note, comments=note.comments + (comment,))
        self._notify(StoreChange(kind=ChangeKind.NOTES, note=self._notes[index]))
        return MutationResult.OK

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def make_tag(
        self,
        name: str,
        *,
        tag_id: str | None = None,
        color: str | None = None,
    ) -> Tag:
        """Build a Tag, generating a missing id or color."""
        return Tag(
            id=tag_id or uuid4().hex[:TAG_ID_LENGTH],
            name=name,
            color=color or self._rng.choice(TAG_COLOR_PALETTE),
        )

    def upsert_tag(self, tag: Tag) -> bool:
        """Replace the tag with the same id, or append. Returns True if created."""
        for i, existing in enumerate(self._tags):
            if existing.id == tag.id:
                self._tags[i] = tag
                created = False
                break
        else:
            self._tags.append(tag)
            created = True

        self._persist_tags()
        self._notify(StoreChange(kind=ChangeKind.TAGS))
        return created

    def delete_tag(self, tag_id: str) -> MutationResult:
        remaining = [t for t in self._tags if t.id != tag_id]
        if len(remaining) == len(self._tags):
            return MutationResult.NOT_FOUND

        self._tags = remaining
        self._persist_tags()
        self._notify(StoreChange(kind=ChangeKind.TAGS))
        return MutationResult.OK

    def _persist_tags(self) -> None:
        try:
            self._tag_repository.save(self._tags)
        except PersistenceWriteError as exc:
            log_event({
                "event_type": "TAG_SAVE_FAILED",
                "error": str(exc),
            }, level="ERROR")
