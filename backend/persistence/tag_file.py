"""
Tag persistence.

Tags are the only durable state. They live in a JSON file:

    {"tags": [{"id": "lighting", "name": "Lighting", "color": "#FF6B6B"}, ...]}

Errors:
- ConfigLoadError: file missing or corrupt. Callers recover with defaults.
- PersistenceWriteError: write failed. Callers log and carry on; the
  in-memory change stands.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable

from constants import DEFAULT_TAGS
from observability.logger import log_event
from show.models import Tag


# -------------------------
# Exceptions
# -------------------------

class TagPersistenceError(Exception):
    """Base class for tag persistence errors."""


class ConfigLoadError(TagPersistenceError):
    """The tag file could not be read or parsed."""


class PersistenceWriteError(TagPersistenceError):
    """The tag file could not be written."""


# -------------------------
# Contract
# -------------------------

class TagRepository(ABC):
    """Durable storage for the global tag list."""

    @abstractmethod
    def load(self) -> list[Tag]:
        """
        Raises:
            ConfigLoadError
        """
        raise NotImplementedError

    @abstractmethod
    def save(self, tags: Iterable[Tag]) -> None:
        """
        Raises:
            PersistenceWriteError
        """
        raise NotImplementedError


def default_tags() -> list[Tag]:
    return [Tag(id=i, name=n, color=c) for i, n, c in DEFAULT_TAGS]


# -------------------------
# JSON file implementation
# -------------------------

class TagFile(TagRepository):
    """TagRepository backed by a JSON file on local disk."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[Tag]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigLoadError(f"Cannot read {self._path}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise ConfigLoadError(f"{self._path} is not valid UTF-8: {exc}") from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigLoadError(f"Invalid JSON in {self._path}: {exc}") from exc

        if not isinstance(data, dict) or not isinstance(data.get("tags"), list):
            raise ConfigLoadError(f"{self._path} has no 'tags' list")

        return [_tag_from_dict(entry) for entry in data["tags"]]

    def save(self, tags: Iterable[Tag]) -> None:
        """
        Write a sibling temp file, then rename it over the original.
        The existing file is either fully replaced or left untouched.
        """
        payload = {"tags": [t.to_wire() for t in tags]}
        tmp_path = self._path.with_name(f".{self._path.name}.tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise PersistenceWriteError(f"Cannot write {self._path}: {exc}") from exc


def _tag_from_dict(entry: Any) -> Tag:
    if not isinstance(entry, dict):
        raise ConfigLoadError(f"Tag entry is not an object: {entry!r}")

    fields = {key: entry.get(key) for key in ("id", "name", "color")}
    if not all(isinstance(v, str) and v for v in fields.values()):
        raise ConfigLoadError(f"Tag entry needs string id/name/color: {entry!r}")

    return Tag(**fields)


# -------------------------
# Startup helper
# -------------------------

def load_tags_or_defaults(repository: TagRepository) -> list[Tag]:
    """
    Load tags, falling back to the built-in list.

    On fallback the defaults are written back so the next start finds a
    valid file. A failed write-back is logged only.
    """
    try:
        tags = repository.load()
    except ConfigLoadError as exc:
        log_event({
            "event_type": "TAGS_LOAD_FAILED",
            "error": str(exc),
            "fallback": "defaults",
        }, level="WARNING")
    else:
        log_event({"event_type": "TAGS_LOADED", "count": len(tags)})
        return tags

    tags = default_tags()
    try:
        repository.save(tags)
    except PersistenceWriteError as exc:
        log_event({
            "event_type": "TAGS_DEFAULTS_WRITE_FAILED",
            "error": str(exc),
        }, level="WARNING")
    else:
        log_event({"event_type": "TAGS_DEFAULTS_WRITTEN", "count": len(tags)})

    return tags
