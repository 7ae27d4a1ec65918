"""
Note export (JSON / CSV).

Pure functions: state in, document out. No store access, no IO.

CSV layout:
    User,Timecode,Frame Rate,LX Cue,Note,Tags,Comments,Timestamp
- every field quoted, embedded quotes doubled
- tags as names joined with ", " (unknown ids shown as-is)
- comments as "Author: text" joined with "; "
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Sequence

from constants import (
    CSV_COMMENT_SEPARATOR,
    CSV_HEADER,
    CSV_TAG_SEPARATOR,
    EXPORT_FILENAME_PREFIX,
)
from show.models import Note, ShowUser, Tag, iso_timestamp
from timecode.model import format_timecode


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


_MIME_TYPES: dict[ExportFormat, str] = {
    ExportFormat.JSON: "application/json",
    ExportFormat.CSV: "text/csv",
}


class UnsupportedExportFormat(ValueError):
    """Raised for any format other than json or csv."""


@dataclass(frozen=True)
class ExportResult:
    data: str
    mime_type: str
    filename: str

    def to_wire(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "mimeType": self.mime_type,
            "filename": self.filename,
        }


def export_filename(fmt: ExportFormat, now: datetime) -> str:
    stamp = iso_timestamp(now).replace(":", "-").replace(".", "-")
    return f"{EXPORT_FILENAME_PREFIX}-{stamp}.{fmt.value}"


def format_frame_rate(frame_rate: Any) -> str:
    if isinstance(frame_rate, float) and frame_rate.is_integer():
        return str(int(frame_rate))
    return str(frame_rate)


def encode_export(
    fmt: Any,
    *,
    notes: Sequence[Note],
    users: Iterable[ShowUser],
    tags: Iterable[Tag],
    now: datetime,
) -> ExportResult:
    """
    Serialize notes into the requested format.

    Raises:
        UnsupportedExportFormat
    """
    try:
        export_format = ExportFormat(fmt)
    except ValueError as exc:
        raise UnsupportedExportFormat(f"Unsupported export format: {fmt!r}") from exc

    if export_format is ExportFormat.JSON:
        data = encode_json(notes=notes, users=users, tags=tags, now=now)
    else:
        data = encode_csv(notes=notes, tags=tags)

    return ExportResult(
        data=data,
        mime_type=_MIME_TYPES[export_format],
        filename=export_filename(export_format, now),
    )


def encode_json(
    *,
    notes: Sequence[Note],
    users: Iterable[ShowUser],
    tags: Iterable[Tag],
    now: datetime,
) -> str:
    document = {
        "notes": [n.to_wire() for n in notes],
        "exportedAt": iso_timestamp(now),
        "totalNotes": len(notes),
        "users": [
            {"name": u.display_name, "joinedAt": iso_timestamp(u.joined_at)}
            for u in users
        ],
        "tags": [t.to_wire() for t in tags],
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def encode_csv(*, notes: Sequence[Note], tags: Iterable[Tag]) -> str:
    tag_names = {t.id: t.name for t in tags}

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    # Header stays bare; data rows are always quoted
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for note in notes:
        writer.writerow([
            note.author_name,
            format_timecode(note.timecode),
            format_frame_rate(note.timecode.frame_rate),
            note.lx_cue or "",
            note.text,
            CSV_TAG_SEPARATOR.join(tag_names.get(t, t) for t in note.tag_ids),
            CSV_COMMENT_SEPARATOR.join(
                f"{c.author_name}: {c.text}" for c in note.comments
            ),
            iso_timestamp(note.created_at),
        ])

    return buf.getvalue()
