"""Codec for serialized workspace records and diff summaries.

A backend prints one record per workspace. Fields are separated by NUL and
records are terminated by ASCII RS (0x1e). Neither byte can occur in a
description, a bookmark name or a path, so text fields may contain tabs and
newlines freely. Bookmarks within their field are comma separated and
stripped of surrounding whitespace, so a bookmark containing a comma (git
allows one in a branch name) reads back as several bookmarks. Encoding
refuses such names rather than losing them silently.

Field order: name, change id, description, bookmarks, last-modified
timestamp (``TIMESTAMP_FORMAT``, empty when unknown), working-copy path.
"""

from datetime import datetime
from pathlib import Path

from dwm.errors import MalformedRecord
from dwm.models import DiffStat, WorkspaceInfo

FIELD_SEP = "\x00"
RECORD_SEP = "\x1e"
BOOKMARK_SEP = ","
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

FIELD_COUNT = 6
_NAME, _CHANGE_ID, _DESCRIPTION, _BOOKMARKS, _TIMESTAMP, _PATH = range(FIELD_COUNT)


def split_records(output: str) -> list[str]:
    """Split raw backend output into individual records."""
    records: list[str] = []
    for chunk in output.split(RECORD_SEP):
        # Backends print newlines after each terminator; names never start with one.
        chunk = chunk.lstrip("\r\n")
        if not chunk or chunk.isspace():
            continue
        records.append(chunk)
    return records


def parse_timestamp(value: str) -> datetime | None:
    """Parse a record timestamp; empty means unknown."""
    if not value:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT)


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime(TIMESTAMP_FORMAT)


def split_bookmarks(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(BOOKMARK_SEP) if part.strip())


def parse_record(raw: str) -> WorkspaceInfo:
    """Decode a single record into a WorkspaceInfo."""
    record = raw.removesuffix(RECORD_SEP)
    if RECORD_SEP in record:
        raise MalformedRecord(0, raw, "more than one record")

    fields = record.split(FIELD_SEP)
    if len(fields) != FIELD_COUNT:
        index = min(len(fields), FIELD_COUNT) - 1
        raise MalformedRecord(
            index, raw, f"expected {FIELD_COUNT} fields, got {len(fields)}"
        )

    name = fields[_NAME]
    if not name:
        raise MalformedRecord(_NAME, raw, "empty workspace name")

    try:
        last_modified = parse_timestamp(fields[_TIMESTAMP])
    except ValueError:
        raise MalformedRecord(
            _TIMESTAMP, raw, f"timestamp {fields[_TIMESTAMP]!r} is not {TIMESTAMP_FORMAT}"
        ) from None

    path = fields[_PATH]
    if not path:
        raise MalformedRecord(_PATH, raw, "empty path")

    bookmarks = split_bookmarks(fields[_BOOKMARKS])
    return WorkspaceInfo(
        name=name,
        change_id=fields[_CHANGE_ID],
        description=fields[_DESCRIPTION],
        bookmarks=bookmarks,
        last_modified=last_modified,
        path=Path(path),
    )


def encode_record(info: WorkspaceInfo) -> str:
    """Encode a WorkspaceInfo in the same format the backends print."""
    for bookmark in info.bookmarks:
        if split_bookmarks(bookmark) != (bookmark,):
            raise MalformedRecord(_BOOKMARKS, bookmark, "bookmark name cannot be encoded")
    fields = [
        info.name,
        info.change_id,
        info.description,
        BOOKMARK_SEP.join(info.bookmarks),
        format_timestamp(info.last_modified),
        str(info.path),
    ]
    for index, value in enumerate(fields):
        if FIELD_SEP in value or RECORD_SEP in value:
            raise MalformedRecord(index, value, "value contains a separator byte")
    return FIELD_SEP.join(fields) + RECORD_SEP


def best_effort_name(raw: str) -> str | None:
    """Recover the workspace name from a record that failed to parse."""
    name = raw.split(FIELD_SEP, 1)[0].strip()
    return name or None


def parse_diff_stat(output: str) -> DiffStat:
    """Parse ``--stat`` output, reading the trailing summary line."""
    lines = output.strip().splitlines()
    if lines:
        stat = parse_diff_stat_line(lines[-1])
        if stat is not None:
            return stat
    return DiffStat()


def parse_diff_stat_line(line: str) -> DiffStat | None:
    """Parse a line like ``3 files changed, 10 insertions(+), 5 deletions(-)``."""
    line = line.strip()
    if "file" not in line or "|" in line:
        return None

    files_changed = insertions = deletions = 0
    for part in line.split(","):
        tokens = part.split()
        if len(tokens) < 2 or not tokens[0].isdigit():
            continue
        count = int(tokens[0])
        if tokens[1].startswith("file"):
            files_changed = count
        elif tokens[1].startswith("insertion"):
            insertions = count
        elif tokens[1].startswith("deletion"):
            deletions = count
    return DiffStat(files_changed=files_changed, insertions=insertions, deletions=deletions)
