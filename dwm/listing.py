"""Sorting and fuzzy filtering of workspace entries."""

from collections.abc import Iterable
from datetime import datetime
from enum import Enum

from dwm.models import WorkspaceEntry


class SortMode(str, Enum):
    RECENCY = "recency"
    NAME = "name"
    CHANGES = "changes"

    def next(self) -> "SortMode":
        modes = list(SortMode)
        return modes[(modes.index(self) + 1) % len(modes)]

    @property
    def label(self) -> str:
        return "diff size" if self is SortMode.CHANGES else self.value


def _name_key(entry: WorkspaceEntry) -> tuple[str, str, str]:
    return (entry.name.casefold(), entry.name, entry.repo_name or "")


def _recency_key(entry: WorkspaceEntry) -> tuple[int, float, tuple[str, str, str]]:
    modified: datetime | None = entry.info.last_modified
    if modified is None:
        return (1, 0.0, _name_key(entry))
    return (0, -modified.timestamp(), _name_key(entry))


def _changes_key(entry: WorkspaceEntry) -> tuple[int, tuple[str, str, str]]:
    return (-entry.diff_stat.total, _name_key(entry))


_SORT_KEYS = {
    SortMode.NAME: _name_key,
    SortMode.RECENCY: _recency_key,
    SortMode.CHANGES: _changes_key,
}


def sort_entries(entries: Iterable[WorkspaceEntry], mode: SortMode) -> list[WorkspaceEntry]:
    """Return entries in a total order; the name breaks every tie."""
    return sorted(entries, key=_SORT_KEYS[mode])


def search_key(entry: WorkspaceEntry) -> str:
    """Composite text matched by the filter: name, description and bookmarks."""
    return " ".join([entry.name, entry.info.description, ",".join(entry.info.bookmarks)]).lower()


def fuzzy_match(query: str, key: str) -> bool:
    """Case-insensitive subsequence match."""
    remaining = iter(key.lower())
    return all(char in remaining for char in query.lower())


def filter_entries(entries: Iterable[WorkspaceEntry], query: str) -> list[WorkspaceEntry]:
    """Keep entries matching ``query``, preserving their order."""
    if not query:
        return list(entries)
    return [entry for entry in entries if fuzzy_match(query, search_key(entry))]


def apply(entries: Iterable[WorkspaceEntry], mode: SortMode, query: str = "") -> list[WorkspaceEntry]:
    return filter_entries(sort_entries(entries, mode), query)
