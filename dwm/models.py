"""Data models for dwm."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class VcsType(str, Enum):
    """Backend kind recorded per repository at creation time."""

    JJ = "jj"
    GIT = "git"


class AgentStatus(str, Enum):
    """State of one agent session."""

    WORKING = "working"
    IDLE = "idle"
    WAITING = "waiting"


class Staleness(str, Enum):
    """Staleness classification of a workspace."""

    NOT_STALE = "not-stale"
    STALE_MERGED = "stale-merged"
    STALE_AGE = "stale-age"


@dataclass(frozen=True)
class WorkspaceInfo:
    """Raw facts about one workspace as reported by a backend."""

    name: str
    change_id: str
    description: str
    bookmarks: tuple[str, ...]
    last_modified: datetime | None
    path: Path

    @property
    def summary(self) -> str:
        """First line of the description."""
        lines = self.description.strip().splitlines()
        return lines[0] if lines else ""


@dataclass(frozen=True)
class DiffStat:
    """Statistics from a diff operation."""

    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0

    @property
    def total(self) -> int:
        return self.insertions + self.deletions

    @property
    def is_clean(self) -> bool:
        return self.files_changed == 0 and self.total == 0


@dataclass(frozen=True)
class AgentStatusRecord:
    """One on-disk agent status file."""

    workspace: str
    session_id: str
    status: AgentStatus
    updated_at: int


@dataclass
class AgentStatusSummary:
    """Counts of live agent sessions in a workspace, per status."""

    working: int = 0
    idle: int = 0
    waiting: int = 0

    def add(self, status: AgentStatus) -> None:
        if status is AgentStatus.WORKING:
            self.working += 1
        elif status is AgentStatus.IDLE:
            self.idle += 1
        else:
            self.waiting += 1

    @property
    def is_empty(self) -> bool:
        return self.working == 0 and self.idle == 0 and self.waiting == 0

    def most_urgent(self) -> AgentStatus | None:
        """Return the most urgent status present, for color selection only."""
        if self.waiting:
            return AgentStatus.WAITING
        if self.working:
            return AgentStatus.WORKING
        if self.idle:
            return AgentStatus.IDLE
        return None

    def __str__(self) -> str:
        parts = []
        if self.waiting:
            parts.append(f"{self.waiting} waiting")
        if self.working:
            parts.append(f"{self.working} working")
        if self.idle:
            parts.append(f"{self.idle} idle")
        return ", ".join(parts)


@dataclass(frozen=True)
class RepoEntry:
    """A repository tracked under the root storage directory."""

    name: str
    storage_dir: Path
    main_repo: Path
    vcs_type: VcsType

    @property
    def display_name(self) -> str:
        return self.main_repo.name or self.name


@dataclass
class WorkspaceEntry:
    """Everything needed to display one workspace row."""

    info: WorkspaceInfo
    diff_stat: DiffStat
    staleness: Staleness
    main_repo: Path
    vcs_type: VcsType
    is_main: bool = False
    agent_status: AgentStatusSummary | None = None
    repo_name: str | None = None
    error: str | None = field(default=None)

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def path(self) -> Path:
        return self.info.path

    @property
    def is_stale(self) -> bool:
        return self.staleness is not Staleness.NOT_STALE
