"""Assembly of workspace entries from backend output and agent status."""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from dwm import records
from dwm.agent_status import AgentStatusStore
from dwm.errors import DwmError
from dwm.models import (
    AgentStatusSummary,
    DiffStat,
    RepoEntry,
    Staleness,
    WorkspaceEntry,
    WorkspaceInfo,
)
from dwm.registry import RepoRegistry
from dwm.staleness import evaluate_staleness
from dwm.vcs import Runner, VcsBackend, backend_for, workspace_path

logger = logging.getLogger(__name__)


def _placeholder_info(name: str, path: Path) -> WorkspaceInfo:
    return WorkspaceInfo(
        name=name,
        change_id="",
        description="",
        bookmarks=(),
        last_modified=None,
        path=path,
    )


def _is_listed(repo: RepoEntry, backend: VcsBackend, info: WorkspaceInfo) -> bool:
    """Only the main workspace and workspaces stored under the repo dir are ours."""
    if info.name == backend.main_workspace_name:
        return True
    return (repo.storage_dir / info.name).is_dir()


def build_entry(
    repo: RepoEntry,
    backend: VcsBackend,
    info: WorkspaceInfo,
    agent_status: AgentStatusSummary | None,
    now: datetime,
) -> WorkspaceEntry:
    """Assemble one entry; backend failures degrade the entry instead of raising."""
    is_main = info.name == backend.main_workspace_name
    errors: list[str] = []

    if not info.description.strip():
        try:
            description = backend.latest_description(repo, info)
        except DwmError as exc:
            errors.append(f"description: {exc}")
        else:
            info = replace(info, description=description)

    try:
        diff_stat = backend.diff_stat(repo, info)
    except DwmError as exc:
        errors.append(f"diff: {exc}")
        diff_stat = DiffStat()

    staleness = Staleness.NOT_STALE
    if not is_main:
        try:
            staleness = evaluate_staleness(info, lambda: backend.is_merged(repo, info), now)
        except DwmError as exc:
            errors.append(f"merge status: {exc}")

    return WorkspaceEntry(
        info=info,
        diff_stat=diff_stat,
        staleness=staleness,
        main_repo=repo.main_repo,
        vcs_type=repo.vcs_type,
        is_main=is_main,
        agent_status=agent_status,
        error="; ".join(errors) or None,
    )


def load_workspaces(
    repo: RepoEntry, backend: VcsBackend, now: datetime | None = None
) -> list[WorkspaceEntry]:
    """Load every workspace of a repository, main workspace first.

    Raises when the repository cannot be listed at all; problems with a
    single workspace are attached to its entry as ``error``.
    """
    now = now or datetime.now(timezone.utc)
    summaries = AgentStatusStore(repo.storage_dir).summaries(now=now.timestamp())
    output = backend.list_workspaces(repo)

    entries: dict[str, WorkspaceEntry] = {}
    for raw in records.split_records(output):
        try:
            info = records.parse_record(raw)
        except records.MalformedRecord as exc:
            logger.warning("%s: %s", repo.display_name, exc)
            name = records.best_effort_name(raw)
            if name is None or name in entries:
                continue
            is_main = name == backend.main_workspace_name
            entries[name] = WorkspaceEntry(
                info=_placeholder_info(name, workspace_path(repo, name, backend.main_workspace_name)),
                diff_stat=DiffStat(),
                staleness=Staleness.NOT_STALE,
                main_repo=repo.main_repo,
                vcs_type=repo.vcs_type,
                is_main=is_main,
                agent_status=summaries.get(name),
                error=str(exc),
            )
            continue
        if not _is_listed(repo, backend, info):
            continue
        entries[info.name] = build_entry(repo, backend, info, summaries.get(info.name), now)

    if repo.storage_dir.is_dir():
        for path in sorted(repo.storage_dir.iterdir()):
            if not path.is_dir() or path.name.startswith(".") or path.name in entries:
                continue
            entries[path.name] = WorkspaceEntry(
                info=_placeholder_info(path.name, path),
                diff_stat=DiffStat(),
                staleness=Staleness.NOT_STALE,
                main_repo=repo.main_repo,
                vcs_type=repo.vcs_type,
                agent_status=summaries.get(path.name),
                error=f"not a {repo.vcs_type.value} workspace",
            )

    return sorted(entries.values(), key=lambda entry: (not entry.is_main, entry.name))


def load_all_workspaces(
    registry: RepoRegistry, runner: Runner | None = None, now: datetime | None = None
) -> list[WorkspaceEntry]:
    """Load workspaces of every tracked repository.

    A broken repository is reported and skipped so it cannot blank the
    whole dashboard.
    """
    scan = registry.scan()
    for problem in scan.problems:
        logger.warning("skipping %s", problem)

    all_entries: list[WorkspaceEntry] = []
    for repo in scan.repos:
        backend = backend_for(repo.vcs_type, runner)
        try:
            entries = load_workspaces(repo, backend, now)
        except DwmError as exc:
            logger.warning("skipping repo '%s': %s", repo.display_name, exc)
            continue
        for entry in entries:
            entry.repo_name = repo.display_name
            all_entries.append(entry)
    return all_entries
