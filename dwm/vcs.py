"""Backend-neutral VCS interface and process runner."""

import logging
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol

from dwm.config import GIT_MAIN_WORKSPACE, JJ_MAIN_WORKSPACE
from dwm.errors import BackendUnavailable, OperationRejected
from dwm.models import DiffStat, RepoEntry, VcsType, WorkspaceInfo

logger = logging.getLogger(__name__)

Runner = Callable[[Sequence[str], Path | None], str]

_NOT_A_REPO_MARKERS = (
    "not a git repository",
    "there is no jj repo",
    "no jj repo in",
)


def run(args: Sequence[str], cwd: Path | None = None) -> str:
    """Run a command and return its raw stdout."""
    logger.debug("running %s (cwd=%s)", " ".join(args), cwd)
    result = subprocess.run(
        list(args),
        cwd=cwd,
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    return result.stdout


def call(runner: Runner, args: Sequence[str], cwd: Path | None = None) -> str:
    """Run a backend command, mapping process failures onto the error taxonomy."""
    try:
        return runner(args, cwd)
    except FileNotFoundError as exc:
        if cwd is not None and not cwd.is_dir():
            raise BackendUnavailable(f"{cwd} does not exist") from exc
        raise BackendUnavailable(f"{args[0]} is not installed") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or exc.stdout or "").strip()
        if any(marker in stderr.lower() for marker in _NOT_A_REPO_MARKERS):
            raise BackendUnavailable(stderr) from exc
        raise OperationRejected(args, stderr) from exc


class VcsBackend(Protocol):
    """Operations dwm needs from a version-control backend."""

    vcs_type: VcsType
    main_workspace_name: str

    def root_from(self, path: Path) -> Path: ...

    def list_workspaces(self, repo: RepoEntry) -> str: ...

    def create_workspace(
        self,
        repo: RepoEntry,
        name: str,
        path: Path,
        at: str | None = None,
        from_workspace: str | None = None,
    ) -> None: ...

    def delete_workspace(self, repo: RepoEntry, name: str, path: Path) -> None: ...

    def rename_workspace(
        self, repo: RepoEntry, old_name: str, new_name: str, old_path: Path, new_path: Path
    ) -> None: ...

    def diff_stat(self, repo: RepoEntry, info: WorkspaceInfo) -> DiffStat: ...

    def is_merged(self, repo: RepoEntry, info: WorkspaceInfo) -> bool: ...

    def latest_description(self, repo: RepoEntry, info: WorkspaceInfo) -> str: ...

    def workspace_name_for(self, repo: RepoEntry, path: Path) -> str | None: ...


def main_workspace_for(vcs_type: VcsType) -> str:
    """Reserved name of the workspace living in the original checkout."""
    return JJ_MAIN_WORKSPACE if vcs_type is VcsType.JJ else GIT_MAIN_WORKSPACE


def workspace_path(repo: RepoEntry, name: str, main_workspace_name: str) -> Path:
    """Directory of a workspace: the main repo for the main workspace."""
    if name == main_workspace_name:
        return repo.main_repo
    return repo.storage_dir / name


def tracked_workspace_name(repo: RepoEntry, path: Path, main_workspace_name: str) -> str | None:
    """Map a directory to a workspace name using only the filesystem."""
    path = Path(path).resolve()
    if path == repo.main_repo.resolve():
        return main_workspace_name
    if path.parent == repo.storage_dir.resolve() and not path.name.startswith("."):
        if path.is_dir():
            return path.name
    return None


def backend_for(vcs_type: VcsType, runner: Runner | None = None) -> VcsBackend:
    """Instantiate the backend recorded for a repository."""
    from dwm.git_ops import GitBackend
    from dwm.jj_ops import JjBackend

    if vcs_type is VcsType.JJ:
        return JjBackend(runner or run)
    return GitBackend(runner or run)


def detect(path: Path) -> VcsType:
    """Detect the backend for a new repository by walking up from ``path``."""
    for current in [path, *path.parents]:
        if (current / ".jj").is_dir():
            return VcsType.JJ
        if (current / ".git").exists():
            return VcsType.GIT
    raise BackendUnavailable(
        f"no jj or git repository found in {path} or any parent directory"
    )
