"""Git worktree backend."""

import logging
from dataclasses import dataclass
from pathlib import Path

from dwm import records
from dwm.config import GIT_MAIN_WORKSPACE
from dwm.errors import DwmError, OperationRejected
from dwm.models import DiffStat, RepoEntry, VcsType, WorkspaceInfo
from dwm.vcs import Runner, call, run, tracked_workspace_name, workspace_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedWorktree:
    """Raw worktree data from git worktree list."""

    path: Path
    head: str
    branch: str | None


def parse_worktrees(output: str) -> list[ParsedWorktree]:
    """Parse the output of git worktree list --porcelain, skipping bare entries."""
    worktrees: list[ParsedWorktree] = []
    current_path = ""
    current_branch: str | None = None
    current_head = ""
    current_is_bare = False

    for line in output.splitlines():
        if line.startswith("worktree "):
            if current_path and not current_is_bare:
                worktrees.append(
                    ParsedWorktree(path=Path(current_path), head=current_head, branch=current_branch)
                )
            current_path = line.split(" ", 1)[1]
            current_branch = None
            current_head = ""
            current_is_bare = False
        elif line.startswith("branch "):
            ref = line.split(" ", 1)[1]
            current_branch = ref.removeprefix("refs/heads/")
        elif line.startswith("HEAD "):
            current_head = line.split(" ", 1)[1]
        elif line == "bare":
            current_is_bare = True

    if current_path and not current_is_bare:
        worktrees.append(
            ParsedWorktree(path=Path(current_path), head=current_head, branch=current_branch)
        )

    return worktrees


def _literal(text: str) -> str:
    """Escape text for use inside a git --format string."""
    return text.replace("%", "%%")


def record_format(name: str, branch: str | None, path: Path) -> str:
    """Build a git log --format string that prints one workspace record."""
    return "%x00".join(
        [
            _literal(name),
            "%h",
            "%B",
            _literal(branch or ""),
            "%cI",
            _literal(str(path)),
        ]
    ) + "%x1e"


class GitBackend:
    """Workspaces backed by git worktrees."""

    vcs_type = VcsType.GIT
    main_workspace_name = GIT_MAIN_WORKSPACE

    def __init__(self, runner: Runner = run) -> None:
        self.runner = runner

    def _git(self, args: list[str], cwd: Path | None = None) -> str:
        return call(self.runner, ["git", *args], cwd)

    def root_from(self, path: Path) -> Path:
        common_dir = Path(
            self._git(["rev-parse", "--path-format=absolute", "--git-common-dir"], cwd=path).strip()
        )
        if common_dir.name == ".git":
            return common_dir.parent
        return common_dir

    def detect_trunk(self, path: Path) -> str:
        """Return the trunk branch: main, master, then origin/HEAD."""
        for candidate in ("main", "master"):
            try:
                self._git(["rev-parse", "--verify", "--quiet", f"refs/heads/{candidate}"], cwd=path)
                return candidate
            except OperationRejected:
                continue
        try:
            ref = self._git(["symbolic-ref", "refs/remotes/origin/HEAD"], cwd=path).strip()
        except OperationRejected:
            return "main"
        return ref.removeprefix("refs/remotes/origin/")

    def _name_for(self, repo: RepoEntry, worktree: ParsedWorktree) -> str:
        if worktree.path.resolve() == repo.main_repo.resolve():
            return self.main_workspace_name
        return worktree.path.name

    def list_workspaces(self, repo: RepoEntry) -> str:
        output = self._git(["worktree", "list", "--porcelain"], cwd=repo.main_repo)
        chunks: list[str] = []
        for worktree in parse_worktrees(output):
            name = self._name_for(repo, worktree)
            fmt = record_format(name, worktree.branch, worktree.path)
            try:
                chunks.append(
                    self._git(["log", "-1", "--abbrev=8", f"--format={fmt}"], cwd=worktree.path)
                )
            except DwmError as exc:
                # Unborn branches have no commit; removed worktrees have no directory.
                logger.debug("cannot describe worktree %s: %s", worktree.path, exc)
                chunks.append(
                    records.encode_record(
                        WorkspaceInfo(
                            name=name,
                            change_id=worktree.head[:8],
                            description="",
                            bookmarks=records.split_bookmarks(worktree.branch or ""),
                            last_modified=None,
                            path=worktree.path,
                        )
                    )
                )
        return "".join(chunks)

    def create_workspace(
        self,
        repo: RepoEntry,
        name: str,
        path: Path,
        at: str | None = None,
        from_workspace: str | None = None,
    ) -> None:
        if from_workspace is not None:
            source = workspace_path(repo, from_workspace, self.main_workspace_name)
            if not source.is_dir():
                raise OperationRejected(["git", "worktree", "add"], f"workspace '{from_workspace}' not found")
            at = self._git(["rev-parse", "HEAD"], cwd=source).strip()
        args = ["worktree", "add", "-b", name, str(path)]
        if at:
            args.append(at)
        self._git(args, cwd=repo.main_repo)

    def delete_workspace(self, repo: RepoEntry, name: str, path: Path) -> None:
        self._git(["worktree", "remove", "--force", str(path)], cwd=repo.main_repo)

    def branch_exists(self, repo: RepoEntry, branch: str) -> bool:
        try:
            self._git(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=repo.main_repo)
        except OperationRejected:
            return False
        return True

    def rename_workspace(
        self, repo: RepoEntry, old_name: str, new_name: str, old_path: Path, new_path: Path
    ) -> None:
        self._git(["worktree", "move", str(old_path), str(new_path)], cwd=repo.main_repo)
        if self.branch_exists(repo, old_name) and not self.branch_exists(repo, new_name):
            self._git(["branch", "-m", old_name, new_name], cwd=repo.main_repo)

    def diff_stat(self, repo: RepoEntry, info: WorkspaceInfo) -> DiffStat:
        trunk = self.detect_trunk(info.path)
        try:
            base = self._git(["merge-base", trunk, "HEAD"], cwd=info.path).strip()
        except OperationRejected:
            return DiffStat()
        return records.parse_diff_stat(self._git(["diff", "--stat", base], cwd=info.path))

    def is_merged(self, repo: RepoEntry, info: WorkspaceInfo) -> bool:
        trunk = self.detect_trunk(info.path)
        try:
            self._git(["merge-base", "--is-ancestor", "HEAD", trunk], cwd=info.path)
        except OperationRejected as exc:
            # Exit status 1 without output means "not an ancestor".
            if exc.stderr:
                raise
            return False
        return True

    def latest_description(self, repo: RepoEntry, info: WorkspaceInfo) -> str:
        try:
            out = self._git(["log", "-n", "50", "--format=%B%x00", "HEAD"], cwd=info.path)
        except OperationRejected:
            return ""
        for message in out.split("\x00"):
            if message.strip():
                return message.strip()
        return ""

    def workspace_name_for(self, repo: RepoEntry, path: Path) -> str | None:
        return tracked_workspace_name(repo, path, self.main_workspace_name)
