"""Jujutsu (jj) workspace backend."""

import logging
import shutil
from pathlib import Path

from dwm import records
from dwm.config import JJ_MAIN_WORKSPACE
from dwm.errors import OperationRejected
from dwm.models import DiffStat, RepoEntry, VcsType, WorkspaceInfo
from dwm.vcs import Runner, call, run, tracked_workspace_name

logger = logging.getLogger(__name__)


def _string_literal(text: str) -> str:
    """Quote text as a jj template/revset string literal."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def workspace_revision(name: str) -> str:
    """Revset for the working-copy commit of a workspace."""
    return f"{_string_literal(name)}@"


def record_template(repo: RepoEntry) -> str:
    """Build a ``jj workspace list`` template that prints one record per workspace."""
    commit = "self.working_copy_commit()"
    timestamp = (
        f"{commit}.committer().timestamp().format({_string_literal(records.TIMESTAMP_FORMAT)})"
    )
    storage_prefix = _string_literal(str(repo.storage_dir) + "/")
    path = (
        f"if(name == {_string_literal(JJ_MAIN_WORKSPACE)}, "
        f"{_string_literal(str(repo.main_repo))}, {storage_prefix} ++ name)"
    )
    fields = [
        "name",
        f"{commit}.change_id().shortest(8)",
        f"{commit}.description()",
        f'{commit}.bookmarks().map(|b| b.name()).join(",")',
        timestamp,
        path,
    ]
    return ' ++ "\\0" ++ '.join(fields) + ' ++ "\\x1e"'


class JjBackend:
    """Workspaces backed by jj workspaces."""

    vcs_type = VcsType.JJ
    main_workspace_name = JJ_MAIN_WORKSPACE

    def __init__(self, runner: Runner = run) -> None:
        self.runner = runner

    def _jj(self, args: list[str], cwd: Path | None = None) -> str:
        return call(self.runner, ["jj", *args], cwd)

    def root_from(self, path: Path) -> Path:
        return Path(self._jj(["root"], cwd=path).strip())

    def list_workspaces(self, repo: RepoEntry) -> str:
        return self._jj(
            ["workspace", "list", "--ignore-working-copy", "-T", record_template(repo)],
            cwd=repo.main_repo,
        )

    def create_workspace(
        self,
        repo: RepoEntry,
        name: str,
        path: Path,
        at: str | None = None,
        from_workspace: str | None = None,
    ) -> None:
        if from_workspace is not None:
            at = workspace_revision(from_workspace)
        args = ["workspace", "add", "--name", name]
        if at:
            args.extend(["-r", at])
        args.append(str(path))
        self._jj(args, cwd=repo.main_repo)

    def delete_workspace(self, repo: RepoEntry, name: str, path: Path) -> None:
        self._jj(["workspace", "forget", name], cwd=repo.main_repo)

    def rename_workspace(
        self, repo: RepoEntry, old_name: str, new_name: str, old_path: Path, new_path: Path
    ) -> None:
        self._jj(["workspace", "rename", new_name], cwd=old_path)
        try:
            shutil.move(str(old_path), str(new_path))
        except OSError as exc:
            raise OperationRejected(["mv", str(old_path), str(new_path)], str(exc)) from exc

    def diff_stat(self, repo: RepoEntry, info: WorkspaceInfo) -> DiffStat:
        out = self._jj(
            [
                "diff",
                "--ignore-working-copy",
                "--stat",
                "--from",
                "trunk()",
                "--to",
                workspace_revision(info.name),
            ],
            cwd=repo.main_repo,
        )
        return records.parse_diff_stat(out)

    def is_merged(self, repo: RepoEntry, info: WorkspaceInfo) -> bool:
        # Merged when every non-empty ancestor is already reachable from trunk.
        revset = f"::{workspace_revision(info.name)} ~ ::trunk() ~ empty()"
        out = self._jj(
            [
                "log",
                "--ignore-working-copy",
                "--no-graph",
                "-r",
                revset,
                "-T",
                'change_id ++ "\\n"',
                "--limit",
                "1",
            ],
            cwd=repo.main_repo,
        )
        return not out.strip()

    def latest_description(self, repo: RepoEntry, info: WorkspaceInfo) -> str:
        revset = (
            f'latest(ancestors({workspace_revision(info.name)}) & description(glob:"?*"))'
        )
        try:
            out = self._jj(
                [
                    "log",
                    "--ignore-working-copy",
                    "--no-graph",
                    "-r",
                    revset,
                    "-T",
                    "description",
                    "--limit",
                    "1",
                ],
                cwd=repo.main_repo,
            )
        except OperationRejected as exc:
            logger.debug("no description for %s: %s", info.name, exc)
            return ""
        return out.strip()

    def workspace_name_for(self, repo: RepoEntry, path: Path) -> str | None:
        return tracked_workspace_name(repo, path, self.main_workspace_name)
