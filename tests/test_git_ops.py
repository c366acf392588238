from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from dwm import records, services, workspace
from dwm.git_ops import GitBackend, parse_worktrees, record_format
from dwm.models import RepoEntry, Staleness, VcsType
from dwm.registry import RepoRegistry

GIT_AVAILABLE = shutil.which("git") is not None


def _run(cmd: list[str], cwd: Path | None = None) -> None:
    subprocess.run(cmd, cwd=str(cwd) if cwd else None, check=True, capture_output=True)


def _init_repo(path: Path) -> Path:
    path.mkdir(parents=True)
    _run(["git", "init", "-q", "-b", "main"], cwd=path)
    _run(["git", "config", "user.email", "test@example.com"], cwd=path)
    _run(["git", "config", "user.name", "Test"], cwd=path)
    (path / "README.md").write_text("hello\n")
    _run(["git", "add", "."], cwd=path)
    _run(["git", "commit", "-q", "-m", "init"], cwd=path)
    return path


def _commit(path: Path, filename: str, content: str, message: str) -> None:
    (path / filename).write_text(content)
    _run(["git", "add", "."], cwd=path)
    _run(["git", "commit", "-q", "-m", message], cwd=path)


def test_parse_worktrees_porcelain() -> None:
    output = (
        "worktree /repo/.bare\n"
        "bare\n"
        "\n"
        "worktree /repo/main\n"
        "HEAD 1111111111111111111111111111111111111111\n"
        "branch refs/heads/main\n"
        "\n"
        "worktree /repo/detached\n"
        "HEAD 2222222222222222222222222222222222222222\n"
        "detached\n"
    )
    worktrees = parse_worktrees(output)
    assert [(wt.path, wt.branch) for wt in worktrees] == [
        (Path("/repo/main"), "main"),
        (Path("/repo/detached"), None),
    ]
    assert worktrees[1].head.startswith("2222")


def test_record_format_escapes_percent() -> None:
    fmt = record_format("100%-done", "feature", Path("/tmp/100%"))
    assert fmt.startswith("100%%-done%x00%h%x00%B%x00feature%x00%cI%x00")
    assert fmt.endswith("/tmp/100%%%x1e")


@pytest.fixture
def git_repo(tmp_path: Path) -> tuple[RepoEntry, GitBackend]:
    main_repo = _init_repo(tmp_path / "project")
    repo = RepoRegistry(tmp_path / "root").ensure(main_repo, VcsType.GIT)
    return repo, GitBackend()


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_root_from_worktree_is_main_checkout(git_repo: tuple[RepoEntry, GitBackend]) -> None:
    repo, backend = git_repo
    path = workspace.new_workspace(repo, backend, "feature")
    assert backend.root_from(path).resolve() == repo.main_repo.resolve()


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_list_workspaces_round_trip(git_repo: tuple[RepoEntry, GitBackend]) -> None:
    repo, backend = git_repo
    path = workspace.new_workspace(repo, backend, "feature")
    _commit(path, "feature.txt", "one\ntwo\n", "add feature\n\nwith a body")

    infos = {
        info.name: info
        for info in map(records.parse_record, records.split_records(backend.list_workspaces(repo)))
    }
    assert set(infos) == {"main-worktree", "feature"}
    assert infos["feature"].bookmarks == ("feature",)
    assert infos["feature"].summary == "add feature"
    assert infos["feature"].last_modified is not None
    assert infos["main-worktree"].path.resolve() == repo.main_repo.resolve()


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_diff_stat_and_merge_status(git_repo: tuple[RepoEntry, GitBackend]) -> None:
    repo, backend = git_repo
    path = workspace.new_workspace(repo, backend, "feature")
    _commit(path, "feature.txt", "one\ntwo\n", "add feature")

    entries = {entry.name: entry for entry in services.load_workspaces(repo, backend)}
    feature = entries["feature"]
    assert feature.error is None
    assert (feature.diff_stat.files_changed, feature.diff_stat.insertions) == (1, 2)
    assert feature.staleness is Staleness.NOT_STALE

    _run(["git", "merge", "-q", "--ff-only", "feature"], cwd=repo.main_repo)
    entries = {entry.name: entry for entry in services.load_workspaces(repo, backend)}
    assert entries["feature"].staleness is Staleness.STALE_MERGED
    assert entries["main-worktree"].staleness is Staleness.NOT_STALE


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_rename_and_delete_worktree(git_repo: tuple[RepoEntry, GitBackend]) -> None:
    repo, backend = git_repo
    workspace.new_workspace(repo, backend, "old")

    new_path = workspace.rename_workspace(repo, backend, "old", "new")
    assert new_path.is_dir()
    assert backend.branch_exists(repo, "new")
    assert not backend.branch_exists(repo, "old")

    workspace.delete_workspace(repo, backend, "new")
    assert not new_path.exists()
    names = [entry.name for entry in services.load_workspaces(repo, backend)]
    assert names == ["main-worktree"]


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_new_workspace_from_other_workspace(git_repo: tuple[RepoEntry, GitBackend]) -> None:
    repo, backend = git_repo
    source = workspace.new_workspace(repo, backend, "source")
    _commit(source, "source.txt", "x\n", "source work")

    copy = workspace.new_workspace(repo, backend, "copy", from_workspace="source")
    assert (copy / "source.txt").read_text() == "x\n"


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_new_workspace_at_revision(git_repo: tuple[RepoEntry, GitBackend]) -> None:
    repo, backend = git_repo
    _commit(repo.main_repo, "second.txt", "2\n", "second")
    parent = subprocess.run(
        ["git", "rev-parse", "HEAD~1"],
        cwd=repo.main_repo,
        check=True,
        capture_output=True,
        text=True,
    ).stdout.strip()

    workspace.new_workspace(repo, backend, "pinned", at="HEAD~1")

    entries = {entry.name: entry for entry in services.load_workspaces(repo, backend)}
    change_id = entries["pinned"].info.change_id
    assert change_id
    assert parent.startswith(change_id)


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_removed_worktree_does_not_hide_others(git_repo: tuple[RepoEntry, GitBackend]) -> None:
    repo, backend = git_repo
    workspace.new_workspace(repo, backend, "good")
    gone = workspace.new_workspace(repo, backend, "gone")
    shutil.rmtree(gone)

    entries = {entry.name: entry for entry in services.load_workspaces(repo, backend)}

    assert "good" in entries
    assert entries["good"].error is None
    assert "gone" not in entries
