from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from dwm import records
from dwm.errors import BackendUnavailable, OperationRejected
from dwm.jj_ops import JjBackend, record_template, workspace_revision
from dwm.models import RepoEntry, VcsType, WorkspaceInfo


class Recorder:
    """Runner that records invocations and replays canned output."""

    def __init__(self, outputs: dict[str, str] | None = None) -> None:
        self.outputs = outputs or {}
        self.calls: list[tuple[list[str], Path | None]] = []

    def __call__(self, args, cwd):
        self.calls.append((list(args), cwd))
        return self.outputs.get(args[1], "")


def _repo(tmp_path: Path) -> RepoEntry:
    return RepoEntry(
        name="proj-0000abcd",
        storage_dir=tmp_path / "root" / "proj-0000abcd",
        main_repo=tmp_path / "proj",
        vcs_type=VcsType.JJ,
    )


def _info(repo: RepoEntry, name: str) -> WorkspaceInfo:
    return WorkspaceInfo(name, "abc", "", (), None, repo.storage_dir / name)


def test_workspace_revision_quotes_name() -> None:
    assert workspace_revision("alpha-wolf") == '"alpha-wolf"@'
    assert workspace_revision('we"ird') == '"we\\"ird"@'


def test_record_template_emits_all_fields(tmp_path: Path) -> None:
    template = record_template(_repo(tmp_path))
    assert template.count('"\\0"') == records.FIELD_COUNT - 1
    assert template.endswith('++ "\\x1e"')
    assert str(tmp_path / "proj") in template
    assert records.TIMESTAMP_FORMAT in template


def test_list_workspaces_output_is_parsed(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    output = (
        "default\x00kkkkkkkk\x00main work\n\x00main\x002024-05-01T12:00:00+0000\x00"
        f"{repo.main_repo}\x1e"
        "alpha-wolf\x00zzzzzzzz\x00\x00\x00\x00"
        f"{repo.storage_dir / 'alpha-wolf'}\x1e"
    )
    backend = JjBackend(Recorder({"workspace": output}))
    parsed = [records.parse_record(raw) for raw in records.split_records(backend.list_workspaces(repo))]

    assert [info.name for info in parsed] == ["default", "alpha-wolf"]
    assert parsed[0].bookmarks == ("main",)
    assert parsed[1].last_modified is None


def test_create_workspace_commands(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    runner = Recorder()
    backend = JjBackend(runner)
    path = repo.storage_dir / "ws"

    backend.create_workspace(repo, "ws", path, at="abc123")
    backend.create_workspace(repo, "ws2", path, from_workspace="other")

    assert runner.calls[0] == (
        ["jj", "workspace", "add", "--name", "ws", "-r", "abc123", str(path)],
        repo.main_repo,
    )
    assert runner.calls[1][0] == [
        "jj", "workspace", "add", "--name", "ws2", "-r", '"other"@', str(path),
    ]


def test_delete_forgets_workspace(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    runner = Recorder()
    JjBackend(runner).delete_workspace(repo, "ws", repo.storage_dir / "ws")
    assert runner.calls == [(["jj", "workspace", "forget", "ws"], repo.main_repo)]


def test_rename_renames_then_moves(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    old_path = repo.storage_dir / "old"
    old_path.mkdir(parents=True)
    runner = Recorder()

    JjBackend(runner).rename_workspace(repo, "old", "new", old_path, repo.storage_dir / "new")

    assert runner.calls == [(["jj", "workspace", "rename", "new"], old_path)]
    assert (repo.storage_dir / "new").is_dir()
    assert not old_path.exists()


def test_diff_stat_against_trunk(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    runner = Recorder({"diff": "a.txt | 3 ++-\n1 file changed, 2 insertions(+), 1 deletion(-)\n"})
    stat = JjBackend(runner).diff_stat(repo, _info(repo, "ws"))

    assert (stat.files_changed, stat.insertions, stat.deletions) == (1, 2, 1)
    args = runner.calls[0][0]
    assert args[args.index("--from") + 1] == "trunk()"
    assert args[args.index("--to") + 1] == '"ws"@'


@pytest.mark.parametrize(("output", "merged"), [("", True), ("zzzzzzzz\n", False)])
def test_is_merged(tmp_path: Path, output: str, merged: bool) -> None:
    repo = _repo(tmp_path)
    runner = Recorder({"log": output})
    assert JjBackend(runner).is_merged(repo, _info(repo, "ws")) is merged


def test_latest_description_tolerates_failure(tmp_path: Path) -> None:
    repo = _repo(tmp_path)

    def runner(args, cwd):
        raise subprocess.CalledProcessError(1, args, output="", stderr="Error: Revision not found")

    assert JjBackend(runner).latest_description(repo, _info(repo, "ws")) == ""


def test_process_errors_are_classified(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    repo.main_repo.mkdir()

    def missing(args, cwd):
        raise FileNotFoundError(args[0])

    def not_a_repo(args, cwd):
        raise subprocess.CalledProcessError(1, args, output="", stderr="Error: There is no jj repo in \".\"")

    def rejected(args, cwd):
        raise subprocess.CalledProcessError(1, args, output="", stderr="Error: Workspace already exists")

    with pytest.raises(BackendUnavailable):
        JjBackend(missing).list_workspaces(repo)
    with pytest.raises(BackendUnavailable):
        JjBackend(not_a_repo).list_workspaces(repo)
    with pytest.raises(OperationRejected) as excinfo:
        JjBackend(rejected).create_workspace(repo, "ws", repo.storage_dir / "ws")
    assert excinfo.value.stderr == "Error: Workspace already exists"
