from __future__ import annotations

import shutil
from datetime import datetime, timezone
from pathlib import Path

import pytest

from dwm import records
from dwm.errors import DwmError, OperationRejected
from dwm.models import DiffStat, RepoEntry, VcsType, WorkspaceInfo
from dwm.registry import RepoRegistry
from dwm.vcs import tracked_workspace_name


class FakeBackend:
    """In-memory backend; workspaces are plain directories."""

    vcs_type = VcsType.JJ
    main_workspace_name = "default"

    def __init__(self, repo: RepoEntry) -> None:
        self.repo = repo
        self.workspaces: dict[str, WorkspaceInfo] = {}
        self.merged: set[str] = set()
        self.diffs: dict[str, DiffStat] = {}
        self.descriptions: dict[str, str] = {}
        self.failures: dict[str, DwmError] = {}
        self.extra_output = ""
        self.calls: list[tuple] = []
        self.add(self.main_workspace_name, description="main line")

    def add(
        self,
        name: str,
        change_id: str = "abcd1234",
        description: str = "",
        bookmarks: tuple[str, ...] = (),
        last_modified: datetime | None = None,
    ) -> WorkspaceInfo:
        if name == self.main_workspace_name:
            path = self.repo.main_repo
        else:
            path = self.repo.storage_dir / name
            path.mkdir(parents=True, exist_ok=True)
        info = WorkspaceInfo(
            name=name,
            change_id=change_id,
            description=description,
            bookmarks=bookmarks,
            last_modified=last_modified,
            path=path,
        )
        self.workspaces[name] = info
        return info

    def root_from(self, path: Path) -> Path:
        return self.repo.main_repo

    def list_workspaces(self, repo: RepoEntry) -> str:
        self.calls.append(("list",))
        encoded = "".join(records.encode_record(info) for info in self.workspaces.values())
        return encoded + self.extra_output

    def create_workspace(
        self,
        repo: RepoEntry,
        name: str,
        path: Path,
        at: str | None = None,
        from_workspace: str | None = None,
    ) -> None:
        self.calls.append(("create", name, path, at, from_workspace))
        if from_workspace is not None and from_workspace not in self.workspaces:
            raise OperationRejected(["fake", "add"], f"workspace '{from_workspace}' not found")
        path.mkdir(parents=True)
        change_id = at or (self.workspaces[from_workspace].change_id if from_workspace else "new00000")
        self.add(name, change_id=change_id)

    def delete_workspace(self, repo: RepoEntry, name: str, path: Path) -> None:
        self.calls.append(("delete", name, path))
        self.workspaces.pop(name, None)

    def rename_workspace(
        self, repo: RepoEntry, old_name: str, new_name: str, old_path: Path, new_path: Path
    ) -> None:
        self.calls.append(("rename", old_name, new_name))
        shutil.move(str(old_path), str(new_path))
        info = self.workspaces.pop(old_name)
        self.workspaces[new_name] = WorkspaceInfo(
            name=new_name,
            change_id=info.change_id,
            description=info.description,
            bookmarks=info.bookmarks,
            last_modified=info.last_modified,
            path=new_path,
        )

    def diff_stat(self, repo: RepoEntry, info: WorkspaceInfo) -> DiffStat:
        if info.name in self.failures:
            raise self.failures[info.name]
        return self.diffs.get(info.name, DiffStat())

    def is_merged(self, repo: RepoEntry, info: WorkspaceInfo) -> bool:
        self.calls.append(("is_merged", info.name))
        return info.name in self.merged

    def latest_description(self, repo: RepoEntry, info: WorkspaceInfo) -> str:
        return self.descriptions.get(info.name, "")

    def workspace_name_for(self, repo: RepoEntry, path: Path) -> str | None:
        return tracked_workspace_name(repo, path, self.main_workspace_name)


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path / "dwm-root"


@pytest.fixture
def repo(tmp_path: Path, root: Path) -> RepoEntry:
    main_repo = tmp_path / "project"
    main_repo.mkdir()
    return RepoRegistry(root).ensure(main_repo, VcsType.JJ)


@pytest.fixture
def backend(repo: RepoEntry) -> FakeBackend:
    return FakeBackend(repo)


@pytest.fixture
def fake_backend_cls() -> type[FakeBackend]:
    return FakeBackend
