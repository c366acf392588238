"""Workspace lifecycle: create, delete, rename and locate workspaces."""

import logging
import shutil
from pathlib import Path

from dwm import names
from dwm.agent_status import KEY_SEP, AgentStatusStore
from dwm.errors import DwmError, OperationRejected
from dwm.models import RepoEntry
from dwm.registry import RepoRegistry, repo_dir_name
from dwm.vcs import Runner, VcsBackend, backend_for, detect

logger = logging.getLogger(__name__)


def is_inside(path: Path, directory: Path) -> bool:
    """Return True if ``path`` is ``directory`` or below it."""
    try:
        path.resolve().relative_to(directory.resolve())
    except ValueError:
        return False
    return True


def validate_name(name: str, operation: str = "new") -> None:
    """Reject names that cannot be used as a directory and status-file key."""
    reason = None
    if not name:
        reason = "workspace name cannot be empty"
    elif name.startswith("."):
        reason = "workspace name cannot start with '.'"
    elif "/" in name or "\\" in name or "\x00" in name:
        reason = "workspace name cannot contain path separators"
    elif KEY_SEP in name:
        reason = f"workspace name cannot contain '{KEY_SEP}'"
    if reason is not None:
        raise OperationRejected(["dwm", operation, name], reason)


def resolve_repo(
    root: Path, cwd: Path, runner: Runner | None = None, create: bool = False
) -> tuple[RepoEntry, VcsBackend]:
    """Find the repository ``cwd`` belongs to.

    Inside the root the storage dir decides, with the backend recorded
    there. Elsewhere the backend is detected from ``cwd``. An untracked
    repository is registered when ``create`` is set; otherwise an entry
    pointing at its would-be storage dir is returned without touching disk.
    """
    registry = RepoRegistry(root)
    found = registry.find_containing(cwd)
    if found is not None:
        repo, _ = found
        return repo, backend_for(repo.vcs_type, runner)

    vcs_type = detect(cwd)
    backend = backend_for(vcs_type, runner)
    main_repo = backend.root_from(cwd)
    tracked = registry.find_by_main_repo(main_repo)
    if tracked is not None:
        return tracked, backend_for(tracked.vcs_type, runner)
    if create:
        return registry.ensure(main_repo, vcs_type), backend

    storage_dir = root / repo_dir_name(main_repo)
    repo = RepoEntry(
        name=storage_dir.name,
        storage_dir=storage_dir,
        main_repo=main_repo,
        vcs_type=vcs_type,
    )
    return repo, backend


def workspace_path(repo: RepoEntry, backend: VcsBackend, name: str) -> Path:
    """Return the directory of an existing workspace."""
    if name == backend.main_workspace_name:
        return repo.main_repo
    path = repo.storage_dir / name
    if name.startswith(".") or not path.is_dir():
        raise OperationRejected(["dwm", "switch", name], f"workspace '{name}' not found at {path}")
    return path


def infer_workspace_name(repo: RepoEntry, backend: VcsBackend, cwd: Path) -> str:
    """Return the workspace containing ``cwd``."""
    for candidate in [cwd, *cwd.parents]:
        name = backend.workspace_name_for(repo, candidate)
        if name is not None:
            return name
    raise DwmError(f"not inside a workspace of {repo.display_name} (current dir is {cwd})")


def new_workspace(
    repo: RepoEntry,
    backend: VcsBackend,
    name: str | None = None,
    at: str | None = None,
    from_workspace: str | None = None,
) -> Path:
    """Create a workspace and return its directory."""
    if at is not None and from_workspace is not None:
        raise OperationRejected(["dwm", "new"], "--at and --from cannot be combined")
    repo.storage_dir.mkdir(parents=True, exist_ok=True)

    if name is None:
        name = names.generate_unique(repo.storage_dir)
    validate_name(name)
    if name == backend.main_workspace_name:
        raise OperationRejected(["dwm", "new", name], f"'{name}' is reserved for the main workspace")

    path = repo.storage_dir / name
    if path.exists():
        raise OperationRejected(
            ["dwm", "new", name], f"workspace '{name}' already exists at {path}"
        )

    logger.debug("creating workspace %s at %s (at=%s, from=%s)", name, path, at, from_workspace)
    backend.create_workspace(repo, name, path, at=at, from_workspace=from_workspace)
    return path


def delete_workspace(repo: RepoEntry, backend: VcsBackend, name: str) -> Path:
    """Delete a workspace with its directory and status records.

    Returns the directory that was removed.
    """
    if name == backend.main_workspace_name:
        raise OperationRejected(["dwm", "delete", name], f"cannot delete the main workspace '{name}'")
    validate_name(name, "delete")
    path = repo.storage_dir / name
    if not path.exists():
        raise OperationRejected(["dwm", "delete", name], f"workspace '{name}' not found at {path}")

    backend.delete_workspace(repo, name, path)
    if path.exists():
        logger.debug("removing %s", path)
        shutil.rmtree(path)
    removed = AgentStatusStore(repo.storage_dir).purge_workspace(name)
    logger.debug("removed %d agent status record(s) of %s", removed, name)
    return path


def rename_workspace(repo: RepoEntry, backend: VcsBackend, old_name: str, new_name: str) -> Path:
    """Rename a workspace and move its directory. Returns the new directory."""
    if old_name == backend.main_workspace_name:
        raise OperationRejected(
            ["dwm", "rename", old_name], f"cannot rename the main workspace '{old_name}'"
        )
    validate_name(new_name, "rename")
    if new_name == backend.main_workspace_name:
        raise OperationRejected(
            ["dwm", "rename", new_name], f"'{new_name}' is reserved for the main workspace"
        )

    old_path = repo.storage_dir / old_name
    if old_name.startswith(".") or not old_path.is_dir():
        raise OperationRejected(
            ["dwm", "rename", old_name], f"workspace '{old_name}' not found at {old_path}"
        )
    new_path = repo.storage_dir / new_name
    if new_path.exists():
        raise OperationRejected(
            ["dwm", "rename", new_name], f"workspace '{new_name}' already exists at {new_path}"
        )

    backend.rename_workspace(repo, old_name, new_name, old_path, new_path)
    # Sessions resolve by directory, so records under the old name would never refresh.
    AgentStatusStore(repo.storage_dir).purge_workspace(old_name)
    return new_path


def redirect_after_move(cwd: Path, old_path: Path, new_path: Path) -> Path | None:
    """Where a shell inside ``old_path`` should go once it moved to ``new_path``."""
    if not is_inside(cwd, old_path):
        return None
    return new_path / cwd.resolve().relative_to(old_path.resolve())
