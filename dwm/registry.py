"""Tracked repositories under the root storage directory."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from dwm.config import MAIN_REPO_FILE, VCS_TYPE_FILE
from dwm.errors import RegistryInconsistency
from dwm.models import RepoEntry, VcsType

logger = logging.getLogger(__name__)


def _fnv1a(text: str) -> str:
    value = 0x811C9DC5
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * 0x01000193) & 0xFFFFFFFF
    return f"{value:08x}"


def repo_dir_name(main_repo: Path) -> str:
    """Storage directory name: basename plus a short hash of the full path.

    Two repositories with the same basename at different paths get distinct
    directories.
    """
    return f"{main_repo.name}-{_fnv1a(str(main_repo))}"


@dataclass
class RegistryScan:
    """Result of enumerating the root storage directory."""

    repos: list[RepoEntry] = field(default_factory=list)
    problems: list[RegistryInconsistency] = field(default_factory=list)


class RepoRegistry:
    """Enumerates and creates repository storage directories."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _load(self, storage_dir: Path) -> RepoEntry:
        main_repo_file = storage_dir / MAIN_REPO_FILE
        try:
            main_repo = main_repo_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            raise RegistryInconsistency(storage_dir, f"missing {MAIN_REPO_FILE}") from None
        except OSError as exc:
            raise RegistryInconsistency(storage_dir, f"unreadable {MAIN_REPO_FILE}: {exc}") from exc
        if not main_repo:
            raise RegistryInconsistency(storage_dir, f"empty {MAIN_REPO_FILE}")

        vcs_file = storage_dir / VCS_TYPE_FILE
        vcs_type = VcsType.JJ
        if vcs_file.exists():
            raw = vcs_file.read_text(encoding="utf-8").strip()
            try:
                vcs_type = VcsType(raw)
            except ValueError:
                raise RegistryInconsistency(
                    storage_dir, f"unknown VCS type {raw!r} in {VCS_TYPE_FILE}"
                ) from None

        return RepoEntry(
            name=storage_dir.name,
            storage_dir=storage_dir,
            main_repo=Path(main_repo),
            vcs_type=vcs_type,
        )

    def scan(self) -> RegistryScan:
        """Enumerate tracked repositories, collecting inconsistencies instead of failing."""
        result = RegistryScan()
        if not self.root.is_dir():
            return result
        for storage_dir in sorted(self.root.iterdir()):
            if not storage_dir.is_dir() or storage_dir.name.startswith("."):
                continue
            try:
                result.repos.append(self._load(storage_dir))
            except RegistryInconsistency as exc:
                result.problems.append(exc)
        return result

    def get(self, name: str) -> RepoEntry:
        storage_dir = self.root / name
        if not storage_dir.is_dir():
            raise RegistryInconsistency(storage_dir, "not a tracked repository")
        return self._load(storage_dir)

    def find_by_main_repo(self, path: Path) -> RepoEntry | None:
        """Return the repository whose main checkout is exactly ``path``."""
        target = path.resolve()
        for repo in self.scan().repos:
            if repo.main_repo.resolve() == target:
                return repo
        return None

    def find_containing(self, path: Path) -> tuple[RepoEntry, str] | None:
        """Map a path under the root to ``(repo, workspace name)``.

        The workspace name is empty when ``path`` is a storage dir itself.
        """
        try:
            relative = path.resolve().relative_to(self.root.resolve())
        except ValueError:
            return None
        if not relative.parts:
            return None
        repo = self.get(relative.parts[0])
        workspace = relative.parts[1] if len(relative.parts) > 1 else ""
        return repo, workspace

    def ensure(self, main_repo: Path, vcs_type: VcsType) -> RepoEntry:
        """Create the storage dir for a repository, writing sidecars only once."""
        storage_dir = self.root / repo_dir_name(main_repo)
        storage_dir.mkdir(parents=True, exist_ok=True)
        main_repo_file = storage_dir / MAIN_REPO_FILE
        if not main_repo_file.exists():
            logger.debug("registering %s in %s", main_repo, storage_dir)
            main_repo_file.write_text(str(main_repo), encoding="utf-8")
        vcs_file = storage_dir / VCS_TYPE_FILE
        if not vcs_file.exists():
            vcs_file.write_text(vcs_type.value, encoding="utf-8")
        return self._load(storage_dir)
