"""Error taxonomy shared by the backends, the registry and the status store."""

from collections.abc import Sequence
from pathlib import Path


class DwmError(Exception):
    """Base class for every error dwm reports to the user."""


class BackendUnavailable(DwmError):
    """The VCS tool is missing or the directory is not a repository."""


class OperationRejected(DwmError):
    """The backend ran but refused the operation."""

    def __init__(self, cmd: Sequence[str], stderr: str) -> None:
        self.cmd = list(cmd)
        self.stderr = stderr
        super().__init__(stderr or f"{' '.join(self.cmd)} failed")


class ParseFailure(DwmError):
    """Backend output could not be decoded."""


class MalformedRecord(ParseFailure):
    """A serialized workspace record did not match the expected schema."""

    def __init__(self, field_index: int, raw: str, reason: str) -> None:
        self.field_index = field_index
        self.raw = raw
        self.reason = reason
        snippet = raw if len(raw) <= 60 else raw[:57] + "..."
        super().__init__(f"malformed record (field {field_index}: {reason}): {snippet!r}")


class StatusFileCorrupt(DwmError):
    """An agent status file could not be read or decoded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"{path}: {reason}")


class RegistryInconsistency(DwmError):
    """A tracked repository directory is missing its sidecar files."""

    def __init__(self, repo_dir: Path, reason: str) -> None:
        self.repo_dir = repo_dir
        super().__init__(f"{repo_dir.name}: {reason}")
