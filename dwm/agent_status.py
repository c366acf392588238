"""On-disk agent status records.

Each live agent session in a workspace owns one JSON file::

    <storage_dir>/.agent-status/<workspace>__<session-id>.json
    {"session_id": "...", "status": "working", "updated_at": 1700000000}

Writers never take locks: a record is written to a temporary file in the
same directory and renamed into place, so readers see either the old or
the new file, never a partial one. Records older than ``LIVENESS_WINDOW``
are treated as absent and removed opportunistically by readers.
"""

import json
import logging
import os
import tempfile
import time
from collections.abc import Iterator
from pathlib import Path

from dwm.config import AGENT_STATUS_DIR, LIVENESS_WINDOW
from dwm.errors import StatusFileCorrupt
from dwm.models import AgentStatus, AgentStatusRecord, AgentStatusSummary

logger = logging.getLogger(__name__)

KEY_SEP = "__"
TMP_PREFIX = ".tmp-"


def _validate_session_id(session_id: str) -> None:
    if not session_id or session_id.startswith("."):
        raise ValueError(f"invalid session id {session_id!r}")
    if "/" in session_id or os.sep in session_id or "\x00" in session_id:
        raise ValueError(f"invalid session id {session_id!r}")


def _now(now: float | None) -> int:
    return int(time.time() if now is None else now)


def is_live(updated_at: int, now: float) -> bool:
    return now - updated_at <= LIVENESS_WINDOW.total_seconds()


def parse_status_file(path: Path) -> AgentStatusRecord:
    """Read one status file; the workspace name comes from the file name."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StatusFileCorrupt(path, str(exc)) from exc
    if not isinstance(data, dict):
        raise StatusFileCorrupt(path, "not a JSON object")

    session_id = data.get("session_id")
    status = data.get("status")
    updated_at = data.get("updated_at")
    if not isinstance(session_id, str) or not session_id:
        raise StatusFileCorrupt(path, "missing session_id")
    if not isinstance(updated_at, int) or isinstance(updated_at, bool):
        raise StatusFileCorrupt(path, "missing updated_at")
    try:
        status_value = AgentStatus(status)
    except ValueError:
        raise StatusFileCorrupt(path, f"unknown status {status!r}") from None

    suffix = f"{KEY_SEP}{session_id}"
    if not path.stem.endswith(suffix) or path.stem == suffix:
        raise StatusFileCorrupt(path, "file name does not match session_id")
    workspace = path.stem[: -len(suffix)]
    return AgentStatusRecord(
        workspace=workspace,
        session_id=session_id,
        status=status_value,
        updated_at=updated_at,
    )


class AgentStatusStore:
    """Agent status records for one repository's storage directory."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self.status_dir = storage_dir / AGENT_STATUS_DIR

    def path_for(self, workspace: str, session_id: str) -> Path:
        _validate_session_id(session_id)
        return self.status_dir / f"{workspace}{KEY_SEP}{session_id}.json"

    def write(
        self,
        workspace: str,
        session_id: str,
        status: AgentStatus,
        now: float | None = None,
    ) -> AgentStatusRecord:
        """Atomically create or replace the record for one session."""
        final_path = self.path_for(workspace, session_id)
        record = AgentStatusRecord(
            workspace=workspace,
            session_id=session_id,
            status=status,
            updated_at=_now(now),
        )
        payload = json.dumps(
            {
                "session_id": record.session_id,
                "status": record.status.value,
                "updated_at": record.updated_at,
            }
        )

        self.status_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=TMP_PREFIX, suffix=".json", dir=self.status_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, final_path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        return record

    def remove(self, workspace: str, session_id: str) -> bool:
        """Delete one session's record. Returns whether a file was removed."""
        try:
            self.path_for(workspace, session_id).unlink()
        except FileNotFoundError:
            return False
        return True

    def _files(self, workspace: str | None = None) -> Iterator[Path]:
        if not self.status_dir.is_dir():
            return
        prefix = f"{workspace}{KEY_SEP}" if workspace is not None else ""
        for path in sorted(self.status_dir.glob("*.json")):
            if path.name.startswith(TMP_PREFIX) or not path.name.startswith(prefix):
                continue
            yield path

    def _discard_expired(self, path: Path, now: float) -> None:
        # Only unlink when the file itself is old too; a writer may have just
        # replaced it with a fresh record.
        try:
            if is_live(int(path.stat().st_mtime), now):
                return
            path.unlink()
            logger.debug("removed expired agent status %s", path.name)
        except OSError as exc:
            logger.debug("could not remove expired agent status %s: %s", path.name, exc)

    def _live_records(self, workspace: str | None, now: float | None) -> list[AgentStatusRecord]:
        current = _now(now)
        live: list[AgentStatusRecord] = []
        for path in self._files(workspace):
            try:
                record = parse_status_file(path)
            except StatusFileCorrupt as exc:
                logger.debug("ignoring agent status file: %s", exc)
                continue
            if workspace is not None and record.workspace != workspace:
                continue
            if not is_live(record.updated_at, current):
                self._discard_expired(path, current)
                continue
            live.append(record)
        return live

    def read(self, workspace: str, now: float | None = None) -> list[AgentStatusRecord]:
        """Return the live records of a workspace."""
        return self._live_records(workspace, now)

    def summary(self, workspace: str, now: float | None = None) -> AgentStatusSummary:
        summary = AgentStatusSummary()
        for record in self.read(workspace, now):
            summary.add(record.status)
        return summary

    def summaries(self, now: float | None = None) -> dict[str, AgentStatusSummary]:
        """Return live summaries for every workspace with at least one live session."""
        result: dict[str, AgentStatusSummary] = {}
        for record in self._live_records(None, now):
            result.setdefault(record.workspace, AgentStatusSummary()).add(record.status)
        return result

    def purge_workspace(self, workspace: str) -> int:
        """Delete every record of a workspace, live or not."""
        removed = 0
        for path in list(self._files(workspace)):
            try:
                record = parse_status_file(path)
            except StatusFileCorrupt:
                record = None
            # Skip files of a different workspace whose name merely shares the prefix.
            if record is not None and record.workspace != workspace:
                continue
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed
