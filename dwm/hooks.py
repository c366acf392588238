"""Agent hook handler.

Translates hook events from a coding agent into agent status records. It
runs on every tool call of the agent, so it only touches small files and
never spawns a VCS process.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from dwm.agent_status import AgentStatusStore
from dwm.errors import ParseFailure, RegistryInconsistency
from dwm.models import AgentStatus, RepoEntry
from dwm.registry import RepoRegistry
from dwm.vcs import main_workspace_for

logger = logging.getLogger(__name__)

EVENT_STATUS = {
    "PreToolUse": AgentStatus.WORKING,
    "UserPromptSubmit": AgentStatus.WORKING,
    "Stop": AgentStatus.IDLE,
}
WAITING_NOTIFICATIONS = {"idle_prompt", "permission_prompt"}
SESSION_END = "SessionEnd"
NOTIFICATION = "Notification"


@dataclass(frozen=True)
class HookEvent:
    """The fields of a hook payload dwm cares about."""

    hook_event_name: str
    session_id: str
    cwd: str
    notification_type: str | None = None


def _string(data: dict[str, object], key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def parse_hook_event(text: str) -> HookEvent:
    """Decode the JSON object a hook receives on stdin."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseFailure(f"invalid JSON from hook stdin: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseFailure("hook input must be a JSON object")
    return HookEvent(
        hook_event_name=_string(data, "hook_event_name"),
        session_id=_string(data, "session_id"),
        cwd=_string(data, "cwd"),
        notification_type=_string(data, "notification_type") or None,
    )


def status_for_event(event: HookEvent) -> AgentStatus | None:
    """Status a live event moves its session to, or None when it is ignored."""
    if event.hook_event_name == NOTIFICATION:
        if event.notification_type in WAITING_NOTIFICATIONS:
            return AgentStatus.WAITING
        return None
    return EVENT_STATUS.get(event.hook_event_name)


def resolve_workspace(root: Path, cwd: Path) -> tuple[RepoEntry, str] | None:
    """Map an agent's cwd to ``(repo, workspace)`` by exact directory match."""
    registry = RepoRegistry(root)
    try:
        found = registry.find_containing(cwd)
    except RegistryInconsistency as exc:
        logger.debug("cwd %s is under an inconsistent repo: %s", cwd, exc)
        return None
    if found is not None:
        repo, workspace = found
        exact = repo.storage_dir / workspace
        if workspace and not workspace.startswith(".") and cwd.resolve() == exact.resolve():
            return repo, workspace
        return None

    repo = registry.find_by_main_repo(cwd)
    if repo is not None:
        return repo, main_workspace_for(repo.vcs_type)
    return None


def handle_hook(event: HookEvent, root: Path, now: float | None = None) -> AgentStatus | None:
    """Apply one hook event. Returns the session's new status, if it has one."""
    if not event.session_id or not event.cwd:
        logger.debug("ignoring incomplete hook event %s", event.hook_event_name)
        return None

    resolved = resolve_workspace(root, Path(event.cwd))
    if resolved is None:
        logger.debug("ignoring hook event from untracked directory %s", event.cwd)
        return None
    repo, workspace = resolved
    store = AgentStatusStore(repo.storage_dir)

    try:
        if event.hook_event_name == SESSION_END:
            store.remove(workspace, event.session_id)
            return None
        status = status_for_event(event)
        if status is None:
            return None
        store.write(workspace, event.session_id, status, now=now)
    except ValueError as exc:
        logger.warning("ignoring hook event: %s", exc)
        return None
    return status
