"""Staleness classification of workspaces."""

from collections.abc import Callable
from datetime import datetime, timezone

from dwm.config import STALE_AGE
from dwm.models import Staleness, WorkspaceInfo


def evaluate_staleness(
    info: WorkspaceInfo,
    is_merged: Callable[[], bool],
    now: datetime | None = None,
) -> Staleness:
    """Classify a workspace.

    The merge check runs first and wins when both rules apply. Workspaces
    with an unknown timestamp are never stale by age.
    """
    if is_merged():
        return Staleness.STALE_MERGED
    if info.last_modified is None:
        return Staleness.NOT_STALE
    now = now or datetime.now(timezone.utc)
    if now - info.last_modified > STALE_AGE:
        return Staleness.STALE_AGE
    return Staleness.NOT_STALE
