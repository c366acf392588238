"""Paths, constants and logging setup for dwm."""

import logging
import os
import sys
from datetime import timedelta
from pathlib import Path

# Agent status records older than this are treated as absent.
LIVENESS_WINDOW = timedelta(minutes=10)

# Unmerged workspaces untouched for longer than this are stale.
STALE_AGE = timedelta(days=30)

MAIN_REPO_FILE = ".main-repo"
VCS_TYPE_FILE = ".vcs-type"
AGENT_STATUS_DIR = ".agent-status"

JJ_MAIN_WORKSPACE = "default"
GIT_MAIN_WORKSPACE = "main-worktree"

ROOT_ENV = "DWM_ROOT"
OUTPUT_FILE_ENV = "DWM_OUTPUT_FILE"

LOG_FORMAT = "dwm: %(levelname)s: %(message)s"


def default_root() -> Path:
    """Return the root storage directory (``$DWM_ROOT`` or ``~/.dwm``)."""
    override = os.environ.get(ROOT_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".dwm"


def setup_logging(verbose: bool = False) -> None:
    """Send diagnostics to stderr; stdout is reserved for machine-readable output."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger = logging.getLogger("dwm")
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root_logger.propagate = False
