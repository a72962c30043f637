"""Environment-driven settings.

Values are read on every call so tests (and long-lived callers) can change
the environment without re-importing anything.
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_ASSIGN_GRACE_SECONDS = 3600
DEFAULT_AGENT_NAME = "Agent"
AUTOSYNC_TIMEOUT_SECONDS = 20.0

_TRUE = {"1", "true", "t", "yes", "y", "on"}
_FALSE = {"0", "false", "f", "no", "n", "off"}


def env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, "").strip() or default


def env_bool(name: str, default: bool) -> bool:
    """Parse a boolean env var; unrecognised values fall back to `default`."""
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    return default


def assign_grace_seconds() -> int:
    """Delegation grace window in seconds (0 disables delegated edits)."""
    raw = os.environ.get("CLARITY_ASSIGN_GRACE_SECONDS", "").strip()
    if raw:
        try:
            value = int(raw)
        except ValueError:
            return DEFAULT_ASSIGN_GRACE_SECONDS
        if value >= 0:
            return value
    return DEFAULT_ASSIGN_GRACE_SECONDS


def config_dir() -> Path:
    override = env_str("CLARITY_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".clarity"


def autosync_enabled() -> bool:
    return env_bool("CLARITY_AUTOSYNC", False)


def autocommit_enabled() -> bool:
    if os.environ.get("CLARITY_AUTOCOMMIT", "").strip():
        return env_bool("CLARITY_AUTOCOMMIT", True)
    # Older name kept working.
    return env_bool("CLARITY_GIT_AUTOCOMMIT", True)


def autopush_enabled() -> bool:
    return env_bool("CLARITY_AUTOPUSH", True)


def autopull_rebase_enabled() -> bool:
    return env_bool("CLARITY_AUTOPULL_REBASE", True)


def debug_enabled() -> bool:
    return env_bool("CLARITY_DEBUG", False)
