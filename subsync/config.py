"""
Sync Configuration — Parse SUBSYNC_* environment variables.

Minimal config is nothing at all: run from the repository root and the
defaults match the plain `git submodule update --remote` workflow.

    SUBSYNC_REPO=.                                   # repository root
    SUBSYNC_COMMIT_PREFIX="ci: update submodule pointers"
    SUBSYNC_GIT_TIMEOUT=120                          # seconds per git call
    SUBSYNC_LOCK_FILE=                               # default: <git dir>/subsync.lock
    SUBSYNC_REMOTE=origin
    SUBSYNC_AUTOMATED=true|false                     # override CI detection
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_PREFIX = "ci: update submodule pointers"
LOCK_NAME = "subsync.lock"

# Variables set by common CI runners. Presence alone is the signal.
CI_MARKERS = ("GITHUB_ACTIONS", "GITLAB_CI", "BUILDKITE", "JENKINS_URL", "TF_BUILD")

_TRUTHY = ("true", "1", "yes")
_FALSY = ("false", "0", "no")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using {default}")
        return default
    if value <= 0:
        logger.warning(f"Invalid {name}={raw!r}, using {default}")
        return default
    return value


def detect_automated(env: Optional[Mapping[str, str]] = None) -> bool:
    """Is this process running inside a CI pipeline?"""
    env = os.environ if env is None else env

    override = env.get("SUBSYNC_AUTOMATED", "").strip().lower()
    if override in _TRUTHY:
        return True
    if override in _FALSY:
        return False

    if env.get("CI", "").strip().lower() in _TRUTHY:
        return True
    return any(env.get(marker) for marker in CI_MARKERS)


@dataclass
class SyncSettings:
    """Settings for one subsync run."""

    repo: Path = Path(".")
    commit_prefix: str = DEFAULT_COMMIT_PREFIX
    git_timeout: int = 120
    lock_file: str = ""  # empty = inside the git dir, resolved by the orchestrator
    remote: str = "origin"

    @property
    def lock_path(self) -> Optional[Path]:
        """Explicitly configured lock file, or None to use the git dir."""
        if not self.lock_file:
            return None
        path = Path(self.lock_file)
        return path if path.is_absolute() else self.repo / path

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SyncSettings":
        """Build settings from environment variables."""
        env = os.environ if env is None else env

        settings = cls(
            repo=Path(env.get("SUBSYNC_REPO", ".") or "."),
            commit_prefix=env.get("SUBSYNC_COMMIT_PREFIX", "").strip() or DEFAULT_COMMIT_PREFIX,
            git_timeout=_env_int(env, "SUBSYNC_GIT_TIMEOUT", 120),
            lock_file=env.get("SUBSYNC_LOCK_FILE", "").strip(),
            remote=env.get("SUBSYNC_REMOTE", "").strip() or "origin",
        )
        logger.debug(
            f"Settings: repo={settings.repo}, remote={settings.remote}, "
            f"timeout={settings.git_timeout}s"
        )
        return settings
