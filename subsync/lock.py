"""
Repository Lock — Single-writer guard for the parent working tree.

Only one update may mutate the working tree and index at a time. The lock
is an advisory file created with O_EXCL and holding the owner's PID; a
stale file left by a killed process must be removed by hand.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .errors import LockError

logger = logging.getLogger(__name__)


class RepoLock:
    """Context manager around an exclusive lock file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._held = False

    def _holder(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8").strip() or None
        except OSError:
            return None

    def acquire(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            if not self.path.exists():
                # A parent component exists as a file (e.g. .git in a worktree).
                raise LockError(f"cannot create lock {self.path}: a parent path is not a directory")
            holder = self._holder()
            detail = f" (pid {holder})" if holder else ""
            raise LockError(
                f"another subsync run holds {self.path}{detail}; "
                "remove the file if that run is gone"
            )
        except OSError as e:
            raise LockError(f"cannot create lock {self.path}: {e.strerror or e}")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()}\n")
        self._held = True
        logger.debug(f"Lock acquired: {self.path}")

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning(f"Lock file vanished before release: {self.path}")
        self._held = False
        logger.debug(f"Lock released: {self.path}")

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self) -> "RepoLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
