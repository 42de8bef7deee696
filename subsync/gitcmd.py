"""
Git Command — Thin wrapper around the git binary.

Every git invocation in subsync goes through `run()`, so tests can replace
it with a single patch.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120


def run(cwd: Path, *args: str, timeout: int = DEFAULT_TIMEOUT) -> subprocess.CompletedProcess:
    """Run a git command in `cwd`.

    A timeout is reported as a failed process (returncode 124) rather than
    raised, so callers only ever inspect the return code.
    """
    cmd = ["git"] + list(args)
    logger.debug(f"$ {' '.join(cmd)}  (cwd={cwd})")
    try:
        return subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return subprocess.CompletedProcess(
            args=cmd,
            returncode=124,
            stdout="",
            stderr=f"git {args[0] if args else ''} timed out after {timeout}s",
        )


def output(cwd: Path, *args: str, timeout: int = DEFAULT_TIMEOUT) -> Optional[str]:
    """Run a git command and return stripped stdout, or None on failure."""
    result = run(cwd, *args, timeout=timeout)
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def error_text(result: subprocess.CompletedProcess, default: str = "git failed") -> str:
    """Best human-readable error from a failed git process."""
    return (result.stderr or "").strip() or (result.stdout or "").strip() or default
