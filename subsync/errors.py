"""
Errors — Exception taxonomy and process exit codes.

Precondition problems are raised and abort the run. Transport problems
(fetch, update, push) are recorded per submodule in the SyncReport instead,
so one unreachable remote does not stop the rest of the batch.
"""

from __future__ import annotations

from typing import Optional

EXIT_OK = 0
EXIT_PRECONDITION = 1
EXIT_TRANSPORT = 2
EXIT_CHANGED = 3


class SubsyncError(Exception):
    """Base class for errors that end a run."""

    exit_code = EXIT_TRANSPORT

    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class PreconditionError(SubsyncError):
    """Raised before any work when the run cannot safely start."""

    exit_code = EXIT_PRECONDITION


class SubmoduleNotFoundError(PreconditionError):
    """Raised when a requested path is not a configured submodule."""

    def __init__(self, path: str):
        super().__init__("submodule not found in .gitmodules", path=path)


class LockError(PreconditionError):
    """Raised when the repository lock is held or cannot be created."""
