"""
Models — Submodule records and per-run sync reports.

A SubmoduleRecord is read-only input (owned by git). SubmoduleResult and
SyncReport are built fresh for every run and discarded after printing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import EXIT_CHANGED, EXIT_OK, EXIT_TRANSPORT


def short_sha(sha: Optional[str]) -> str:
    return sha[:7] if sha else "-------"


class Outcome(str, Enum):
    """Per-submodule result of a check or update."""
    UP_TO_DATE = "up-to-date"
    BEHIND = "behind"
    UPDATED = "updated"
    ERROR = "error"


class SubmoduleState(str, Enum):
    """Checkout state, from the `git submodule status` prefix."""
    IN_SYNC = "in-sync"
    MODIFIED = "modified"
    UNINITIALIZED = "uninitialized"
    CONFLICT = "conflict"

    @classmethod
    def from_prefix(cls, prefix: str) -> "SubmoduleState":
        return {
            "+": cls.MODIFIED,
            "-": cls.UNINITIALIZED,
            "U": cls.CONFLICT,
        }.get(prefix, cls.IN_SYNC)


@dataclass
class SubmoduleRecord:
    """One submodule as declared in .gitmodules."""

    name: str
    path: str
    url: Optional[str] = None
    branch: Optional[str] = None  # None = remote HEAD, "." = superproject branch
    recorded_sha: Optional[str] = None  # gitlink in the parent's HEAD

    def tracked_branch(self, current_branch: Optional[str] = None) -> Optional[str]:
        if self.branch == ".":
            return current_branch
        return self.branch

    def remote_ref(self, remote: str = "origin", current_branch: Optional[str] = None) -> str:
        branch = self.tracked_branch(current_branch)
        return f"{remote}/{branch}" if branch else f"{remote}/HEAD"


@dataclass
class SubmoduleStatus:
    """Checked-out reference of one submodule."""

    path: str
    sha: str
    ref: Optional[str]
    state: SubmoduleState

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "sha": self.sha,
            "ref": self.ref,
            "state": self.state.value,
        }


@dataclass
class SubmoduleResult:
    """Outcome of checking or updating one submodule."""

    path: str
    outcome: Outcome
    old_sha: Optional[str] = None
    new_sha: Optional[str] = None
    behind_by: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome != Outcome.ERROR

    def describe(self) -> str:
        if self.outcome == Outcome.UPDATED:
            return f"updated {short_sha(self.old_sha)} -> {short_sha(self.new_sha)}"
        if self.outcome == Outcome.BEHIND:
            if self.behind_by is None:
                return f"behind (remote at {short_sha(self.new_sha)})"
            plural = "s" if self.behind_by != 1 else ""
            return f"behind by {self.behind_by} commit{plural}"
        if self.outcome == Outcome.ERROR:
            return f"error: {self.error}"
        return f"up-to-date ({short_sha(self.old_sha)})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "outcome": self.outcome.value,
            "old_sha": self.old_sha,
            "new_sha": self.new_sha,
            "behind_by": self.behind_by,
            "error": self.error,
        }


@dataclass
class SyncReport:
    """Result of one check or update invocation."""

    results: Dict[str, SubmoduleResult] = field(default_factory=dict)
    staged: List[str] = field(default_factory=list)
    commit_sha: Optional[str] = None
    commit_message: Optional[str] = None
    commit_error: Optional[str] = None
    pushed: bool = False
    push_skipped: Optional[str] = None  # reason, when a commit was not pushed
    push_error: Optional[str] = None

    def add(self, result: SubmoduleResult) -> None:
        self.results[result.path] = result

    @property
    def changed_paths(self) -> List[str]:
        return [p for p, r in self.results.items() if r.outcome == Outcome.UPDATED]

    @property
    def behind_paths(self) -> List[str]:
        return [p for p, r in self.results.items() if r.outcome == Outcome.BEHIND]

    @property
    def failed_paths(self) -> List[str]:
        return [p for p, r in self.results.items() if r.outcome == Outcome.ERROR]

    @property
    def has_errors(self) -> bool:
        return bool(self.failed_paths or self.commit_error or self.push_error)

    @property
    def changed(self) -> bool:
        return bool(self.staged)

    def exit_code(self, detailed: bool = False) -> int:
        if self.has_errors:
            return EXIT_TRANSPORT
        if detailed and self.changed:
            return EXIT_CHANGED
        return EXIT_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results.values()],
            "staged": list(self.staged),
            "commit": self.commit_sha,
            "commit_error": self.commit_error,
            "pushed": self.pushed,
            "push_skipped": self.push_skipped,
            "push_error": self.push_error,
        }
