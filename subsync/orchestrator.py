"""
Sync Orchestrator — Bring submodules to their tracked remote tips.

Three operations, all sequential and in .gitmodules order:

    status()   what every submodule has checked out (read-only)
    check()    fetch and report drift against the recorded pointers (read-only)
    update()   advance pointers, stage them, commit, and push in CI

## Usage

    from subsync.config import SyncSettings, detect_automated
    from subsync.orchestrator import SyncOrchestrator

    orch = SyncOrchestrator(SyncSettings.from_env(), automated=detect_automated())
    report = orch.update()
    if report.has_errors:
        ...

Fetch and update failures are isolated per submodule: the failing one is
reported as an error and the rest of the batch still runs. Successful
updates are kept and committed even when another submodule failed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from . import gitcmd
from .config import LOCK_NAME, SyncSettings
from .errors import PreconditionError
from .lock import RepoLock
from .models import (
    Outcome,
    SubmoduleRecord,
    SubmoduleResult,
    SubmoduleStatus,
    SyncReport,
    short_sha,
)
from .submodules import load_records, parse_submodule_status, select

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Owns the parent working tree and index for the duration of a run.

    `automated` is the CI signal; pushes only ever happen when it is True.
    """

    def __init__(self, settings: Optional[SyncSettings] = None, automated: bool = False):
        self.settings = settings or SyncSettings()
        self.repo = Path(self.settings.repo)
        self.automated = automated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _git(self, *args: str, cwd: Optional[Path] = None):
        return gitcmd.run(cwd or self.repo, *args, timeout=self.settings.git_timeout)

    def _git_output(self, *args: str, cwd: Optional[Path] = None) -> Optional[str]:
        return gitcmd.output(cwd or self.repo, *args, timeout=self.settings.git_timeout)

    def _ensure_repo_root(self) -> None:
        toplevel = self._git_output("rev-parse", "--show-toplevel")
        if toplevel is None:
            raise PreconditionError(f"{self.repo} is not a git repository")
        if Path(toplevel).resolve() != self.repo.resolve():
            raise PreconditionError(
                f"must be run from the repository root ({toplevel})"
            )

    def _targets(self, targets: Optional[Iterable[str]]) -> List[SubmoduleRecord]:
        self._ensure_repo_root()
        records = load_records(self.repo, timeout=self.settings.git_timeout)
        return select(records, targets)

    def _is_initialized(self, record: SubmoduleRecord) -> bool:
        return (self.repo / record.path / ".git").exists()

    def _current_branch(self) -> Optional[str]:
        """Superproject branch for `branch = .`; None when HEAD is detached."""
        return self._git_output("symbolic-ref", "--short", "-q", "HEAD") or None

    def _lock_path(self) -> Path:
        """Configured lock file, else one inside the git dir.

        `.git` is a file in worktrees and nested submodules, so the git dir
        is asked for rather than assumed.
        """
        configured = self.settings.lock_path
        if configured is not None:
            return configured
        git_path = self._git_output("rev-parse", "--git-path", LOCK_NAME)
        if not git_path:
            raise PreconditionError(f"cannot locate the git directory of {self.repo}")
        path = Path(git_path)
        return path if path.is_absolute() else self.repo / path

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    def status(self) -> List[SubmoduleStatus]:
        """List each submodule's checked-out reference. Never mutates."""
        result = self._git("submodule", "status")
        if result.returncode != 0:
            logger.warning(f"git submodule status failed: {gitcmd.error_text(result)}")
            return []
        return parse_submodule_status(result.stdout)

    # ------------------------------------------------------------------
    # check
    # ------------------------------------------------------------------

    def check(self, targets: Optional[Iterable[str]] = None) -> SyncReport:
        """Fetch remote refs and report drift without touching the parent."""
        report = SyncReport()
        records = self._targets(targets)
        current = self._current_branch() if any(r.branch == "." for r in records) else None
        for record in records:
            result = self._check_one(record, current)
            level = logging.WARNING if result.outcome == Outcome.ERROR else logging.INFO
            logger.log(level, f"{record.path}: {result.describe()}", extra={"submodule": record.path})
            report.add(result)
        return report

    def _check_one(self, record: SubmoduleRecord, current_branch: Optional[str] = None) -> SubmoduleResult:
        if record.branch == "." and not current_branch:
            return SubmoduleResult(
                record.path, Outcome.ERROR, old_sha=record.recorded_sha,
                error="branch = . needs the superproject on a branch (HEAD is detached)",
            )
        if not self._is_initialized(record):
            return self._check_remote_only(record, current_branch)

        sub = self.repo / record.path
        base = record.recorded_sha or self._git_output("rev-parse", "HEAD", cwd=sub)

        fetch = self._git("fetch", self.settings.remote, cwd=sub)
        if fetch.returncode != 0:
            return SubmoduleResult(
                record.path, Outcome.ERROR, old_sha=base,
                error=f"fetch failed: {gitcmd.error_text(fetch)}",
            )

        ref = record.remote_ref(self.settings.remote, current_branch)
        tip = self._git_output("rev-parse", ref, cwd=sub)
        if not tip:
            return SubmoduleResult(
                record.path, Outcome.ERROR, old_sha=base, error=f"cannot resolve {ref}",
            )

        if not base or tip == base:
            return SubmoduleResult(record.path, Outcome.UP_TO_DATE, old_sha=tip, new_sha=tip)

        count = self._git_output("rev-list", "--count", f"{base}..{tip}", cwd=sub)
        behind_by = int(count) if count and count.isdigit() else None
        if behind_by == 0:
            # Recorded commit already contains the remote tip.
            return SubmoduleResult(record.path, Outcome.UP_TO_DATE, old_sha=base, new_sha=tip)
        return SubmoduleResult(
            record.path, Outcome.BEHIND, old_sha=base, new_sha=tip, behind_by=behind_by,
        )

    def _check_remote_only(
        self, record: SubmoduleRecord, current_branch: Optional[str] = None
    ) -> SubmoduleResult:
        """Uninitialized submodule: ask the remote directly."""
        if not record.url:
            return SubmoduleResult(record.path, Outcome.ERROR, error="no url in .gitmodules")

        branch = record.tracked_branch(current_branch)
        ref = f"refs/heads/{branch}" if branch else "HEAD"
        result = self._git("ls-remote", record.url, ref)
        if result.returncode != 0:
            return SubmoduleResult(
                record.path, Outcome.ERROR, old_sha=record.recorded_sha,
                error=f"ls-remote failed: {gitcmd.error_text(result)}",
            )

        lines = [l for l in result.stdout.splitlines() if l.strip()]
        if not lines:
            return SubmoduleResult(
                record.path, Outcome.ERROR, old_sha=record.recorded_sha,
                error=f"{ref} not found on {record.url}",
            )
        tip = lines[0].split()[0]

        if tip == record.recorded_sha:
            return SubmoduleResult(record.path, Outcome.UP_TO_DATE, old_sha=tip, new_sha=tip)
        return SubmoduleResult(
            record.path, Outcome.BEHIND, old_sha=record.recorded_sha, new_sha=tip,
        )

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------

    def update(
        self,
        targets: Optional[Iterable[str]] = None,
        commit: bool = True,
        push: bool = True,
    ) -> SyncReport:
        """Advance submodules to their remote tips and reconcile the parent.

        Unknown targets raise before anything is touched. Pointer changes
        are staged; with `commit` they become one commit, which is pushed
        only when `push` is set and the run is automated.
        """
        records = self._targets(targets)
        report = SyncReport()

        with RepoLock(self._lock_path()):
            for record in records:
                result = self._update_one(record)
                level = logging.WARNING if result.outcome == Outcome.ERROR else logging.INFO
                logger.log(level, f"{record.path}: {result.describe()}", extra={"submodule": record.path})
                report.add(result)

            self._reconcile(report, commit=commit, push=push)

        return report

    def _update_one(self, record: SubmoduleRecord) -> SubmoduleResult:
        old = record.recorded_sha

        sync = self._git("submodule", "sync", "--recursive", "--", record.path)
        if sync.returncode != 0:
            return SubmoduleResult(
                record.path, Outcome.ERROR, old_sha=old,
                error=f"submodule sync failed: {gitcmd.error_text(sync)}",
            )

        update = self._git(
            "submodule", "update", "--init", "--recursive", "--remote", "--", record.path
        )
        if update.returncode != 0:
            return SubmoduleResult(
                record.path, Outcome.ERROR, old_sha=old,
                error=f"submodule update failed: {gitcmd.error_text(update)}",
            )

        new = self._git_output("rev-parse", "HEAD", cwd=self.repo / record.path)
        if not new:
            return SubmoduleResult(
                record.path, Outcome.ERROR, old_sha=old, error="cannot resolve submodule HEAD",
            )

        if new == old:
            return SubmoduleResult(record.path, Outcome.UP_TO_DATE, old_sha=old, new_sha=new)
        return SubmoduleResult(record.path, Outcome.UPDATED, old_sha=old, new_sha=new)

    def commit_message(self, report: SyncReport) -> str:
        """Deterministic message naming every changed submodule."""
        changed = report.changed_paths
        lines = [f"{self.settings.commit_prefix} ({', '.join(changed)})", ""]
        for path in changed:
            result = report.results[path]
            lines.append(f"- {path}: {short_sha(result.old_sha)} -> {short_sha(result.new_sha)}")
        return "\n".join(lines)

    def _reconcile(self, report: SyncReport, commit: bool, push: bool) -> None:
        changed = report.changed_paths
        if not changed:
            logger.info("No submodule pointer changes detected")
            return

        add = self._git("add", "--", *changed)
        if add.returncode != 0:
            report.commit_error = f"staging failed: {gitcmd.error_text(add)}"
            logger.error(report.commit_error)
            return
        report.staged = list(changed)

        if not commit:
            logger.info(f"Staged {len(changed)} pointer change(s), not committing")
            return

        message = self.commit_message(report)
        result = self._git("commit", "-m", message, "--", *changed)
        if result.returncode != 0:
            text = f"{result.stdout}\n{result.stderr}".lower()
            if "nothing to commit" in text or "no changes added to commit" in text:
                logger.info("Nothing to commit")
                report.staged = []
                return
            report.commit_error = f"commit failed: {gitcmd.error_text(result)}"
            logger.error(report.commit_error)
            return

        report.commit_message = message
        report.commit_sha = self._git_output("rev-parse", "HEAD")
        logger.info(f"Committed {short_sha(report.commit_sha)}: {message.splitlines()[0]}")

        if not push:
            report.push_skipped = "push disabled"
            return
        if not self.automated:
            report.push_skipped = "not in an automated context"
            logger.info("Push skipped (not in an automated context)")
            return

        result = self._git("push", self.settings.remote, "HEAD")
        if result.returncode != 0:
            report.push_error = f"push failed: {gitcmd.error_text(result)}"
            logger.error(report.push_error)
            return
        report.pushed = True
        logger.info(f"Pushed {short_sha(report.commit_sha)} to {self.settings.remote}")
