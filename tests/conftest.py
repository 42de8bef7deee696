"""
Shared fixtures for subsync tests.

Provides a FakeRepo that stands in for the git binary: it keeps recorded
pointers, the index, submodule checkouts and remote tips in memory and
answers the git subcommands subsync issues. No real repositories needed.
"""

from __future__ import annotations

import hashlib
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
from unittest import mock

import pytest

MUTATING = {"add", "commit", "push", "checkout", "reset", "merge", "pull"}


def make_sha(path: str, n: int) -> str:
    """Deterministic 40-char SHA for commit number `n` of `path`."""
    return hashlib.sha1(f"{path}-{n}".encode()).hexdigest()


def _result(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(
        args=["git"], returncode=returncode, stdout=stdout, stderr=stderr,
    )


class FakeRepo:
    """In-memory parent repository with submodules."""

    def __init__(self, root: Path, paths: List[str], branch: Optional[str] = "main"):
        self.root = root
        self.paths = list(paths)
        self.branch = branch
        self.urls = {p: f"https://github.com/example/{p}.git" for p in paths}

        # Each submodule's remote history; the last element is the tip.
        self.history: Dict[str, List[str]] = {p: [make_sha(p, 0)] for p in paths}
        self.recorded: Dict[str, str] = {p: make_sha(p, 0) for p in paths}
        self.index: Dict[str, str] = dict(self.recorded)
        self.checkout: Dict[str, str] = {}
        self.fetched: Dict[str, str] = {}

        self.fail_fetch: Set[str] = set()
        self.fail_push = False
        self.parent_branch: Optional[str] = "main"

        self.commits: List[str] = []
        self.pushes: List[Tuple[str, ...]] = []
        self.calls: List[Tuple[Path, Tuple[str, ...]]] = []

        self._write_gitmodules()
        for p in paths:
            self.init_submodule(p)

    # -- setup helpers -------------------------------------------------------

    def _write_gitmodules(self) -> None:
        lines = []
        for p in self.paths:
            lines.append(f'[submodule "{p}"]')
            lines.append(f"\tpath = {p}")
            lines.append(f"\turl = {self.urls[p]}")
            if self.branch:
                lines.append(f"\tbranch = {self.branch}")
        (self.root / ".gitmodules").write_text("\n".join(lines) + "\n")

    def init_submodule(self, path: str) -> None:
        sub = self.root / path
        sub.mkdir(parents=True, exist_ok=True)
        (sub / ".git").write_text(f"gitdir: ../.git/modules/{path}\n")
        self.checkout[path] = self.recorded[path]

    def deinit_submodule(self, path: str) -> None:
        (self.root / path / ".git").unlink()
        self.checkout.pop(path, None)

    def advance_remote(self, path: str, commits: int = 1) -> str:
        for _ in range(commits):
            self.history[path].append(make_sha(path, len(self.history[path])))
        return self.history[path][-1]

    def tip(self, path: str) -> str:
        return self.history[path][-1]

    def snapshot(self):
        return (
            dict(self.recorded),
            dict(self.index),
            dict(self.checkout),
            list(self.commits),
            list(self.pushes),
        )

    def subcommands(self) -> List[str]:
        return [args[0] for _, args in self.calls if args]

    def mutating_calls(self) -> List[Tuple[str, ...]]:
        found = []
        for _, args in self.calls:
            if not args:
                continue
            if args[0] in MUTATING:
                found.append(args)
            elif args[0] == "submodule" and len(args) > 1 and args[1] == "update":
                found.append(args)
        return found

    @property
    def head(self) -> str:
        return make_sha("parent", len(self.commits))

    # -- git dispatcher ------------------------------------------------------

    def run(self, cwd, *args: str, timeout: int = 120) -> subprocess.CompletedProcess:
        cwd = Path(cwd)
        self.calls.append((cwd, args))
        if cwd == self.root:
            return self._parent(args)
        for p in self.paths:
            if cwd == self.root / p:
                return self._submodule(p, args)
        return _result(128, stderr=f"fatal: not a git repository: {cwd}")

    def _parent(self, args: Tuple[str, ...]) -> subprocess.CompletedProcess:
        cmd = args[0]

        if args == ("rev-parse", "--show-toplevel"):
            return _result(stdout=f"{self.root}\n")

        if args == ("rev-parse", "HEAD"):
            return _result(stdout=f"{self.head}\n")

        if args[:2] == ("rev-parse", "--git-path"):
            return _result(stdout=f".git/{args[2]}\n")

        if args[:2] == ("symbolic-ref", "--short"):
            if self.parent_branch is None:
                return _result(1)
            return _result(stdout=f"{self.parent_branch}\n")

        if cmd == "config":
            lines = []
            for p in self.paths:
                lines.append(f"submodule.{p}.path={p}")
                lines.append(f"submodule.{p}.url={self.urls[p]}")
                if self.branch:
                    lines.append(f"submodule.{p}.branch={self.branch}")
            return _result(stdout="\n".join(lines) + "\n")

        if cmd == "ls-tree":
            wanted = args[args.index("--") + 1:]
            lines = [
                f"160000 commit {self.recorded[p]}\t{p}"
                for p in self.paths if p in wanted and p in self.recorded
            ]
            return _result(stdout="\n".join(lines) + "\n")

        if args[:2] == ("submodule", "status"):
            lines = []
            for p in self.paths:
                if p not in self.checkout:
                    lines.append(f"-{self.recorded[p]} {p}")
                elif self.checkout[p] != self.recorded[p]:
                    lines.append(f"+{self.checkout[p]} {p} (heads/main)")
                else:
                    lines.append(f" {self.checkout[p]} {p} (heads/main)")
            return _result(stdout="\n".join(lines) + "\n")

        if args[:2] == ("submodule", "sync"):
            return _result(stdout=f"Synchronizing submodule url for '{args[-1]}'\n")

        if args[:2] == ("submodule", "update"):
            path = args[-1]
            if path in self.fail_fetch:
                return _result(
                    1, stderr=f"fatal: unable to access '{self.urls[path]}': Could not resolve host",
                )
            if path not in self.checkout:
                self.init_submodule(path)
            self.checkout[path] = self.tip(path)
            return _result()

        if cmd == "add":
            for p in args[args.index("--") + 1:]:
                self.index[p] = self.checkout[p]
            return _result()

        if cmd == "commit":
            message = args[args.index("-m") + 1]
            paths = args[args.index("--") + 1:]
            if all(self.index[p] == self.recorded[p] for p in paths):
                return _result(1, stdout="nothing to commit, working tree clean\n")
            for p in paths:
                self.recorded[p] = self.index[p]
            self.commits.append(message)
            return _result(stdout=f"[main {self.head[:7]}] {message.splitlines()[0]}\n")

        if cmd == "push":
            self.pushes.append(args)
            if self.fail_push:
                return _result(1, stderr="remote: Permission denied")
            return _result(stderr="To github.com:example/parent.git\n")

        if cmd == "ls-remote":
            url = args[1]
            for p, u in self.urls.items():
                if u == url:
                    if p in self.fail_fetch:
                        return _result(128, stderr="fatal: Could not resolve host")
                    return _result(stdout=f"{self.tip(p)}\t{args[2]}\n")
            return _result(128, stderr="fatal: repository not found")

        return _result(1, stderr=f"unexpected parent git call: {args}")

    def _submodule(self, path: str, args: Tuple[str, ...]) -> subprocess.CompletedProcess:
        cmd = args[0]

        if args == ("rev-parse", "--show-toplevel"):
            return _result(stdout=f"{self.root / path}\n")

        if args == ("rev-parse", "HEAD"):
            if path not in self.checkout:
                return _result(128, stderr="fatal: not a git repository")
            return _result(stdout=f"{self.checkout[path]}\n")

        if cmd == "fetch":
            if path in self.fail_fetch:
                return _result(128, stderr="fatal: unable to access remote: Could not resolve host")
            self.fetched[path] = self.tip(path)
            return _result()

        if cmd == "rev-parse" and args[1].startswith("origin/"):
            if path not in self.fetched:
                return _result(128, stderr=f"fatal: ambiguous argument '{args[1]}'")
            return _result(stdout=f"{self.fetched[path]}\n")

        if cmd == "rev-list":
            base, tip = args[-1].split("..")
            history = self.history[path]
            count = history.index(tip) - history.index(base)
            return _result(stdout=f"{max(count, 0)}\n")

        return _result(1, stderr=f"unexpected submodule git call: {args}")


@pytest.fixture
def fake_repo(tmp_path: Path):
    """Three submodules (cv, README, scripts), all current, git mocked."""
    repo = FakeRepo(tmp_path, ["cv", "README", "scripts"])
    with mock.patch("subsync.gitcmd.run", side_effect=repo.run):
        yield repo


@pytest.fixture
def settings(tmp_path: Path):
    from subsync.config import SyncSettings

    return SyncSettings(repo=tmp_path)


@pytest.fixture
def make_fake_repo(tmp_path_factory):
    """Factory for independent FakeRepos (git is not patched)."""
    def factory(paths=("cv", "README", "scripts"), branch: Optional[str] = "main") -> FakeRepo:
        return FakeRepo(tmp_path_factory.mktemp("repo"), list(paths), branch=branch)
    return factory


ENV_VARS = (
    "CI", "GITHUB_ACTIONS", "GITLAB_CI", "BUILDKITE", "JENKINS_URL", "TF_BUILD",
    "SUBSYNC_AUTOMATED", "SUBSYNC_REPO", "SUBSYNC_COMMIT_PREFIX", "SUBSYNC_GIT_TIMEOUT",
    "SUBSYNC_LOCK_FILE", "SUBSYNC_REMOTE", "LOG_LEVEL", "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Run every test outside CI, and undo anything a loaded .env sets."""
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the root logger; put it back afterwards."""
    import logging

    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield
    root.setLevel(level)
    root.handlers[:] = handlers
