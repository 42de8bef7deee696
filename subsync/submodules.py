"""
Submodule Discovery — Read submodule records from repository metadata.

.gitmodules supplies name, path, url and branch (in declaration order);
the parent's HEAD tree supplies each recorded commit.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import gitcmd
from .errors import PreconditionError, SubmoduleNotFoundError
from .models import SubmoduleRecord, SubmoduleState, SubmoduleStatus

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Match how .gitmodules spells paths: no ./ prefix, no trailing slash."""
    path = path.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.rstrip("/")


def parse_gitmodules(config_output: str) -> List[SubmoduleRecord]:
    """Parse `git config -f .gitmodules --list` output.

    Records keep the order in which each submodule name first appears.
    Entries without a path are dropped, as git itself ignores them.
    """
    entries: Dict[str, Dict[str, str]] = {}
    for line in config_output.splitlines():
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        if not key.startswith("submodule."):
            continue
        rest = key[len("submodule."):]
        if "." not in rest:
            continue
        name, var = rest.rsplit(".", 1)
        entries.setdefault(name, {})[var] = value.strip()

    records = []
    for name, values in entries.items():
        path = values.get("path")
        if not path:
            logger.warning(f"Submodule '{name}' has no path in .gitmodules, ignoring")
            continue
        records.append(SubmoduleRecord(
            name=name,
            path=normalize_path(path),
            url=values.get("url") or None,
            branch=values.get("branch") or None,
        ))
    return records


def parse_ls_tree(ls_tree_output: str) -> Dict[str, str]:
    """Map path → SHA for gitlink (mode 160000) entries of `git ls-tree`."""
    recorded = {}
    for line in ls_tree_output.splitlines():
        if "\t" not in line:
            continue
        meta, path = line.split("\t", 1)
        parts = meta.split()
        if len(parts) == 3 and parts[1] == "commit":
            recorded[normalize_path(path)] = parts[2]
    return recorded


def parse_submodule_status(status_output: str) -> List[SubmoduleStatus]:
    """Parse `git submodule status` lines: `<prefix><sha> <path>[ (<ref>)]`."""
    statuses = []
    for line in status_output.splitlines():
        if len(line) < 2:
            continue
        prefix, rest = line[0], line[1:]
        if " " not in rest:
            continue
        sha, remainder = rest.split(" ", 1)
        ref: Optional[str] = None
        if remainder.endswith(")") and " (" in remainder:
            remainder, ref = remainder.rsplit(" (", 1)
            ref = ref[:-1]
        statuses.append(SubmoduleStatus(
            path=normalize_path(remainder),
            sha=sha,
            ref=ref,
            state=SubmoduleState.from_prefix(prefix),
        ))
    return statuses


def load_records(repo: Path, timeout: int = gitcmd.DEFAULT_TIMEOUT) -> List[SubmoduleRecord]:
    """Read every configured submodule with its recorded commit."""
    if not (repo / ".gitmodules").is_file():
        raise PreconditionError(f"no .gitmodules in {repo}; run from the repository root")

    result = gitcmd.run(repo, "config", "-f", ".gitmodules", "--list", timeout=timeout)
    if result.returncode != 0:
        raise PreconditionError(f"cannot read .gitmodules: {gitcmd.error_text(result)}")

    records = parse_gitmodules(result.stdout)
    if not records:
        return records

    tree = gitcmd.run(
        repo, "ls-tree", "HEAD", "--", *[r.path for r in records], timeout=timeout
    )
    if tree.returncode == 0:
        recorded = parse_ls_tree(tree.stdout)
        for record in records:
            record.recorded_sha = recorded.get(record.path)
    else:
        # No commit yet: nothing is recorded.
        logger.debug(f"ls-tree HEAD failed: {gitcmd.error_text(tree)}")

    return records


def select(records: List[SubmoduleRecord], targets: Optional[Iterable[str]]) -> List[SubmoduleRecord]:
    """Restrict records to `targets`, keeping configuration order.

    Raises SubmoduleNotFoundError for the first unknown target, before any
    submodule is touched.
    """
    if targets is None:
        return list(records)

    wanted = []
    for target in targets:
        path = normalize_path(target)
        if path not in wanted:
            wanted.append(path)

    known = {r.path for r in records}
    for path in wanted:
        if path not in known:
            raise SubmoduleNotFoundError(path)

    return [r for r in records if r.path in wanted]
