"""
subsync — CLI Entry Point

Usage:
    subsync                      update all submodules, commit, push in CI
    subsync cv                   only the `cv` submodule
    subsync --status             checked-out reference of every submodule
    subsync --check [--json]     fetch and report drift, change nothing
    subsync --no-commit          update and stage pointers only
    subsync --no-push            commit locally, never push

Exit codes: 0 ok / nothing to do, 1 precondition failure,
2 fetch/update/push failure, 3 changes applied (--detailed-exitcode only).
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

from .config import SyncSettings, detect_automated
from .errors import EXIT_OK, EXIT_PRECONDITION, EXIT_TRANSPORT, SubsyncError
from .logging_config import setup_logging
from .models import Outcome, SyncReport, short_sha
from .orchestrator import SyncOrchestrator
from .submodules import normalize_path

OUTCOME_ICONS = {
    Outcome.UP_TO_DATE: "✅",
    Outcome.BEHIND: "⏳",
    Outcome.UPDATED: "⬆️ ",
    Outcome.ERROR: "❌",
}


def _load_dotenv(repo: Optional[Path]) -> None:
    """Load .env from the repository root (--repo, SUBSYNC_REPO or cwd)."""
    root = repo or Path(os.environ.get("SUBSYNC_REPO") or ".")
    env_file = root / ".env"
    if env_file.exists():
        load_dotenv(env_file)


def _load_settings(repo: Optional[Path], message: Optional[str]) -> SyncSettings:
    """SUBSYNC_* environment, with command-line overrides on top."""
    settings = SyncSettings.from_env()
    if repo is not None:
        settings.repo = repo
    if message:
        settings.commit_prefix = message
    return settings


def _print_report(report: SyncReport) -> None:
    width = max((len(p) for p in report.results), default=0)
    for path, result in report.results.items():
        icon = OUTCOME_ICONS.get(result.outcome, "❓")
        line = f"  {icon} {path:<{width}}  {result.describe()}"
        if result.outcome == Outcome.ERROR:
            click.secho(line, fg="red")
        else:
            click.echo(line)


def _print_update_summary(report: SyncReport) -> None:
    click.echo()
    if report.commit_error:
        click.secho(f"✗ {report.commit_error}", fg="red", err=True)
    elif not report.staged:
        click.echo("No submodule pointer changes detected. Nothing to commit.")
    elif not report.commit_sha:
        click.secho(f"Changes staged (not committed): {', '.join(report.staged)}", fg="yellow")
    else:
        subject = (report.commit_message or "").splitlines()[0]
        click.secho(f"✓ Committed {short_sha(report.commit_sha)}: {subject}", fg="green")
        if report.pushed:
            click.secho("✓ Pushed", fg="green")
        elif report.push_error:
            click.secho(f"✗ {report.push_error}", fg="red", err=True)
        elif report.push_skipped == "not in an automated context":
            click.secho(
                "Push skipped (not in an automated context). Run `git push` to publish.",
                fg="cyan",
            )
        elif report.push_skipped:
            click.secho(f"Push skipped ({report.push_skipped}).", fg="cyan")

    if report.failed_paths:
        click.secho(
            f"⚠ {len(report.failed_paths)} submodule(s) failed: {', '.join(report.failed_paths)}",
            fg="red",
            err=True,
        )


def _run_status(orch: SyncOrchestrator, target: Optional[str], as_json: bool) -> int:
    statuses = orch.status()
    if target:
        path = normalize_path(target)
        statuses = [s for s in statuses if s.path == path]
        if not statuses:
            click.secho(f"Error: {path}: submodule not found", fg="red", err=True)
            return EXIT_PRECONDITION

    if as_json:
        click.echo(json.dumps({"submodules": [s.to_dict() for s in statuses]}, indent=2))
        return EXIT_OK

    if not statuses:
        click.echo("No submodules.")
        return EXIT_OK

    width = max(len(s.path) for s in statuses)
    for s in statuses:
        ref = f"({s.ref})" if s.ref else ""
        click.echo(f"  {s.path:<{width}}  {short_sha(s.sha)}  {s.state.value:<13} {ref}".rstrip())
    return EXIT_OK


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("submodule_path", required=False)
@click.option("--status", "-s", "show_status", is_flag=True, help="Show checked-out reference of every submodule")
@click.option("--check", "-c", "run_check", is_flag=True, help="Fetch and report drift without updating")
@click.option("--no-commit", is_flag=True, help="Stage pointer changes but do not commit")
@click.option("--no-push", is_flag=True, help="Commit locally but never push")
@click.option("--json", "as_json", is_flag=True, help="Output the report as JSON")
@click.option(
    "--repo",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Repository root (default: current directory)",
)
@click.option("--message", "-m", default=None, help="Commit message prefix")
@click.option("--detailed-exitcode", is_flag=True, help="Exit 3 when changes were applied")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL",
)
def cli(
    submodule_path: Optional[str],
    show_status: bool,
    run_check: bool,
    no_commit: bool,
    no_push: bool,
    as_json: bool,
    repo: Optional[Path],
    message: Optional[str],
    detailed_exitcode: bool,
    log_level: Optional[str],
) -> None:
    """Update git submodules to their tracked remote branches."""
    _load_dotenv(repo)
    setup_logging(level=log_level)
    settings = _load_settings(repo, message)

    if show_status and run_check:
        click.secho("Error: --status and --check are mutually exclusive", fg="red", err=True)
        raise SystemExit(EXIT_PRECONDITION)

    orch = SyncOrchestrator(settings, automated=detect_automated())
    targets = [submodule_path] if submodule_path else None

    if show_status:
        raise SystemExit(_run_status(orch, submodule_path, as_json))

    try:
        if run_check:
            report = orch.check(targets)
        else:
            report = orch.update(targets, commit=not no_commit, push=not no_push)
    except SubsyncError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        raise SystemExit(e.exit_code)

    if as_json:
        data = report.to_dict()
        data["mode"] = "check" if run_check else "update"
        data["automated"] = orch.automated
        click.echo(json.dumps(data, indent=2))
    else:
        _print_report(report)
        if run_check:
            behind = report.behind_paths
            click.echo()
            if behind:
                click.echo(f"{len(behind)} submodule(s) behind: {', '.join(behind)}")
            else:
                click.echo("All submodules up to date.")
        else:
            _print_update_summary(report)

    if run_check:
        raise SystemExit(EXIT_TRANSPORT if report.has_errors else EXIT_OK)
    raise SystemExit(report.exit_code(detailed=detailed_exitcode))


if __name__ == "__main__":
    cli()
