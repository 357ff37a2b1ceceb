"""CLI entry point for repo-warden."""

import asyncio
import stat
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import click
import structlog

from repo_warden.adapters.gh_cli import GhCliClient
from repo_warden.adapters.git_cli import GitCliClient
from repo_warden.config.settings import WardenSettings
from repo_warden.engine.orchestrator import TaskReport, WorkflowOrchestrator
from repo_warden.engine.state_manager import StateManager
from repo_warden.engine.types import TaskState
from repo_warden.enums import Phase
from repo_warden.exceptions import ConfigurationError, RepoWardenError
from repo_warden.models.domain import GateResult
from repo_warden.policy.advisory import recommend_split, suggest_branch_name
from repo_warden.policy.rules import build_default_registry, describe
from repo_warden.policy.validator import ActionValidator
from repo_warden.rendering.engine import TemplateEngine
from repo_warden.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

SCISSORS = "# ------------------------ >8 ------------------------"

COMMIT_MSG_HOOK = """#!/bin/sh
# Installed by repo-warden: validate the commit message format
exec {executable} check commit-msg --file "$1"
"""


@click.group()
@click.option("--config", default=None, help="Path to configuration file (default: .warden/config.yaml if present)")
@click.option("--log-level", default="WARNING", help="Logging level")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str, json_logs: bool) -> None:
    """repo-warden: workflow-policy enforcement for trunk-based development."""
    configure_logging(log_level, json_output=json_logs)

    try:
        settings = WardenSettings.load(config)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


# ---------------------------------------------------------------------------
# Standalone checks
# ---------------------------------------------------------------------------


@cli.group()
def check() -> None:
    """Validate a single artifact without touching any repository."""


@check.command("issue-title")
@click.argument("title")
@click.pass_context
def check_issue_title(ctx: click.Context, title: str) -> None:
    """Validate an issue title."""
    result = _validator(ctx.obj["settings"]).check_issue_title(title)
    _exit_with_result(result)


@check.command("branch")
@click.argument("name")
@click.option("--issue", type=int, default=None, help="Issue the branch must belong to")
@click.pass_context
def check_branch(ctx: click.Context, name: str, issue: int | None) -> None:
    """Validate a branch name."""
    result = _validator(ctx.obj["settings"]).check_branch_name(name, issue_number=issue)
    _exit_with_result(result)


@check.command("commit-msg")
@click.argument("message", required=False)
@click.option(
    "--file",
    "message_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read the message from a file (as passed to a commit-msg hook)",
)
@click.pass_context
def check_commit_msg(ctx: click.Context, message: str | None, message_file: Path | None) -> None:
    """Validate a commit message (its subject line)."""
    if message_file is not None:
        message = clean_commit_message(message_file.read_text(encoding="utf-8"))
    if message is None:
        raise click.UsageError("Provide MESSAGE or --file")
    result = _validator(ctx.obj["settings"]).check_commit_message(message)
    _exit_with_result(result)


@check.command("pr")
@click.option("--title", required=True, help="Pull request title")
@click.option("--body", default=None, help="Pull request body")
@click.option(
    "--body-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read the body from a file",
)
@click.option("--issue", type=int, default=None, help="Issue the PR must close")
@click.pass_context
def check_pr(ctx: click.Context, title: str, body: str | None, body_file: Path | None, issue: int | None) -> None:
    """Validate pull request title and body."""
    if body_file is not None:
        body = body_file.read_text(encoding="utf-8")
    if body is None:
        raise click.UsageError("Provide --body or --body-file")
    result = _validator(ctx.obj["settings"]).check_pull_request(title, body, issue_number=issue)
    _exit_with_result(result)


@cli.command("rules")
@click.option("--phase", type=click.Choice([p.value for p in Phase]), default=None, help="Only this phase")
@click.pass_context
def list_rules(ctx: click.Context, phase: str | None) -> None:
    """List the rules enforced at each phase gate."""
    settings: WardenSettings = ctx.obj["settings"]
    registry = build_default_registry(
        settings.verification.test_file_patterns,
        settings.verification.docs_file_patterns,
    )
    for entry in describe(registry):
        if phase is None or entry["phase"] == phase:
            click.echo(f"{entry['phase']:<8} {entry['rule']:<26} {entry['description']}")


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


@cli.group()
def issue() -> None:
    """Issue operations."""


@issue.command("create")
@click.option("--title", required=True, help="Issue title, e.g. 'feat: add login flow'")
@click.option("--summary", default="", help="Free text placed above the checklist")
@click.option("--criterion", "-c", "criteria", multiple=True, help="Acceptance criterion (repeatable)")
@click.option("--label", "labels", multiple=True, help="Label to attach (repeatable)")
@click.pass_context
def issue_create(
    ctx: click.Context,
    title: str,
    summary: str,
    criteria: tuple[str, ...],
    labels: tuple[str, ...],
) -> None:
    """Create an issue after validating its title and checklist."""
    settings: WardenSettings = ctx.obj["settings"]
    body = TemplateEngine().render_issue_body(summary, criteria)
    result = _validator(settings).check_new_issue(title, body)
    if not result.passed:
        _exit_with_result(result)

    async def create() -> int:
        created = await _host(settings).create_issue(title, body, labels=list(labels))
        click.echo(f"Created issue #{created.number}: {created.url}")
        return 0

    _run(create, "issue_create")


# ---------------------------------------------------------------------------
# Task workflow
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--issue", "issue_number", type=int, required=True, help="Issue to work on")
@click.option("--branch", default=None, help="Branch name (default: derived from the issue title)")
@click.option("--pr-title", default=None, help="Pull request title (default: first commit subject)")
@click.option("--pr-body", default=None, help="Pull request body (default: rendered template)")
@click.option("--dry-run", is_flag=True, help="Inspect and check gates without changing anything")
@click.pass_context
def start(
    ctx: click.Context,
    issue_number: int,
    branch: str | None,
    pr_title: str | None,
    pr_body: str | None,
    dry_run: bool,
) -> None:
    """Start a task for an issue and drive it until a gate blocks."""
    settings: WardenSettings = ctx.obj["settings"]

    async def run() -> int:
        orchestrator = _orchestrator(settings)
        report = await orchestrator.start(
            issue_number,
            branch=branch,
            pr_title=pr_title,
            pr_body=pr_body,
            dry_run=dry_run,
        )
        _print_report(report)
        return report.exit_code

    _run(run, "start")


@cli.command()
@click.option("--issue", "issue_number", type=int, required=True, help="Issue of the task")
@click.option("--branch", default=None, help="Corrected branch name (only before the branch exists)")
@click.option("--pr-title", default=None, help="Corrected pull request title")
@click.option("--pr-body", default=None, help="Corrected pull request body")
@click.option("--dry-run", is_flag=True, help="Inspect and check gates without changing anything")
@click.pass_context
def resume(
    ctx: click.Context,
    issue_number: int,
    branch: str | None,
    pr_title: str | None,
    pr_body: str | None,
    dry_run: bool,
) -> None:
    """Re-attempt the task's blocked phase and continue."""
    settings: WardenSettings = ctx.obj["settings"]

    async def run() -> int:
        report = await _orchestrator(settings).resume(
            issue_number,
            branch=branch,
            pr_title=pr_title,
            pr_body=pr_body,
            dry_run=dry_run,
        )
        _print_report(report)
        return report.exit_code

    _run(run, "resume")


@cli.command()
@click.option("--issue", "issue_number", type=int, default=None, help="Show one task (default: all active)")
@click.pass_context
def status(ctx: click.Context, issue_number: int | None) -> None:
    """Show persisted task progress."""
    settings: WardenSettings = ctx.obj["settings"]

    async def run() -> int:
        tasks = await _orchestrator(settings).status(issue_number)
        if not tasks:
            click.echo("No active tasks found.")
            return 0
        for state in tasks:
            _print_task(state, detailed=issue_number is not None)
        return 0

    _run(run, "status")


@cli.command()
@click.option("--issue", "issue_number", type=int, required=True, help="Issue of the task")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def abandon(ctx: click.Context, issue_number: int, yes: bool) -> None:
    """Delete the task's branch (local and remote) and mark it abandoned."""
    settings: WardenSettings = ctx.obj["settings"]
    if not yes:
        click.confirm(f"Abandon the task for issue #{issue_number} and delete its branch?", abort=True)

    async def run() -> int:
        state = await _orchestrator(settings).abandon(issue_number)
        click.echo(f"Task for issue #{issue_number} abandoned (branch: {state.get('branch') or '-'}).")
        return 0

    _run(run, "abandon")


@cli.command()
@click.option("--issue", "issue_number", type=int, required=True, help="Issue to assess")
@click.option("--branch", default=None, help="Branch holding the work (default: the task branch)")
@click.pass_context
def advise(ctx: click.Context, issue_number: int, branch: str | None) -> None:
    """Suggest whether the work should be split into several issues."""
    settings: WardenSettings = ctx.obj["settings"]

    async def run() -> int:
        host = _host(settings)
        git = _git(settings)
        found = await host.view_issue(issue_number)

        name = branch
        state_manager = StateManager(settings.state_dir)
        if name is None and state_manager.exists(issue_number):
            name = (await state_manager.load_state(issue_number)).get("branch")
        if name is None:
            name = suggest_branch_name(found)

        commits, changed = [], []
        if name and name in await git.list_branches():
            trunk_ref = f"{settings.repository.remote}/{settings.repository.trunk}"
            commits = await git.log(trunk_ref, name)
            changed = await git.changed_files(trunk_ref, name)

        recommendation = recommend_split(
            found,
            commits=commits,
            changed_files=changed,
            file_threshold=settings.workflow.split_file_threshold,
            criteria_threshold=settings.workflow.split_criteria_threshold,
        )
        if name:
            click.echo(f"Branch: {name}")
        click.echo(str(recommendation))
        return 0

    _run(run, "advise")


@cli.command("install-hook")
@click.option("--force", is_flag=True, help="Overwrite an existing commit-msg hook")
@click.pass_context
def install_hook(ctx: click.Context, force: bool) -> None:
    """Install a git commit-msg hook that runs 'warden check commit-msg'."""
    settings: WardenSettings = ctx.obj["settings"]
    hooks_dir = settings.repo_path / ".git" / "hooks"
    if not hooks_dir.is_dir():
        click.echo(f"Error: {hooks_dir} not found; is {settings.repo_path} a git repository?", err=True)
        sys.exit(1)

    hook = hooks_dir / "commit-msg"
    if hook.exists() and not force:
        click.echo(f"Error: {hook} already exists (use --force to overwrite)", err=True)
        sys.exit(1)

    hook.write_text(COMMIT_MSG_HOOK.format(executable="warden"), encoding="utf-8")
    hook.chmod(hook.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    click.echo(f"Installed {hook}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def clean_commit_message(raw: str) -> str:
    """Strip what git strips before recording a message.

    Drops everything below the scissors line, comment lines and leading
    blank lines.
    """
    lines = []
    for line in raw.splitlines():
        if line.startswith(SCISSORS):
            break
        if line.startswith("#"):
            continue
        lines.append(line.rstrip())
    while lines and not lines[0].strip():
        lines.pop(0)
    return "\n".join(lines).strip("\n")


def _validator(settings: WardenSettings) -> ActionValidator:
    return ActionValidator(
        build_default_registry(
            settings.verification.test_file_patterns,
            settings.verification.docs_file_patterns,
        )
    )


def _git(settings: WardenSettings) -> GitCliClient:
    return GitCliClient(
        repo_path=settings.repo_path,
        remote=settings.repository.remote,
        binary=settings.adapter.git_binary,
        timeout=settings.adapter.timeout,
        check_timeout=settings.adapter.check_timeout,
    )


def _host(settings: WardenSettings) -> GhCliClient:
    return GhCliClient(
        repo_path=settings.repo_path,
        repo=settings.repository.host_repo,
        binary=settings.adapter.gh_binary,
        timeout=settings.adapter.timeout,
        ci_timeout=settings.adapter.ci_timeout,
    )


def _orchestrator(settings: WardenSettings) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(
        settings,
        _git(settings),
        _host(settings),
        StateManager(settings.state_dir),
    )


def _run(factory: Callable[[], Awaitable[int]], command: str) -> None:
    """Run an async command body with the CLI's error handling."""
    try:
        exit_code = asyncio.run(factory())
    except RepoWardenError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug(f"{command}_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error(f"{command}_unexpected", exc_info=True)
        sys.exit(1)
    sys.exit(exit_code)


def _exit_with_result(result: GateResult) -> None:
    if result.passed:
        click.echo(f"✅ {result.phase.label} check passed")
    else:
        click.echo(f"❌ {result.phase.label} check failed:", err=True)
        for violation in result.violations:
            click.echo(f"  {violation}", err=True)
    sys.exit(result.exit_code)


def _print_report(report: TaskReport) -> None:
    prefix = "[dry run] " if report.dry_run else ""
    click.echo(f"{prefix}Issue #{report.issue_number} (branch: {report.branch or '-'})")
    for result in report.results:
        mark = "✅" if result.passed else "❌"
        click.echo(f"  {mark} {result.phase.label}")
        for violation in result.violations:
            click.echo(f"      {violation}")

    status_value = report.status.value
    if status_value == "completed":
        click.echo(f"{prefix}Task completed (cycles: {report.completed_cycles}).")
    elif status_value == "blocked":
        click.echo(f"{prefix}Blocked at {report.phase.label}. Fix the above, then run 'warden resume --issue {report.issue_number}'.")
    else:
        click.echo(f"{prefix}Stopped before {report.phase.label}.")


def _print_task(state: TaskState, detailed: bool = False) -> None:
    machine: dict[str, Any] = state.get("machine", {})
    phase = Phase(machine.get("phase", Phase.SYNC.value))
    pr = f", PR #{state['pr_number']}" if state.get("pr_number") else ""
    click.echo(f"  • Issue #{state['issue_number']}: {state['status']} at {phase.label} (branch: {state.get('branch') or '-'}{pr})")
    if not detailed:
        return

    click.echo(f"    Created: {state.get('created_at', 'unknown')}")
    click.echo(f"    Updated: {state.get('updated_at', 'unknown')}")
    last = machine.get("last_result")
    if last and not last.get("passed", True):
        click.echo("    Last violations:")
        for violation in GateResult.from_dict(last).violations:
            click.echo(f"      {violation}")
    if state.get("error"):
        click.echo(f"    Error: {state['error']}")
    history = machine.get("history", [])
    if history:
        click.echo("    History:")
        for entry in history:
            mark = "✅" if entry.get("passed") else "❌"
            click.echo(f"      {mark} {entry.get('phase')} {entry.get('at', '')}")


if __name__ == "__main__":
    cli()
