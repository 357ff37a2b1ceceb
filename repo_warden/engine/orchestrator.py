"""
Workflow orchestrator driving one task through the phases.

For every phase the orchestrator asks the phase's stage to inspect the
world, has the validator check the resulting context against the phase's
gate, lets the stage act once the gate passed, and feeds the outcome to the
task's PhaseStateMachine. It halts on the first failed gate and reports the
phase together with every violation; ``resume`` re-enters that phase.

Phase Cycle:
    Sync -> Branch -> Commit -> Verify -> PR -> Review -> Merge -> Cleanup

Failure Handling:
    Typed adapter exceptions raised while inspecting or acting become
    violations (ExternalCallFailure, StateMismatch) and block the phase.
    Nothing is retried automatically. Any other exception is a bug and
    propagates.

Example:
    >>> orchestrator = WorkflowOrchestrator(settings, git, host, state)
    >>> report = await orchestrator.start(123, branch="123-feat-login")
    >>> report.phase, report.status
    (<Phase.COMMIT: 'commit'>, <TaskStatus.BLOCKED: 'blocked'>)
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from repo_warden.adapters.base import IssueHostClient, VersionControlClient
from repo_warden.config.settings import WardenSettings
from repo_warden.engine.context import TaskContext
from repo_warden.engine.phases import PhaseStateMachine
from repo_warden.engine.stages import PhaseStage, build_stages
from repo_warden.engine.state_manager import StateManager, initial_state
from repo_warden.engine.types import TaskState
from repo_warden.enums import Phase, TaskStatus, ViolationKind
from repo_warden.exceptions import (
    ExternalCallError,
    LeaseRejectedError,
    RebaseConflictError,
    RepoWardenError,
    StateMismatchError,
    WorkflowError,
)
from repo_warden.models.domain import GateResult, Violation
from repo_warden.policy.advisory import suggest_branch_name
from repo_warden.policy.rules import build_default_registry
from repo_warden.policy.validator import ActionValidator
from repo_warden.rendering.engine import TemplateEngine
from repo_warden.utils.status_reporter import StatusReporter

log = structlog.get_logger(__name__)


@dataclass
class TaskReport:
    """Outcome of one orchestrator run for a task.

    Attributes:
        issue_number: Task issue
        phase: Phase the task is in after the run
        status: Task status after the run
        results: Gate results produced during this run, in order
        branch: Task branch
        pr_number: Pull request, once opened
        completed_cycles: Cleanup passes recorded for the task
        dry_run: Whether this run was a dry run
    """

    issue_number: int
    phase: Phase
    status: TaskStatus
    results: list[GateResult] = field(default_factory=list)
    branch: str | None = None
    pr_number: int | None = None
    completed_cycles: int = 0
    dry_run: bool = False

    @property
    def last_result(self) -> GateResult | None:
        return self.results[-1] if self.results else None

    @property
    def passed(self) -> bool:
        """Whether every gate evaluated in this run passed."""
        return all(result.passed for result in self.results)

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1


class WorkflowOrchestrator:
    """Drive tasks through the phase cycle.

    Attributes:
        settings: Configuration
        git: Version-control client
        host: Issue/PR hosting client
        state: Task persistence
        validator: Gate evaluator
        stages: One stage per phase
        reporter: Optional issue-comment reporter
    """

    def __init__(
        self,
        settings: WardenSettings,
        git: VersionControlClient,
        host: IssueHostClient,
        state: StateManager,
        validator: ActionValidator | None = None,
        stages: dict[Phase, PhaseStage] | None = None,
        reporter: StatusReporter | None = None,
        templates: TemplateEngine | None = None,
    ) -> None:
        self.settings = settings
        self.git = git
        self.host = host
        self.state = state
        self.validator = validator or ActionValidator(
            build_default_registry(
                settings.verification.test_file_patterns,
                settings.verification.docs_file_patterns,
            )
        )
        self.stages = stages or build_stages(git, host, settings, templates)
        if reporter is None and settings.workflow.report_to_issue:
            reporter = StatusReporter(host)
        self.reporter = reporter

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(
        self,
        issue_number: int,
        branch: str | None = None,
        pr_title: str | None = None,
        pr_body: str | None = None,
        dry_run: bool = False,
    ) -> TaskReport:
        """Start a task for ``issue_number`` and drive it as far as it goes.

        Args:
            issue_number: Issue to work on
            branch: Branch name; derived from the issue title when omitted
            pr_title: PR title override
            pr_body: PR body override
            dry_run: Inspect and gate only; nothing is changed or persisted

        Returns:
            TaskReport for the run.

        Raises:
            WorkflowError: If an active task already exists for the issue.
        """
        if branch is None:
            branch = suggest_branch_name(await self.host.view_issue(issue_number))
            log.info("branch_suggested", issue=issue_number, branch=branch)

        metadata = {key: value for key, value in {"pr_title": pr_title, "pr_body": pr_body}.items() if value}

        if dry_run:
            if self.state.exists(issue_number):
                existing = await self.state.load_state(issue_number)
                if existing["status"] in (TaskStatus.IN_PROGRESS.value, TaskStatus.BLOCKED.value):
                    raise WorkflowError(f"Task for issue #{issue_number} is already {existing['status']}")
            state = initial_state(issue_number, branch, metadata)
        else:
            state = await self.state.create_task(issue_number, branch=branch, metadata=metadata)

        log.info("task_started", issue=issue_number, branch=branch, dry_run=dry_run)
        return await self._drive(state, dry_run=dry_run)

    async def resume(
        self,
        issue_number: int,
        branch: str | None = None,
        pr_title: str | None = None,
        pr_body: str | None = None,
        dry_run: bool = False,
    ) -> TaskReport:
        """Re-enter the task's current (usually blocked) phase.

        A corrected branch name or PR title/body replaces the recorded one
        before the phase is re-attempted, so a format violation on them can
        be fixed without abandoning the task.

        Args:
            issue_number: Issue of the task
            branch: New branch name; only accepted before the branch exists
            pr_title: New PR title override
            pr_body: New PR body override
            dry_run: Inspect and gate only; nothing is changed or persisted

        Raises:
            TaskNotFoundError: If no task exists for the issue.
            WorkflowError: If the task is completed or abandoned, or a new
                branch name is given after the branch was created.
        """
        state = await self.state.load_state(issue_number)
        if state["status"] not in (TaskStatus.IN_PROGRESS.value, TaskStatus.BLOCKED.value):
            raise WorkflowError(f"Task for issue #{issue_number} is {state['status']}; nothing to resume")

        if branch is not None and branch != state.get("branch"):
            if Phase.BRANCH.value in state["actions"]:
                raise WorkflowError(
                    f"Branch {state.get('branch')!r} was already created for issue #{issue_number}; "
                    "abandon the task to start over under a new name"
                )
            state["branch"] = branch
        for key, value in (("pr_title", pr_title), ("pr_body", pr_body)):
            if value:
                state["metadata"][key] = value

        log.info("task_resumed", issue=issue_number, phase=state["machine"].get("phase"), dry_run=dry_run)
        return await self._drive(state, dry_run=dry_run)

    async def abandon(self, issue_number: int) -> TaskState:
        """Discard the task's branch and mark the task abandoned.

        Merged work is never rolled back: the trunk is not touched.

        Raises:
            TaskNotFoundError: If no task exists for the issue.
            WorkflowError: If the task already completed.
        """
        state = await self.state.load_state(issue_number)
        if state["status"] == TaskStatus.COMPLETED.value:
            raise WorkflowError(f"Task for issue #{issue_number} is completed; merged work is not rolled back")

        branch = state.get("branch")
        trunk = self.settings.repository.trunk
        if branch:
            if await self.git.current_branch() == branch:
                await self.git.checkout(trunk)
            if branch in await self.git.list_branches():
                await self.git.delete_branch(branch)
            if await self.git.remote_tip(branch) is not None:
                await self.git.delete_branch(branch, remote=True)

        pr_number = state.get("pr_number")
        if pr_number is not None:
            pr = await self.host.view_pull_request(pr_number)
            if pr.state.upper() == "OPEN":
                await self.host.comment_pull_request(pr_number, "Task abandoned; the branch was deleted.")

        await self.state.mark_status(issue_number, TaskStatus.ABANDONED)
        log.info("task_abandoned", issue=issue_number, branch=branch)
        return await self.state.load_state(issue_number)

    async def status(self, issue_number: int | None = None) -> list[TaskState]:
        """Persisted state of one task, or of every active task."""
        if issue_number is not None:
            return [await self.state.load_state(issue_number)]
        return await self.state.get_active_tasks()

    # ------------------------------------------------------------------
    # Driving
    # ------------------------------------------------------------------

    async def _drive(self, state: TaskState, dry_run: bool = False) -> TaskReport:
        machine = PhaseStateMachine.from_dict(state["machine"])
        task = TaskContext.from_state(
            state,
            trunk=self.settings.repository.trunk,
            remote=self.settings.repository.remote,
            dry_run=dry_run,
        )
        results: list[GateResult] = []
        status = TaskStatus(state["status"])

        while True:
            phase = machine.phase
            stage = self.stages[phase]
            result, error = await self._attempt(stage, task)
            results.append(result)

            if dry_run:
                # Stop where an untaken action would be needed to go on
                if not result.passed or stage.mutates or phase == Phase.CLEANUP:
                    if not result.passed:
                        status = TaskStatus.BLOCKED
                    break
                machine.advance(result)
                continue

            machine.advance(result)
            state["machine"] = machine.to_dict()
            state["branch"] = task.branch
            state["pr_number"] = task.pr_number
            if error:
                state["error"] = error
            else:
                state.pop("error", None)
            if result.passed and stage.mutates:
                state["actions"][phase.value] = {"at": datetime.now(UTC).isoformat(), "data": self._action_data(task)}

            if not result.passed:
                status = TaskStatus.BLOCKED
            elif phase == Phase.CLEANUP:
                status = TaskStatus.COMPLETED
            else:
                status = TaskStatus.IN_PROGRESS
            state["status"] = status.value
            await self.state.save_state(state)

            if status != TaskStatus.IN_PROGRESS:
                await self._report(task, status, result)
                break

        log.info(
            "task_run_finished",
            issue=task.issue_number,
            phase=machine.phase.value,
            status=status.value,
            gates=len(results),
            dry_run=dry_run,
        )
        return TaskReport(
            issue_number=task.issue_number,
            phase=machine.phase,
            status=status,
            results=results,
            branch=task.branch,
            pr_number=task.pr_number,
            completed_cycles=machine.completed_cycles,
            dry_run=dry_run,
        )

    async def _attempt(self, stage: PhaseStage, task: TaskContext) -> tuple[GateResult, str | None]:
        """Inspect, gate and (on pass) act for one phase.

        Returns:
            The gate result and the message of the adapter error, if any.
        """
        phase = stage.phase
        log.info("phase_started", issue=task.issue_number, phase=phase.value)

        try:
            context = await stage.inspect(task)
        except (ExternalCallError, StateMismatchError, WorkflowError) as e:
            log.warning("phase_inspect_failed", phase=phase.value, error=e.message)
            return GateResult(phase, (violation_from_error(e),)), e.message

        result = self.validator.check(phase, context)
        if not result.passed:
            log.info("gate_failed", phase=phase.value, violations=[str(v) for v in result.violations])
            return result, None

        if task.dry_run or not stage.mutates:
            return result, None

        try:
            await stage.act(task, context)
        except (ExternalCallError, StateMismatchError, WorkflowError) as e:
            log.warning("phase_action_failed", phase=phase.value, error=e.message)
            return GateResult(phase, (violation_from_error(e),)), e.message

        return result, None

    @staticmethod
    def _action_data(task: TaskContext) -> dict[str, Any]:
        return {"branch": task.branch, "pr_number": task.pr_number}

    async def _report(self, task: TaskContext, status: TaskStatus, result: GateResult) -> None:
        if self.reporter is None:
            return
        try:
            if status == TaskStatus.BLOCKED:
                await self.reporter.report_blocked(task.issue_number, result)
            elif status == TaskStatus.COMPLETED:
                await self.reporter.report_completed(task.issue_number, task.pr_number)
        except ExternalCallError as e:
            # The task outcome is already persisted; a failed comment does not change it
            log.warning("status_report_failed", issue=task.issue_number, error=e.message)


def violation_from_error(error: RepoWardenError) -> Violation:
    """Express an adapter exception as a gate violation."""
    if isinstance(error, RebaseConflictError):
        return Violation(ViolationKind.STATE_MISMATCH, "rebase-conflict", error.message, subject=error.onto)
    if isinstance(error, LeaseRejectedError):
        return Violation(ViolationKind.STATE_MISMATCH, "lease-rejected", error.message, subject=error.ref)
    if isinstance(error, StateMismatchError):
        return Violation(ViolationKind.STATE_MISMATCH, "state-mismatch", error.message)
    if isinstance(error, ExternalCallError):
        subject = " ".join(error.command[:2]) if error.command else None
        return Violation(ViolationKind.EXTERNAL_CALL, "external-call", error.message, subject=subject)
    return Violation(ViolationKind.MISSING_ARTIFACT, "task-state", error.message)
