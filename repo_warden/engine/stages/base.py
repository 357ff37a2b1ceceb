"""
Base class for phase stages.

Each of the eight phases is implemented by one stage object. The
orchestrator drives a stage in two steps around the phase's gate:

    1. ``inspect(task)``: perform the phase's read and sync actions through
       the adapters and build the GateContext the rules look at.
    2. ``act(task, context)``: run only after the gate passed; perform the
       phase's mutating action (create a branch, open a PR, merge).

Stages never decide pass/fail themselves; that is the validator's job.
Adapter exceptions propagate to the orchestrator, which turns them into
violations and blocks the task.

Example:
    >>> class MyStage(PhaseStage):
    ...     phase = Phase.VERIFY
    ...     async def inspect(self, task: TaskContext) -> GateContext:
    ...         return GateContext(issue_number=task.issue_number)
"""

from abc import ABC, abstractmethod

import structlog

from repo_warden.adapters.base import IssueHostClient, VersionControlClient
from repo_warden.config.settings import WardenSettings
from repo_warden.engine.context import TaskContext
from repo_warden.enums import Phase
from repo_warden.exceptions import WorkflowError
from repo_warden.models.domain import GateContext, Issue, PullRequest
from repo_warden.rendering.engine import TemplateEngine

log = structlog.get_logger(__name__)


class PhaseStage(ABC):
    """Abstract base class for all phase stages.

    Attributes:
        git: Version-control client
        host: Issue/PR hosting client
        settings: Configuration (trunk, verification commands, workflow flags)
        templates: Renderer for generated PR bodies
        phase: The phase this stage implements (class attribute)
        mutates: Whether ``act`` changes external state (class attribute)
    """

    phase: Phase
    mutates: bool = False

    def __init__(
        self,
        git: VersionControlClient,
        host: IssueHostClient,
        settings: WardenSettings,
        templates: TemplateEngine | None = None,
    ) -> None:
        self.git = git
        self.host = host
        self.settings = settings
        self.templates = templates or TemplateEngine()

    @abstractmethod
    async def inspect(self, task: TaskContext) -> GateContext:
        """Collect the state the phase's rules need.

        Args:
            task: The task being driven

        Returns:
            GateContext for the validator.
        """

    async def act(self, task: TaskContext, context: GateContext) -> None:
        """Perform the phase's mutating action after the gate passed."""

    async def _issue(self, task: TaskContext) -> Issue:
        """Fetch the task's issue once per run."""
        if task.issue is None:
            task.issue = await self.host.view_issue(task.issue_number)
        return task.issue

    def _require_branch(self, task: TaskContext) -> str:
        if not task.branch:
            raise WorkflowError(f"Task for issue #{task.issue_number} has no branch")
        return task.branch

    async def _checkout_task_branch(self, task: TaskContext) -> None:
        branch = self._require_branch(task)
        if await self.git.current_branch() != branch:
            await self.git.checkout(branch)

    async def _pull_request(self, task: TaskContext) -> PullRequest:
        """The task's PR with its CI runs attached.

        Raises:
            WorkflowError: If no PR is recorded or found for the branch.
        """
        if task.pr_number is None:
            found = await self.host.find_pull_request(self._require_branch(task))
            if found is None:
                raise WorkflowError(f"No pull request found for branch {task.branch!r}")
            task.pr_number = found.number
        pr = await self.host.view_pull_request(task.pr_number)
        pr.ci_runs = await self.host.pull_request_checks(task.pr_number)
        return pr
