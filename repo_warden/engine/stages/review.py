"""
Review stage - wait for CI and approval on the pull request.

Pending CI runs fail the gate (the task blocks until ``warden resume``)
unless ``workflow.wait_for_ci`` is on, in which case in-progress runs are
watched to completion first, bounded by ``adapter.ci_timeout``.
"""

import structlog

from repo_warden.engine.context import TaskContext
from repo_warden.engine.stages.base import PhaseStage
from repo_warden.enums import CIState, Phase
from repo_warden.models.domain import GateContext, PullRequest

log = structlog.get_logger(__name__)


class ReviewStage(PhaseStage):
    """Phase 6: CI is green and the PR is approved."""

    phase = Phase.REVIEW

    async def inspect(self, task: TaskContext) -> GateContext:
        pr = await self._pull_request(task)

        if self.settings.workflow.wait_for_ci and not task.dry_run:
            if any(run.state == CIState.PENDING for run in pr.ci_runs):
                await self._wait_for_runs(task, pr)
                pr.ci_runs = await self.host.pull_request_checks(pr.number)

        return GateContext(
            issue_number=task.issue_number,
            branch_name=task.branch,
            pull_request=pr,
            ci_runs=list(pr.ci_runs),
        )

    async def _wait_for_runs(self, task: TaskContext, pr: PullRequest) -> None:
        runs = await self.host.list_runs(pr.head or self._require_branch(task))
        for run in runs:
            if run.state == CIState.PENDING and run.run_id is not None:
                log.info("waiting_for_ci", run=run.name, run_id=run.run_id)
                finished = await self.host.watch_run(run.run_id)
                log.info("ci_finished", run=finished.name, state=finished.state.value)
