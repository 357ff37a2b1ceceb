"""
Branch stage - create the one branch that belongs to the task's issue.

Inspect lists local and remote branches to find any other branch already
claiming the issue. After the gate passes the branch is created from the
trunk (or checked out again if it already exists from an earlier attempt).
"""

import structlog

from repo_warden.engine.context import TaskContext
from repo_warden.engine.stages.base import PhaseStage
from repo_warden.enums import Phase
from repo_warden.models.domain import GateContext, issue_number_from_branch

log = structlog.get_logger(__name__)


class BranchStage(PhaseStage):
    """Phase 2: branch name is valid and unique for the issue."""

    phase = Phase.BRANCH
    mutates = True

    async def inspect(self, task: TaskContext) -> GateContext:
        issue = await self._issue(task)
        local = await self.git.list_branches()
        remote = await self.git.list_branches(remote=True)

        others = sorted(
            {
                name
                for name in [*local, *remote]
                if name != task.branch and issue_number_from_branch(name) == task.issue_number
            }
        )
        task.set_stage_output("branch", {"exists": bool(task.branch) and task.branch in local})

        return GateContext(
            issue=issue,
            branch_name=task.branch,
            other_branches=others,
        )

    async def act(self, task: TaskContext, context: GateContext) -> None:
        branch = self._require_branch(task)
        output = task.get_stage_output("branch") or {}
        if output.get("exists"):
            log.info("branch_reused", branch=branch)
            await self.git.checkout(branch)
            return
        await self.git.create_branch(branch, task.trunk)
        log.info("branch_created", branch=branch, start_point=task.trunk)
