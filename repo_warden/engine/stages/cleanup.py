"""
Cleanup stage - return to the trunk and remove the merged branch.

The cleanup actions run during inspect, and only once the PR is observed
as merged, so unmerged work is never deleted. The gate then confirms the
end state: PR merged, issue closed, branch gone locally and remotely.
With ``workflow.delete_remote_branch`` off, the host is expected to delete
the remote branch itself.
"""

import structlog

from repo_warden.engine.context import TaskContext
from repo_warden.engine.stages.base import PhaseStage
from repo_warden.enums import Phase
from repo_warden.models.domain import GateContext

log = structlog.get_logger(__name__)


class CleanupStage(PhaseStage):
    """Phase 8: merged, closed and cleaned up."""

    phase = Phase.CLEANUP

    async def inspect(self, task: TaskContext) -> GateContext:
        branch = self._require_branch(task)
        pr = await self._pull_request(task)
        # Re-read: the merge is what closes the issue
        task.issue = await self.host.view_issue(task.issue_number)

        if pr.merged and not task.dry_run:
            await self._remove_branch(task, branch)

        local_exists = branch in await self.git.list_branches()
        remote_exists = await self.git.remote_tip(branch) is not None

        return GateContext(
            issue=task.issue,
            branch_name=branch,
            pull_request=pr,
            local_branch_exists=local_exists,
            remote_branch_exists=remote_exists,
        )

    async def _remove_branch(self, task: TaskContext, branch: str) -> None:
        if await self.git.current_branch() != task.trunk:
            await self.git.checkout(task.trunk)
        await self.git.pull(task.trunk)

        if branch in await self.git.list_branches():
            await self.git.delete_branch(branch)
            log.info("branch_deleted", branch=branch, where="local")

        if self.settings.workflow.delete_remote_branch and await self.git.remote_tip(branch) is not None:
            await self.git.delete_branch(branch, remote=True)
            log.info("branch_deleted", branch=branch, where="remote")
