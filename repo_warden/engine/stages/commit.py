"""Commit stage - check the branch history the developer produced."""

from repo_warden.engine.context import TaskContext
from repo_warden.engine.stages.base import PhaseStage
from repo_warden.enums import Phase
from repo_warden.models.domain import GateContext


class CommitStage(PhaseStage):
    """Phase 3: every commit on the branch is well formed, none is a merge."""

    phase = Phase.COMMIT

    async def inspect(self, task: TaskContext) -> GateContext:
        branch = self._require_branch(task)
        commits = await self.git.log(task.trunk_ref, branch)
        changed = await self.git.changed_files(task.trunk_ref, branch)
        return GateContext(
            issue_number=task.issue_number,
            branch_name=branch,
            commits=commits,
            changed_files=changed,
        )
