"""
Sync stage - bring the local trunk up to date before work starts.

Inspect fetches the issue and, when the working tree is clean, checks out
the trunk and fast-forwards it. The gate then compares the local trunk tip
with the live remote tip. There is no post-gate action.
"""

import structlog

from repo_warden.engine.context import TaskContext
from repo_warden.engine.stages.base import PhaseStage
from repo_warden.enums import Phase
from repo_warden.models.domain import GateContext

log = structlog.get_logger(__name__)


class SyncStage(PhaseStage):
    """Phase 1: issue is well formed and the trunk is current."""

    phase = Phase.SYNC

    async def inspect(self, task: TaskContext) -> GateContext:
        issue = await self._issue(task)
        clean = await self.git.is_clean()

        if clean and not task.dry_run:
            if await self.git.current_branch() != task.trunk:
                await self.git.checkout(task.trunk)
            await self.git.pull(task.trunk)
        else:
            await self.git.fetch()

        local_sha = await self.git.rev_parse(task.trunk)
        remote_sha = await self.git.remote_tip(task.trunk)
        log.debug("trunk_observed", local=local_sha, remote=remote_sha)

        return GateContext(
            issue=issue,
            local_trunk_sha=local_sha,
            remote_trunk_sha=remote_sha,
            working_tree_clean=clean,
        )
