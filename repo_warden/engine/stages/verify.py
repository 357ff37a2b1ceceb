"""
Verify stage - run the configured build/test/lint commands.

Commands come from ``verification.commands`` and run in order on the task
branch. Every command runs even after one fails so the gate can report all
of them. Only the exit codes are read; the tools themselves are external.
A dry run skips the checkout and runs the commands in the current tree.
"""

import structlog

from repo_warden.engine.context import TaskContext
from repo_warden.engine.stages.base import PhaseStage
from repo_warden.enums import Phase
from repo_warden.models.domain import GateContext

log = structlog.get_logger(__name__)


class VerifyStage(PhaseStage):
    """Phase 4: verification commands pass and tests were added."""

    phase = Phase.VERIFY

    async def inspect(self, task: TaskContext) -> GateContext:
        branch = self._require_branch(task)
        if not task.dry_run:
            await self._checkout_task_branch(task)

        results: dict[str, int] = {}
        for name, command in self.settings.verification.commands.items():
            results[name] = await self.git.run_check(command)
            log.info("verification_result", name=name, returncode=results[name])
        task.set_stage_output("verify", results)

        changed = await self.git.changed_files(task.trunk_ref, branch)
        return GateContext(
            issue_number=task.issue_number,
            branch_name=branch,
            check_results=results,
            changed_files=changed,
        )
