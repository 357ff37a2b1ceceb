"""
Merge stage - rebase-merge the pull request onto the shared trunk.

The trunk is guarded by optimistic concurrency (see ``engine.trunk``):

    1. fetch and snapshot the trunk and remote branch tips (inspect)
    2. rebase the branch onto the snapshot trunk (inspect)
    3. gate: no merge commits, CI green, approved, PR still open
    4. push --force-with-lease against the snapshot branch tip (act)
    5. block if the rebase changed the head the gate saw CI for (act)
    6. compare the live trunk tip with the snapshot (act)
    7. ``gh pr merge --rebase --match-head-commit <head>`` (act)

A conflict in step 2, a new head in step 5 or a moved ref in steps 4-7
blocks the phase with a StateMismatch violation. A new head has been pushed
by then, so the next attempt gates the CI runs reported for it. Nothing is
retried automatically; resuming starts again from step 1.
"""

import structlog

from repo_warden.engine.context import TaskContext
from repo_warden.engine.stages.base import PhaseStage
from repo_warden.engine.trunk import TrunkLease
from repo_warden.enums import Phase
from repo_warden.exceptions import StateMismatchError
from repo_warden.models.domain import GateContext

log = structlog.get_logger(__name__)


class MergeStage(PhaseStage):
    """Phase 7: rebase onto the current trunk and merge without merge commits."""

    phase = Phase.MERGE
    mutates = True

    async def inspect(self, task: TaskContext) -> GateContext:
        branch = self._require_branch(task)
        pr = await self._pull_request(task)

        if task.dry_run:
            commits = await self.git.log(task.trunk_ref, branch)
            return GateContext(
                issue_number=task.issue_number,
                branch_name=branch,
                commits=commits,
                pull_request=pr,
                ci_runs=list(pr.ci_runs),
            )

        if await self.git.rebase_in_progress():
            raise StateMismatchError(
                "A rebase is still in progress in the working tree",
                hint="finish it with 'git rebase --continue' (or abort it), then 'warden resume'",
            )

        lease = TrunkLease(self.git, task.trunk, task.remote, branch)
        trunk_sha = await lease.acquire()
        await self._checkout_task_branch(task)
        await self.git.rebase(trunk_sha)

        commits = await self.git.log(trunk_sha, "HEAD")
        head_sha = await self.git.rev_parse("HEAD")
        task.set_stage_output("merge", {"lease": lease, "head_sha": head_sha, "gated_head": pr.head_sha})

        return GateContext(
            issue_number=task.issue_number,
            branch_name=branch,
            commits=commits,
            pull_request=pr,
            ci_runs=list(pr.ci_runs),
            extra={"lease": lease.to_dict(), "head_sha": head_sha},
        )

    async def act(self, task: TaskContext, context: GateContext) -> None:
        output = task.get_stage_output("merge") or {}
        lease: TrunkLease | None = output.get("lease")
        if lease is None or task.pr_number is None:
            raise StateMismatchError("Merge attempted without a trunk lease; run 'warden resume'")

        head_sha = output["head_sha"]
        await lease.push_branch()

        gated_head = output.get("gated_head")
        if head_sha != gated_head:
            log.info("rebased_head_pushed", number=task.pr_number, head_sha=head_sha, gated_head=gated_head)
            raise StateMismatchError(
                f"Rebasing moved pull request #{task.pr_number} to {head_sha[:12]}; "
                "CI must re-run on the rebased head before it can merge",
                hint="wait for CI on the pushed head, then run 'warden resume'",
            )

        await lease.verify()
        await self.host.merge_pull_request(task.pr_number, head_sha=head_sha)
        log.info("pull_request_merged", number=task.pr_number, head_sha=head_sha)
