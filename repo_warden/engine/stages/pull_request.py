"""
PR stage - publish the branch and open its pull request.

The candidate title defaults to the first commit subject and the body to
the rendered ``pull_request.md.j2`` template, unless the task carries
overrides. If an open PR already exists for the branch (e.g. opened by
hand, or by an earlier attempt) that PR is gated instead of a new one.
"""

import structlog

from repo_warden.engine.context import TaskContext
from repo_warden.engine.stages.base import PhaseStage
from repo_warden.enums import Phase
from repo_warden.models.domain import GateContext

log = structlog.get_logger(__name__)


class PullRequestStage(PhaseStage):
    """Phase 5: PR title and body follow the conventions."""

    phase = Phase.PR
    mutates = True

    async def inspect(self, task: TaskContext) -> GateContext:
        branch = self._require_branch(task)
        existing = await self.host.find_pull_request(branch)
        if existing is not None and existing.state.upper() == "OPEN":
            log.info("pull_request_found", number=existing.number, head=branch)
            task.set_stage_output("pr", {"existing": existing.number})
            return GateContext(issue_number=task.issue_number, branch_name=branch, pull_request=existing)

        commits = await self.git.log(task.trunk_ref, branch)
        title = task.pr_title or (commits[0].subject if commits else None)
        body = task.pr_body
        if body is None:
            body = self.templates.render_pull_request_body(
                issue_number=task.issue_number,
                commits=commits,
                verification=task.get_stage_output("verify"),
            )

        task.set_stage_output("pr", {"existing": None, "title": title, "body": body})
        return GateContext(
            issue_number=task.issue_number,
            branch_name=branch,
            pr_title=title,
            pr_body=body,
        )

    async def act(self, task: TaskContext, context: GateContext) -> None:
        branch = self._require_branch(task)
        output = task.get_stage_output("pr") or {}

        await self.git.push(branch, set_upstream=True)

        if output.get("existing"):
            task.pr_number = output["existing"]
            return

        pr = await self.host.create_pull_request(
            title=output["title"],
            body=output["body"],
            head=branch,
            base=task.trunk,
        )
        task.pr_number = pr.number
        log.info("pull_request_opened", number=pr.number, url=pr.url)
