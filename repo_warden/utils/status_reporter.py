"""Status reporting for posting task updates to issues."""

from datetime import UTC, datetime

import structlog

from repo_warden.adapters.base import IssueHostClient
from repo_warden.models.domain import GateResult

log = structlog.get_logger(__name__)


class StatusReporter:
    """Report task progress back to the task's issue."""

    def __init__(self, host: IssueHostClient) -> None:
        """Initialize with the issue host client.

        Args:
            host: IssueHostClient used to post comments
        """
        self.host = host

    async def report_blocked(self, issue_number: int, result: GateResult) -> None:
        """Report that a phase gate failed and the task is blocked.

        Args:
            issue_number: Task issue
            result: The failing gate result
        """
        violations = "\n".join(f"- {violation}" for violation in result.violations)
        message = f"""**repo-warden**

Phase: **{result.phase.label}**
Status: Blocked
At: {datetime.now(UTC).isoformat()}

**Violations:**
{violations}

Fix the above and run `warden resume --issue {issue_number}`.
"""
        await self.host.comment_issue(issue_number, message.strip())
        log.info("status_reported", issue=issue_number, phase=result.phase.value, status="blocked")

    async def report_completed(self, issue_number: int, pr_number: int | None = None) -> None:
        """Report that the task went through every phase.

        Args:
            issue_number: Task issue
            pr_number: Merged pull request, if known
        """
        merged = f"Merged via #{pr_number}." if pr_number else ""
        message = f"""**repo-warden**

Status: Completed
Completed: {datetime.now(UTC).isoformat()}

{merged}
"""
        await self.host.comment_issue(issue_number, message.strip())
        log.info("status_reported", issue=issue_number, status="completed")
