"""Tests for issue status reporting."""

import pytest

from repo_warden.enums import Phase, ViolationKind
from repo_warden.models.domain import GateResult, Violation
from repo_warden.utils.status_reporter import StatusReporter


@pytest.mark.asyncio
async def test_report_blocked(mock_host):
    result = GateResult(
        Phase.PR,
        (Violation(ViolationKind.FORMAT, "pr-closes-issue", "PR body must contain Closes #[0-9]+"),),
    )

    await StatusReporter(mock_host).report_blocked(123, result)

    number, body = mock_host.comment_issue.await_args.args
    assert number == 123
    assert "Phase: **PR**" in body
    assert "- [FormatViolation] pr-closes-issue: PR body must contain" in body
    assert "warden resume --issue 123" in body


@pytest.mark.asyncio
async def test_report_completed(mock_host):
    await StatusReporter(mock_host).report_completed(123, pr_number=7)

    body = mock_host.comment_issue.await_args.args[1]
    assert "Status: Completed" in body
    assert body.endswith("Merged via #7.")


@pytest.mark.asyncio
async def test_report_completed_without_pr(mock_host):
    await StatusReporter(mock_host).report_completed(123)
    assert "Merged via" not in mock_host.comment_issue.await_args.args[1]
