"""Issue host client backed by the GitHub ``gh`` command line.

All reads use ``--json`` so the output is parsed, not scraped. Writes that
only print a URL (``issue create``, ``pr create``) are followed by a view
call to return the normalized object.
"""

import json
from pathlib import Path
from typing import Any

import structlog

from repo_warden.adapters.base import IssueHostClient
from repo_warden.enums import CIState, ReviewDecision
from repo_warden.exceptions import ExternalCallError, LeaseRejectedError
from repo_warden.models.domain import CIRun, Issue, IssueState, PullRequest
from repo_warden.utils.async_subprocess import CommandResult, run_command

log = structlog.get_logger(__name__)

ISSUE_FIELDS = "number,title,body,state,url,labels"
PR_FIELDS = "number,title,body,headRefName,baseRefName,state,url,reviewDecision,headRefOid"
RUN_FIELDS = "databaseId,name,status,conclusion,url"

# Reported by the merge mutation when --match-head-commit does not match
_HEAD_MOVED_MARKER = "head branch was modified"


class GhCliClient(IssueHostClient):
    """``gh`` implementation of the issue-host capability.

    Attributes:
        repo_path: Working directory (gh infers the repository from it)
        repo: Optional ``OWNER/NAME`` override passed as ``--repo``
        binary: gh executable
        timeout: Seconds allowed for each call
        ci_timeout: Seconds allowed for ``gh run watch``
    """

    def __init__(
        self,
        repo_path: str | Path = ".",
        repo: str | None = None,
        binary: str = "gh",
        timeout: float = 120.0,
        ci_timeout: float = 1800.0,
    ) -> None:
        self.repo_path = Path(repo_path)
        self.repo = repo
        self.binary = binary
        self.timeout = timeout
        self.ci_timeout = ci_timeout

    async def _gh(self, *args: str, check: bool = True, timeout: float | None = None) -> CommandResult:
        repo_args = ("--repo", self.repo) if self.repo else ()
        return await run_command(
            self.binary,
            *args,
            *repo_args,
            cwd=self.repo_path,
            check=check,
            timeout=timeout or self.timeout,
        )

    async def _gh_json(self, *args: str) -> Any:
        result = await self._gh(*args)
        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError as e:
            raise ExternalCallError(
                f"'{self.binary} {' '.join(args)}' returned invalid JSON",
                command=result.args,
                stderr=result.stdout[:500],
            ) from e

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    async def list_issues(self, state: str = "open", labels: list[str] | None = None) -> list[Issue]:
        args = ["issue", "list", "--state", state, "--limit", "200", "--json", ISSUE_FIELDS]
        for label in labels or []:
            args.extend(["--label", label])
        data = await self._gh_json(*args)
        return [parse_issue(item) for item in data or []]

    async def create_issue(self, title: str, body: str, labels: list[str] | None = None) -> Issue:
        log.info("create_issue", title=title)
        args = ["issue", "create", "--title", title, "--body", body]
        for label in labels or []:
            args.extend(["--label", label])
        result = await self._gh(*args)
        return await self.view_issue(number_from_url(result.stdout))

    async def view_issue(self, number: int) -> Issue:
        data = await self._gh_json("issue", "view", str(number), "--json", ISSUE_FIELDS)
        return parse_issue(data)

    async def comment_issue(self, number: int, body: str) -> None:
        await self._gh("issue", "comment", str(number), "--body", body)

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    async def create_pull_request(self, title: str, body: str, head: str, base: str) -> PullRequest:
        log.info("create_pull_request", title=title, head=head, base=base)
        result = await self._gh("pr", "create", "--title", title, "--body", body, "--head", head, "--base", base)
        return await self.view_pull_request(number_from_url(result.stdout))

    async def view_pull_request(self, number: int) -> PullRequest:
        data = await self._gh_json("pr", "view", str(number), "--json", PR_FIELDS)
        return parse_pull_request(data)

    async def find_pull_request(self, head: str) -> PullRequest | None:
        data = await self._gh_json("pr", "list", "--head", head, "--state", "all", "--json", PR_FIELDS)
        if not data:
            return None
        # Prefer an open PR over older closed ones for the same head
        data.sort(key=lambda item: (item.get("state") != "OPEN", -int(item.get("number", 0))))
        return parse_pull_request(data[0])

    async def checkout_pull_request(self, number: int) -> None:
        await self._gh("pr", "checkout", str(number))

    async def pull_request_checks(self, number: int) -> list[CIRun]:
        # gh exits 1 for failing and 8 for pending checks but still prints JSON
        result = await self._gh("pr", "checks", str(number), "--json", "name,state,bucket,link", check=False)
        if result.stdout.strip():
            try:
                data = json.loads(result.stdout)
            except json.JSONDecodeError as e:
                raise ExternalCallError(
                    f"'gh pr checks {number}' returned invalid JSON",
                    command=result.args,
                    stderr=result.stdout[:500],
                ) from e
            return [
                CIRun(
                    name=item.get("name", ""),
                    state=CIState.from_host(item.get("bucket") or item.get("state")),
                    url=item.get("link", ""),
                )
                for item in data
            ]
        if "no checks reported" in result.stderr.lower():
            return []
        if result.ok:
            return []
        raise ExternalCallError(
            f"'gh pr checks {number}' failed",
            command=result.args,
            returncode=result.returncode,
            stderr=result.stderr,
        )

    async def review_pull_request(self, number: int, approve: bool, body: str = "") -> None:
        args = ["pr", "review", str(number), "--approve" if approve else "--request-changes"]
        if body or not approve:
            args.extend(["--body", body or "Changes requested"])
        await self._gh(*args)

    async def merge_pull_request(self, number: int, head_sha: str, delete_branch: bool = False) -> None:
        args = ["pr", "merge", str(number), "--rebase", "--match-head-commit", head_sha]
        if delete_branch:
            args.append("--delete-branch")
        log.info("merge_pull_request", number=number, head_sha=head_sha)
        result = await self._gh(*args, check=False)
        if result.ok:
            return
        output = (result.stderr or result.stdout).lower()
        if _HEAD_MOVED_MARKER in output:
            raise LeaseRejectedError(f"pull request #{number} head", head_sha)
        raise ExternalCallError(
            f"'gh pr merge {number}' failed",
            command=result.args,
            returncode=result.returncode,
            stderr=result.stderr or result.stdout,
        )

    async def comment_pull_request(self, number: int, body: str) -> None:
        await self._gh("pr", "comment", str(number), "--body", body)

    # ------------------------------------------------------------------
    # Workflow runs
    # ------------------------------------------------------------------

    async def list_runs(self, branch: str) -> list[CIRun]:
        data = await self._gh_json("run", "list", "--branch", branch, "--limit", "20", "--json", RUN_FIELDS)
        return [parse_run(item) for item in data or []]

    async def watch_run(self, run_id: int) -> CIRun:
        log.info("watch_run", run_id=run_id)
        await self._gh("run", "watch", str(run_id), "--exit-status", check=False, timeout=self.ci_timeout)
        data = await self._gh_json("run", "view", str(run_id), "--json", RUN_FIELDS)
        return parse_run(data)


def number_from_url(output: str) -> int:
    """Issue/PR number from the URL ``gh ... create`` prints."""
    url = output.strip().splitlines()[-1] if output.strip() else ""
    tail = url.rstrip("/").rsplit("/", 1)[-1]
    if not tail.isdigit():
        raise ExternalCallError(f"Could not read a number from gh output: {output.strip()!r}")
    return int(tail)


def parse_issue(data: dict[str, Any]) -> Issue:
    """Parse ``gh issue view --json`` data."""
    return Issue(
        number=int(data["number"]),
        title=data.get("title", ""),
        body=data.get("body") or "",
        state=IssueState(str(data.get("state", "open")).lower()),
        url=data.get("url", ""),
        labels=[label["name"] if isinstance(label, dict) else label for label in data.get("labels", [])],
    )


def parse_pull_request(data: dict[str, Any]) -> PullRequest:
    """Parse ``gh pr view --json`` data."""
    return PullRequest(
        number=int(data["number"]),
        title=data.get("title", ""),
        body=data.get("body") or "",
        head=data.get("headRefName", ""),
        base=data.get("baseRefName", ""),
        state=str(data.get("state", "OPEN")).upper(),
        url=data.get("url", ""),
        review_decision=ReviewDecision.from_host(data.get("reviewDecision")),
        head_sha=data.get("headRefOid", ""),
    )


def parse_run(data: dict[str, Any]) -> CIRun:
    """Parse ``gh run list/view --json`` data."""
    if data.get("status") != "completed":
        state = CIState.PENDING
    else:
        state = CIState.from_host(data.get("conclusion"))
    return CIRun(
        name=data.get("name", ""),
        state=state,
        url=data.get("url", ""),
        run_id=data.get("databaseId"),
    )
