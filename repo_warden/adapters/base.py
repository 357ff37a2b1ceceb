"""
Capability interfaces for the external collaborators.

The phase stages only talk to these abstract clients, so any backing tool or
service can be substituted without touching the state machine or the rule
registry. The shipped implementations wrap the ``git`` and ``gh`` command
lines (see ``git_cli`` and ``gh_cli``).

Failure Contract:
    Implementations raise typed exceptions and never retry:

    - ExternalCallError: the tool failed (network, auth, missing binary,
      timeout); the tool's message is preserved verbatim
    - RebaseConflictError: a rebase stopped on conflicts
    - LeaseRejectedError: a force-with-lease push was rejected

All methods are async; the orchestrator awaits them one at a time.
"""

from abc import ABC, abstractmethod

from repo_warden.models.domain import CIRun, Commit, Issue, PullRequest


class VersionControlClient(ABC):
    """Version-control operations used by the workflow."""

    @abstractmethod
    async def current_branch(self) -> str:
        """Name of the checked-out branch."""

    @abstractmethod
    async def rev_parse(self, ref: str) -> str:
        """Resolve ``ref`` to a full commit SHA."""

    @abstractmethod
    async def remote_tip(self, branch: str) -> str | None:
        """Tip of ``branch`` on the remote as reported live (ls-remote).

        Returns:
            The SHA, or None if the branch does not exist remotely.
        """

    @abstractmethod
    async def checkout(self, ref: str) -> None:
        """Check out an existing branch or ref."""

    @abstractmethod
    async def pull(self, branch: str) -> None:
        """Fast-forward the local ``branch`` from the remote."""

    @abstractmethod
    async def create_branch(self, name: str, start_point: str) -> None:
        """Create ``name`` at ``start_point`` and check it out."""

    @abstractmethod
    async def delete_branch(self, name: str, remote: bool = False) -> None:
        """Delete ``name`` locally, or on the remote when ``remote`` is set."""

    @abstractmethod
    async def list_branches(self, remote: bool = False) -> list[str]:
        """Local (or remote-tracking, without the remote prefix) branch names."""

    @abstractmethod
    async def add(self, paths: list[str]) -> None:
        """Stage ``paths``."""

    @abstractmethod
    async def commit(self, message: str) -> str:
        """Create a commit from the index; returns its SHA."""

    @abstractmethod
    async def fetch(self) -> None:
        """Fetch from the remote, pruning deleted branches."""

    @abstractmethod
    async def rebase(self, onto: str) -> None:
        """Rebase the current branch onto ``onto``.

        Raises:
            RebaseConflictError: If the rebase stops on conflicts. The
                repository is left mid-rebase for manual resolution.
        """

    @abstractmethod
    async def rebase_continue(self) -> None:
        """Continue a rebase after conflicts were resolved by hand."""

    @abstractmethod
    async def rebase_abort(self) -> None:
        """Abort an in-progress rebase."""

    @abstractmethod
    async def rebase_in_progress(self) -> bool:
        """Whether a rebase is currently stopped in the working tree."""

    @abstractmethod
    async def push(
        self,
        branch: str,
        set_upstream: bool = False,
        force_with_lease: str | None = None,
    ) -> None:
        """Push ``branch`` to the remote.

        Args:
            branch: Branch to push
            set_upstream: Record the remote branch as upstream
            force_with_lease: Expected remote tip; the push is forced only if
                the remote branch still points there

        Raises:
            LeaseRejectedError: If the lease check fails.
        """

    @abstractmethod
    async def log(self, base: str, head: str = "HEAD") -> list[Commit]:
        """Commits reachable from ``head`` but not ``base``, oldest first."""

    @abstractmethod
    async def changed_files(self, base: str, head: str = "HEAD") -> list[str]:
        """Files changed between the merge base of ``base`` and ``head``."""

    @abstractmethod
    async def is_clean(self) -> bool:
        """Whether the working tree has no uncommitted changes."""

    @abstractmethod
    async def run_check(self, command: str) -> int:
        """Run a verification command in the repository; returns its exit code."""


class IssueHostClient(ABC):
    """Issue and pull-request hosting operations used by the workflow."""

    @abstractmethod
    async def list_issues(self, state: str = "open", labels: list[str] | None = None) -> list[Issue]:
        """List issues."""

    @abstractmethod
    async def create_issue(self, title: str, body: str, labels: list[str] | None = None) -> Issue:
        """Create an issue."""

    @abstractmethod
    async def view_issue(self, number: int) -> Issue:
        """Fetch one issue."""

    @abstractmethod
    async def comment_issue(self, number: int, body: str) -> None:
        """Add a comment to an issue."""

    @abstractmethod
    async def create_pull_request(self, title: str, body: str, head: str, base: str) -> PullRequest:
        """Open a pull request."""

    @abstractmethod
    async def view_pull_request(self, number: int) -> PullRequest:
        """Fetch one pull request, including its review decision."""

    @abstractmethod
    async def find_pull_request(self, head: str) -> PullRequest | None:
        """The pull request (in any state) whose head is ``head``, if any."""

    @abstractmethod
    async def checkout_pull_request(self, number: int) -> None:
        """Check out a pull request's head branch locally."""

    @abstractmethod
    async def pull_request_checks(self, number: int) -> list[CIRun]:
        """CI runs reported for the pull request head."""

    @abstractmethod
    async def review_pull_request(self, number: int, approve: bool, body: str = "") -> None:
        """Approve a pull request or request changes."""

    @abstractmethod
    async def merge_pull_request(self, number: int, head_sha: str, delete_branch: bool = False) -> None:
        """Rebase-merge a pull request if its head is still ``head_sha``.

        Raises:
            LeaseRejectedError: If the head moved in the meantime.
        """

    @abstractmethod
    async def comment_pull_request(self, number: int, body: str) -> None:
        """Add a comment to a pull request."""

    @abstractmethod
    async def list_runs(self, branch: str) -> list[CIRun]:
        """Workflow runs for ``branch``, newest first."""

    @abstractmethod
    async def watch_run(self, run_id: int) -> CIRun:
        """Block until run ``run_id`` finishes; returns its final state."""
