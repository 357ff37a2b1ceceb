"""
Optimistic concurrency for the shared trunk.

The trunk is the only resource shared between tasks. Instead of a lock, a
merge observes the trunk and branch tips, does its work against those
snapshots, and re-checks them right before publishing. If another task
merged in between, the compare fails with ``LeaseRejectedError`` and the
Merge phase blocks; resuming starts over from a fresh fetch.

Sequence used by the Merge stage::

    lease = TrunkLease(git, trunk="master", remote="origin", branch="123-feat-login")
    await lease.acquire()                 # fetch + snapshot tips
    await git.rebase(lease.trunk_sha)     # conflicts -> RebaseConflictError
    await lease.push_branch()             # push --force-with-lease=<branch>:<tip>
    await lease.verify()                  # trunk moved -> LeaseRejectedError
    await host.merge_pull_request(pr, head_sha=...)
"""

from typing import Any

import structlog

from repo_warden.adapters.base import VersionControlClient
from repo_warden.exceptions import LeaseRejectedError, StateMismatchError

log = structlog.get_logger(__name__)


class TrunkLease:
    """Snapshot of the trunk and branch tips taken before a merge.

    Attributes:
        trunk_sha: Trunk tip observed at ``acquire``
        branch_sha: Remote branch tip observed at ``acquire`` (None if the
            branch was never pushed)
    """

    def __init__(self, git: VersionControlClient, trunk: str, remote: str, branch: str) -> None:
        self.git = git
        self.trunk = trunk
        self.remote = remote
        self.branch = branch
        self.trunk_sha: str | None = None
        self.branch_sha: str | None = None

    @property
    def acquired(self) -> bool:
        return self.trunk_sha is not None

    async def acquire(self) -> str:
        """Fetch and record the current tips.

        Returns:
            The observed trunk SHA.

        Raises:
            StateMismatchError: If the trunk does not exist on the remote.
        """
        await self.git.fetch()
        remote_trunk = await self.git.remote_tip(self.trunk)
        if remote_trunk is None:
            raise StateMismatchError(f"Trunk {self.remote}/{self.trunk} does not exist on the remote")
        # Snapshot what was fetched; the live tip is compared again in verify()
        self.trunk_sha = await self.git.rev_parse(f"{self.remote}/{self.trunk}")
        self.branch_sha = await self.git.remote_tip(self.branch)
        log.info("trunk_lease_acquired", trunk=self.trunk, trunk_sha=self.trunk_sha, branch_sha=self.branch_sha)
        return self.trunk_sha

    async def push_branch(self) -> None:
        """Force-push the rebased branch, only if the remote branch is unchanged.

        Raises:
            LeaseRejectedError: If the remote branch moved since ``acquire``.
        """
        self._require_acquired()
        # An empty lease value means "the remote branch must not exist yet"
        await self.git.push(self.branch, set_upstream=True, force_with_lease=self.branch_sha or "")

    async def verify(self) -> None:
        """Compare the live trunk tip with the snapshot.

        Raises:
            LeaseRejectedError: If another change reached the trunk.
        """
        self._require_acquired()
        actual = await self.git.remote_tip(self.trunk)
        if actual != self.trunk_sha:
            log.warning("trunk_lease_rejected", expected=self.trunk_sha, actual=actual)
            raise LeaseRejectedError(f"{self.remote}/{self.trunk}", self.trunk_sha or "", actual)
        log.info("trunk_lease_verified", trunk_sha=self.trunk_sha)

    def _require_acquired(self) -> None:
        if not self.acquired:
            raise StateMismatchError("Trunk lease used before it was acquired")

    def to_dict(self) -> dict[str, Any]:
        return {"trunk": self.trunk, "trunk_sha": self.trunk_sha, "branch": self.branch, "branch_sha": self.branch_sha}
