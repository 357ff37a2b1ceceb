"""Version-control client backed by the ``git`` command line."""

from pathlib import Path

import structlog

from repo_warden.adapters.base import VersionControlClient
from repo_warden.exceptions import ExternalCallError, LeaseRejectedError, RebaseConflictError
from repo_warden.models.domain import Commit
from repo_warden.utils.async_subprocess import CommandResult, run_command, run_shell_command

log = structlog.get_logger(__name__)

# Record/field separators for machine-readable ``git log`` output
_RECORD = "\x1e"
_FIELD = "\x1f"
_LOG_FORMAT = f"--format={_RECORD}%H{_FIELD}%P{_FIELD}%B{_FIELD}"

# git reports a failed lease comparison as "(stale info)"; any other rejection
# (hooks, protected branches) is a plain push failure
_LEASE_REJECTED_MARKER = "stale info"


class GitCliClient(VersionControlClient):
    """``git`` implementation of the version-control capability.

    Attributes:
        repo_path: Repository working tree
        remote: Remote name (usually ``origin``)
        binary: git executable
        timeout: Seconds allowed for each git call
        check_timeout: Seconds allowed for each verification command
    """

    def __init__(
        self,
        repo_path: str | Path = ".",
        remote: str = "origin",
        binary: str = "git",
        timeout: float = 120.0,
        check_timeout: float = 1800.0,
    ) -> None:
        self.repo_path = Path(repo_path)
        self.remote = remote
        self.binary = binary
        self.timeout = timeout
        self.check_timeout = check_timeout

    async def _git(self, *args: str, check: bool = True) -> CommandResult:
        return await run_command(self.binary, *args, cwd=self.repo_path, check=check, timeout=self.timeout)

    async def current_branch(self) -> str:
        result = await self._git("rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip()

    async def rev_parse(self, ref: str) -> str:
        result = await self._git("rev-parse", "--verify", ref)
        return result.stdout.strip()

    async def remote_tip(self, branch: str) -> str | None:
        result = await self._git("ls-remote", "--heads", self.remote, f"refs/heads/{branch}")
        for line in result.stdout.splitlines():
            sha, _, ref = line.partition("\t")
            if ref.strip() == f"refs/heads/{branch}":
                return sha.strip()
        return None

    async def checkout(self, ref: str) -> None:
        log.info("git_checkout", ref=ref)
        await self._git("checkout", ref)

    async def pull(self, branch: str) -> None:
        log.info("git_pull", remote=self.remote, branch=branch)
        await self._git("pull", "--ff-only", self.remote, branch)

    async def create_branch(self, name: str, start_point: str) -> None:
        log.info("git_create_branch", branch=name, start_point=start_point)
        await self._git("checkout", "-b", name, start_point)

    async def delete_branch(self, name: str, remote: bool = False) -> None:
        log.info("git_delete_branch", branch=name, remote=remote)
        if remote:
            await self._git("push", self.remote, "--delete", name)
        else:
            await self._git("branch", "-D", name)

    async def list_branches(self, remote: bool = False) -> list[str]:
        namespace = f"refs/remotes/{self.remote}" if remote else "refs/heads"
        result = await self._git("for-each-ref", "--format=%(refname)", namespace)
        prefix = namespace + "/"
        branches = []
        for line in result.stdout.splitlines():
            ref = line.strip()
            if not ref.startswith(prefix):
                continue
            name = ref[len(prefix):]
            if name != "HEAD":
                branches.append(name)
        return branches

    async def add(self, paths: list[str]) -> None:
        await self._git("add", "--", *paths)

    async def commit(self, message: str) -> str:
        await self._git("commit", "-m", message)
        return await self.rev_parse("HEAD")

    async def fetch(self) -> None:
        log.info("git_fetch", remote=self.remote)
        await self._git("fetch", "--prune", self.remote)

    async def rebase(self, onto: str) -> None:
        log.info("git_rebase", onto=onto)
        result = await self._git("rebase", onto, check=False)
        if result.ok:
            return
        if await self.rebase_in_progress():
            conflicts = await self._git("diff", "--name-only", "--diff-filter=U")
            raise RebaseConflictError(onto, [f for f in conflicts.stdout.splitlines() if f.strip()])
        raise ExternalCallError(
            f"'git rebase {onto}' failed",
            command=result.args,
            returncode=result.returncode,
            stderr=result.stderr or result.stdout,
        )

    async def rebase_continue(self) -> None:
        await run_command(
            self.binary,
            "-c",
            "core.editor=true",
            "rebase",
            "--continue",
            cwd=self.repo_path,
            timeout=self.timeout,
        )

    async def rebase_abort(self) -> None:
        await self._git("rebase", "--abort")

    async def rebase_in_progress(self) -> bool:
        for marker in ("rebase-merge", "rebase-apply"):
            result = await self._git("rev-parse", "--git-path", marker)
            path = Path(result.stdout.strip())
            if not path.is_absolute():
                path = self.repo_path / path
            if path.exists():
                return True
        return False

    async def push(
        self,
        branch: str,
        set_upstream: bool = False,
        force_with_lease: str | None = None,
    ) -> None:
        args = ["push"]
        if set_upstream:
            args.append("--set-upstream")
        if force_with_lease is not None:
            args.append(f"--force-with-lease={branch}:{force_with_lease}")
        args.extend([self.remote, branch])

        log.info("git_push", branch=branch, lease=force_with_lease)
        result = await self._git(*args, check=False)
        if result.ok:
            return

        output = (result.stderr or result.stdout).lower()
        if force_with_lease is not None and _LEASE_REJECTED_MARKER in output:
            raise LeaseRejectedError(f"{self.remote}/{branch}", force_with_lease)
        raise ExternalCallError(
            f"'git {' '.join(args)}' failed",
            command=result.args,
            returncode=result.returncode,
            stderr=result.stderr or result.stdout,
        )

    async def log(self, base: str, head: str = "HEAD") -> list[Commit]:
        result = await self._git("log", "--reverse", "--name-only", _LOG_FORMAT, f"{base}..{head}")
        return parse_log(result.stdout)

    async def changed_files(self, base: str, head: str = "HEAD") -> list[str]:
        result = await self._git("diff", "--name-only", f"{base}...{head}")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def is_clean(self) -> bool:
        result = await self._git("status", "--porcelain")
        return not result.stdout.strip()

    async def run_check(self, command: str) -> int:
        log.info("verification_started", command=command)
        result = await run_shell_command(command, cwd=self.repo_path, check=False, timeout=self.check_timeout)
        log.info("verification_finished", command=command, returncode=result.returncode)
        return result.returncode


def parse_log(output: str) -> list[Commit]:
    """Parse ``git log`` output produced with the module's record format."""
    commits = []
    for record in output.split(_RECORD):
        if not record.strip():
            continue
        fields = record.split(_FIELD)
        if len(fields) < 3:
            continue
        files_block = fields[3] if len(fields) > 3 else ""
        commits.append(
            Commit(
                sha=fields[0].strip(),
                parents=fields[1].split(),
                message=fields[2].strip(),
                files=[line.strip() for line in files_block.splitlines() if line.strip()],
            )
        )
    return commits
