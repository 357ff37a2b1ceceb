"""Async subprocess utilities for calling external tools.

Every call into ``git``, ``gh`` or a verification command goes through this
module so the failure handling is uniform:

    - explicit timeout on every call; the process is killed when it expires
    - non-zero exit (when ``check=True``), a missing executable and a timeout
      all raise ``ExternalCallError`` carrying the tool's stderr verbatim
    - nothing is retried

Example:
    >>> from repo_warden.utils.async_subprocess import run_command
    >>> result = await run_command("git", "rev-parse", "HEAD", cwd="/repo", timeout=30)
    >>> result.stdout.strip()
    '3f2a...'
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path

import structlog

from repo_warden.exceptions import ExternalCallError

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of a finished process."""

    args: tuple[str, ...]
    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def _communicate(
    process: asyncio.subprocess.Process,
    args: tuple[str, ...],
    timeout: float | None,
) -> tuple[str, str]:
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        raise ExternalCallError(f"'{' '.join(args)}' timed out after {timeout}s", command=args) from None

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")
    return stdout, stderr


async def run_command(
    *args: str,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run a command asynchronously without shell interpolation.

    Args:
        *args: Executable and arguments, e.g. ``"git", "fetch", "origin"``
        cwd: Working directory; defaults to the current directory
        check: Raise ExternalCallError when the exit code is non-zero
        timeout: Seconds before the process is killed; None waits forever
        env: Full environment for the child process (inherits when None)

    Returns:
        CommandResult with decoded stdout/stderr and the exit code.

    Raises:
        ExternalCallError: On a missing executable, a timeout, or (with
            ``check=True``) a non-zero exit code.
    """
    log.debug("command_started", args=list(args), cwd=str(cwd) if cwd else None)
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise ExternalCallError(f"Cannot execute '{args[0]}': {e}", command=args) from e

    stdout, stderr = await _communicate(process, args, timeout)
    result = CommandResult(args=args, stdout=stdout, stderr=stderr, returncode=process.returncode or 0)

    if check and not result.ok:
        raise ExternalCallError(
            f"'{' '.join(args)}' failed",
            command=args,
            returncode=result.returncode,
            stderr=stderr or stdout,
        )
    return result


async def run_shell_command(
    command: str,
    *,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
) -> CommandResult:
    """Run a shell command string (pipes, ``&&`` and variables allowed).

    Used for the configured verification commands, which are written as
    shell snippets (``make test``, ``npm run lint && npm run typecheck``).

    Args:
        command: Shell command line, passed to ``/bin/sh -c``
        cwd: Working directory
        check: Raise ExternalCallError when the exit code is non-zero
        timeout: Seconds before the process is killed

    Returns:
        CommandResult for the shell process.

    Raises:
        ExternalCallError: On timeout or (with ``check=True``) non-zero exit.
    """
    args = ("sh", "-c", command)
    log.debug("shell_command_started", command=command, cwd=str(cwd) if cwd else None)
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    stdout, stderr = await _communicate(process, args, timeout)
    result = CommandResult(args=args, stdout=stdout, stderr=stderr, returncode=process.returncode or 0)

    if check and not result.ok:
        raise ExternalCallError(
            f"'{command}' failed",
            command=args,
            returncode=result.returncode,
            stderr=stderr or stdout,
        )
    return result
