"""Custom exception hierarchy for the repo-warden policy engine.

Gate failures are not exceptions: they are reported as ``Violation`` values
inside a ``GateResult``. Exceptions are reserved for conditions that stop a
phase attempt outright, such as a failing external command or a diverged ref.
The orchestrator converts them into violations before blocking the task.

Exception Hierarchy:
    RepoWardenError (base)
    ├── ConfigurationError
    ├── WorkflowError
    │   ├── PhaseTransitionError
    │   └── TaskNotFoundError
    ├── ExternalCallError
    └── StateMismatchError
        ├── RebaseConflictError
        └── LeaseRejectedError

Example Usage:
    >>> from repo_warden.exceptions import ExternalCallError
    >>> try:
    ...     await git.fetch()
    ... except ExternalCallError as e:
    ...     print(e.stderr)
"""

from collections.abc import Sequence


class RepoWardenError(Exception):
    """Base exception for all repo-warden errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(RepoWardenError):
    """Configuration-related errors.

    Examples:
        - Configuration file not found
        - Invalid YAML syntax
        - Unknown or invalid configuration values
    """

    pass


class WorkflowError(RepoWardenError):
    """Workflow execution errors (state machine misuse, missing task state)."""

    pass


class PhaseTransitionError(WorkflowError):
    """A gate result was applied to a phase that is not the current one.

    Attributes:
        current: Phase the task is in
        attempted: Phase the result was produced for
    """

    def __init__(self, current: str, attempted: str) -> None:
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot apply a {attempted} gate result while the task is in the {current} phase")


class TaskNotFoundError(WorkflowError):
    """No persisted task exists for the requested issue."""

    def __init__(self, issue_number: int) -> None:
        self.issue_number = issue_number
        super().__init__(f"No task recorded for issue #{issue_number}")


class ExternalCallError(RepoWardenError):
    """An external command (git, gh, a verification command) failed.

    The underlying tool's output is kept verbatim so it can be shown to
    the user unchanged.

    Attributes:
        command: The argument vector that was executed
        returncode: Process exit code (None when the process never ran or timed out)
        stderr: Raw standard error of the command
    """

    def __init__(
        self,
        message: str,
        command: Sequence[str] | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.command = list(command) if command else []
        self.returncode = returncode
        self.stderr = stderr

        full_message = message
        if returncode is not None:
            full_message = f"{message} (exit {returncode})"
        if stderr.strip():
            full_message = f"{full_message}\n{stderr.strip()}"

        super().__init__(full_message)
        self.message = full_message


class StateMismatchError(RepoWardenError):
    """Local and remote state disagree and a human has to reconcile them.

    Attributes:
        hint: Optional suggestion for manual resolution
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        self.hint = hint
        full_message = message
        if hint:
            full_message = f"{message}\nHint: {hint}"
        super().__init__(full_message)
        self.message = full_message


class RebaseConflictError(StateMismatchError):
    """A rebase stopped on conflicting files.

    Conflicts are never resolved automatically; the repository is left
    mid-rebase so the user can fix the files and continue.

    Attributes:
        files: Paths reported as conflicting
    """

    def __init__(self, onto: str, files: Sequence[str] | None = None) -> None:
        self.onto = onto
        self.files = list(files or [])
        listing = ", ".join(self.files) if self.files else "see git status"
        super().__init__(
            f"Rebase onto {onto} stopped on conflicts: {listing}",
            hint="resolve the files, run 'git rebase --continue', then 'warden resume'",
        )


class LeaseRejectedError(StateMismatchError):
    """A compare-and-swap on a remote ref failed.

    Raised when a force-with-lease push is rejected or the trunk tip moved
    after it was observed; the phase must restart from fetch.

    Attributes:
        ref: The contended ref
        expected: Tip that was observed
        actual: Tip found on the remote, if known
    """

    def __init__(self, ref: str, expected: str, actual: str | None = None) -> None:
        self.ref = ref
        self.expected = expected
        self.actual = actual
        detail = f"{ref} moved since it was observed (expected {expected[:12]}"
        if actual:
            detail += f", found {actual[:12]}"
        detail += ")"
        super().__init__(detail, hint="run 'warden resume' to fetch, rebase and try again")
