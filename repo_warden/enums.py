"""Enumerations for workflow phases, change types and gate outcomes."""

from enum import Enum


class Phase(str, Enum):
    """The eight ordered phases a task moves through.

    Transitions are strictly forward. ``CLEANUP`` is terminal and loops
    back to ``SYNC`` for the next task.
    """

    SYNC = "sync"
    BRANCH = "branch"
    COMMIT = "commit"
    VERIFY = "verify"
    PR = "pr"
    REVIEW = "review"
    MERGE = "merge"
    CLEANUP = "cleanup"

    def __str__(self) -> str:
        return self.value

    @property
    def order(self) -> int:
        """Zero-based position of the phase in the workflow."""
        return list(Phase).index(self)

    @property
    def next(self) -> "Phase":
        """Phase entered when this phase's gate passes."""
        phases = list(Phase)
        return phases[(self.order + 1) % len(phases)]

    @property
    def label(self) -> str:
        """Display name used in reports."""
        return "PR" if self == Phase.PR else self.value.capitalize()


class IssueType(str, Enum):
    """Change types allowed in issue titles and branch names."""

    FEAT = "feat"
    FIX = "fix"
    CHORE = "chore"
    REFACTOR = "refactor"
    DOCS = "docs"

    def __str__(self) -> str:
        return self.value


class ViolationKind(str, Enum):
    """Taxonomy of gate failures.

    - FORMAT and MISSING_ARTIFACT are fixed locally and re-validated.
    - STATE_MISMATCH needs manual reconciliation (conflicts, diverged refs).
    - EXTERNAL_CALL is fatal for the current attempt; tool output is verbatim.
    - POLICY covers rule breaches such as merge commits or red CI.
    """

    FORMAT = "FormatViolation"
    MISSING_ARTIFACT = "MissingArtifact"
    STATE_MISMATCH = "StateMismatch"
    EXTERNAL_CALL = "ExternalCallFailure"
    POLICY = "PolicyViolation"

    def __str__(self) -> str:
        return self.value

    @property
    def locally_recoverable(self) -> bool:
        """Whether the user can fix this by editing and re-validating."""
        return self in (ViolationKind.FORMAT, ViolationKind.MISSING_ARTIFACT)


class ReviewDecision(str, Enum):
    """Aggregate review decision on a pull request."""

    PENDING = "pending"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes-requested"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_host(cls, raw: str | None) -> "ReviewDecision":
        """Normalize the host's ``reviewDecision`` field.

        ``gh`` reports ``APPROVED``, ``CHANGES_REQUESTED``,
        ``REVIEW_REQUIRED`` or an empty string.
        """
        normalized = (raw or "").strip().lower().replace("_", "-")
        if normalized == "approved":
            return cls.APPROVED
        if normalized == "changes-requested":
            return cls.CHANGES_REQUESTED
        return cls.PENDING


class CIState(str, Enum):
    """State of a single CI run."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_host(cls, raw: str | None) -> "CIState":
        """Normalize a check bucket / run conclusion reported by the host.

        ``gh pr checks --json bucket`` yields pass/fail/pending/skipping/cancel;
        ``gh run list`` conclusions are success/failure/cancelled/... or
        empty while the run is in progress.
        """
        normalized = (raw or "").strip().lower()
        if normalized in ("pass", "success", "skipping", "skipped", "neutral"):
            return cls.SUCCESS
        if normalized in ("fail", "failure", "cancel", "cancelled", "timed_out", "action_required", "error"):
            return cls.FAILURE
        return cls.PENDING


class TaskStatus(str, Enum):
    """Lifecycle of a persisted task."""

    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    def __str__(self) -> str:
        return self.value
