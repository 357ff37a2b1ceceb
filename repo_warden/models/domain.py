"""
Domain models for the policy engine.

This module contains the data classes representing the entities a task
touches on its way through the workflow (issues, branches, commits, pull
requests, CI runs) and the values produced by gate evaluation (violations,
gate results, gate contexts). They are the normalized internal
representation, converted from ``git`` and ``gh`` output by the adapters.

Example:
    Building the context for a commit gate::

        context = GateContext(
            issue_number=123,
            branch_name="123-feat-login",
            commits=[Commit(sha="ab12", message="feat(auth): add jwt check")],
        )
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from repo_warden.enums import CIState, Phase, ReviewDecision, ViolationKind

_CHECKLIST_ITEM = re.compile(r"^\s*[-*] \[[ xX]\] \S", re.MULTILINE)
_BRANCH_ISSUE_PREFIX = re.compile(r"^([0-9]+)-")


class IssueState(str, Enum):
    """Enumeration of possible issue states."""

    OPEN = "open"
    """Issue is active and awaiting resolution."""

    CLOSED = "closed"
    """Issue has been resolved, normally by its linked PR merging."""


@dataclass
class Issue:
    """Represents an issue on the hosting service.

    Example:
        Converting from ``gh issue view --json``::

            issue = Issue(
                number=data["number"],
                title=data["title"],
                body=data.get("body") or "",
                state=IssueState(data["state"].lower()),
            )
    """

    number: int
    """Human-readable issue number (e.g., #42)."""

    title: str
    """Issue title; must carry a type prefix such as ``feat:``."""

    body: str
    """Markdown description; acceptance criteria are checklist items."""

    state: IssueState
    """Current state of the issue (open or closed)."""

    url: str = ""
    """Web URL to view the issue."""

    labels: list[str] = field(default_factory=list)
    """Label names attached to the issue."""

    @property
    def checklist_items(self) -> list[str]:
        """Checklist lines (``- [ ] ...`` / ``- [x] ...``) found in the body."""
        return [match.group(0).strip() for match in _CHECKLIST_ITEM.finditer(self.body)]

    @property
    def type_prefix(self) -> str | None:
        """Change type from the ``<type>: `` title prefix, if present."""
        head, sep, _ = self.title.partition(": ")
        return head if sep else None


@dataclass
class Branch:
    """Represents a Git branch owned by exactly one issue."""

    name: str
    """Branch name without the ``refs/heads/`` prefix."""

    sha: str = ""
    """Commit the branch currently points to."""

    @property
    def issue_number(self) -> int | None:
        """Issue number encoded in the ``<issue>-<type>-<slug>`` name."""
        return issue_number_from_branch(self.name)


@dataclass
class Commit:
    """A single commit in a branch's history."""

    sha: str
    """Full commit SHA."""

    message: str
    """Full commit message; the first line is the subject."""

    parents: list[str] = field(default_factory=list)
    """Parent SHAs. More than one parent marks a merge commit."""

    files: list[str] = field(default_factory=list)
    """Paths changed by this commit, relative to the repository root."""

    @property
    def subject(self) -> str:
        """First line of the message."""
        return self.message.split("\n", 1)[0]

    @property
    def is_merge(self) -> bool:
        """Whether this is a merge commit."""
        return len(self.parents) > 1

    @property
    def type(self) -> str | None:
        """Conventional-commit type of the subject (text before ``(``)."""
        head, sep, _ = self.subject.partition("(")
        return head if sep else None


@dataclass
class CIRun:
    """A CI run (or check) attached to a pull request."""

    name: str
    """Workflow or check name."""

    state: CIState
    """Normalized state of the run."""

    url: str = ""
    """Link to the run's details page."""

    run_id: int | None = None
    """Host run identifier, when known (needed to watch the run)."""


@dataclass
class PullRequest:
    """Represents a pull request linking a branch to its issue.

    The PR references its branch and issue by identifier only; it does not
    own them.
    """

    number: int
    """PR number (e.g., #123)."""

    title: str
    """PR title; follows the commit-message pattern."""

    body: str
    """PR description; must contain a ``Closes #N`` reference."""

    head: str
    """Source branch name."""

    base: str
    """Target branch name (the trunk)."""

    state: str = "OPEN"
    """Host state: OPEN, CLOSED or MERGED."""

    url: str = ""
    """Web URL of the pull request."""

    review_decision: ReviewDecision = ReviewDecision.PENDING
    """Aggregate review decision."""

    head_sha: str = ""
    """Commit the PR head points to."""

    ci_runs: list[CIRun] = field(default_factory=list)
    """CI runs reported for the head commit."""

    @property
    def merged(self) -> bool:
        """Whether the PR reached its terminal MERGED state."""
        return self.state.upper() == "MERGED"

    @property
    def closed_unmerged(self) -> bool:
        """Whether the PR was closed without merging."""
        return self.state.upper() == "CLOSED"


@dataclass(frozen=True)
class Violation:
    """One failed rule, reported to the user as-is."""

    kind: ViolationKind
    """Taxonomy bucket of the failure."""

    rule: str
    """Name of the rule that failed."""

    message: str
    """Human-readable explanation."""

    subject: str | None = None
    """The offending candidate (commit sha, file, run name), if any."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "rule": self.rule,
            "message": self.message,
            "subject": self.subject,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Violation":
        return cls(
            kind=ViolationKind(data["kind"]),
            rule=data["rule"],
            message=data["message"],
            subject=data.get("subject"),
        )

    def __str__(self) -> str:
        prefix = f"[{self.kind}] {self.rule}"
        if self.subject:
            prefix += f" ({self.subject})"
        return f"{prefix}: {self.message}"


@dataclass(frozen=True)
class GateResult:
    """Outcome of evaluating one phase's gate.

    Example:
        >>> result = GateResult(Phase.COMMIT, (violation,))
        >>> result.passed
        False
    """

    phase: Phase
    """Phase the gate belongs to."""

    violations: tuple[Violation, ...] = ()
    """Every violation found, in rule registration order."""

    @property
    def passed(self) -> bool:
        """True iff no rule reported a violation."""
        return not self.violations

    @property
    def exit_code(self) -> int:
        """Process exit code for this outcome: 0 passed, 1 failed."""
        return 0 if self.passed else 1

    def kinds(self) -> set[ViolationKind]:
        return {v.kind for v in self.violations}

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "passed": self.passed,
            "violations": [v.to_dict() for v in self.violations],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GateResult":
        return cls(
            phase=Phase(data["phase"]),
            violations=tuple(Violation.from_dict(v) for v in data.get("violations", [])),
        )


@dataclass
class GateContext:
    """Everything a phase's rules may look at.

    Fields left as ``None`` were not supplied by the phase; a rule that
    needs such a field reports a MissingArtifact violation rather than
    guessing.
    """

    issue_number: int | None = None
    """Issue the task is driving."""

    issue: Issue | None = None
    """Issue as fetched from the host."""

    issue_title: str | None = None
    """Candidate issue title (set from ``issue`` when not given)."""

    branch_name: str | None = None
    """Candidate or current task branch name."""

    other_branches: list[str] | None = None
    """Other local/remote branches already claiming the same issue."""

    commits: list[Commit] | None = None
    """Branch history since the trunk, oldest first."""

    commit_messages: list[str] | None = None
    """Standalone commit messages (e.g. from a commit-msg hook)."""

    changed_files: list[str] | None = None
    """Files changed on the branch relative to the trunk."""

    check_results: dict[str, int] | None = None
    """Verification command name -> exit code."""

    pr_title: str | None = None
    """Candidate PR title."""

    pr_body: str | None = None
    """Candidate PR body."""

    pull_request: PullRequest | None = None
    """PR as fetched from the host."""

    ci_runs: list[CIRun] | None = None
    """CI runs for the PR head."""

    review_decision: ReviewDecision | None = None
    """Aggregate review decision on the PR."""

    local_trunk_sha: str | None = None
    """Tip of the local trunk branch."""

    remote_trunk_sha: str | None = None
    """Tip of the trunk on the remote."""

    working_tree_clean: bool | None = None
    """Whether ``git status`` reports no changes."""

    local_branch_exists: bool | None = None
    """Whether the task branch still exists locally (cleanup)."""

    remote_branch_exists: bool | None = None
    """Whether the task branch still exists on the remote (cleanup)."""

    extra: dict[str, Any] = field(default_factory=dict)
    """Phase-specific values for custom rules."""

    def __post_init__(self) -> None:
        if self.issue is not None:
            if self.issue_title is None:
                self.issue_title = self.issue.title
            if self.issue_number is None:
                self.issue_number = self.issue.number
        if self.pull_request is not None:
            if self.pr_title is None:
                self.pr_title = self.pull_request.title
            if self.pr_body is None:
                self.pr_body = self.pull_request.body
            if self.review_decision is None:
                self.review_decision = self.pull_request.review_decision
            if self.ci_runs is None and self.pull_request.ci_runs:
                self.ci_runs = list(self.pull_request.ci_runs)


def issue_number_from_branch(name: str) -> int | None:
    """Extract the leading issue number from a branch name."""
    match = _BRANCH_ISSUE_PREFIX.match(name)
    return int(match.group(1)) if match else None
