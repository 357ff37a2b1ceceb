"""Core domain models for the policy engine.

Key Models:
    - Issue: Issue on the hosting service
    - Branch: Task branch named ``<issue>-<type>-<slug>``
    - Commit: One commit of the branch history
    - PullRequest: Pull request linking branch and issue
    - CIRun: CI run attached to a pull request
    - Violation / GateResult: Gate evaluation outcome
    - GateContext: Input handed to the validator

Example:
    >>> from repo_warden.models import Commit, GateContext
    >>> ctx = GateContext(commits=[Commit(sha="ab12", message="fix bug")])
"""

from repo_warden.models.domain import (
    Branch,
    CIRun,
    Commit,
    GateContext,
    GateResult,
    Issue,
    IssueState,
    PullRequest,
    Violation,
)

__all__ = [
    "Branch",
    "CIRun",
    "Commit",
    "GateContext",
    "GateResult",
    "Issue",
    "IssueState",
    "PullRequest",
    "Violation",
]
