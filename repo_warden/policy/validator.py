"""
Action validator: evaluate a phase's gate against a context.

The validator is a pure function of its inputs. It never talks to git or
the hosting service and never mutates the context, so re-running it on an
unchanged context always yields the same result. All violations are
collected (not fail-fast) so a developer can fix everything in one pass.

Example:
    >>> validator = ActionValidator()
    >>> result = validator.check_commit_message("fix bug")
    >>> result.passed
    False
    >>> [str(v.kind) for v in result.violations]
    ['FormatViolation']
"""

import structlog

from repo_warden.enums import Phase
from repo_warden.models.domain import GateContext, GateResult, Issue, IssueState
from repo_warden.policy.rules import RuleRegistry, build_default_registry

log = structlog.get_logger(__name__)


class ActionValidator:
    """Check proposed actions against the rule registry.

    Attributes:
        registry: Rules to evaluate, keyed by phase
    """

    def __init__(self, registry: RuleRegistry | None = None) -> None:
        self.registry = registry or build_default_registry()

    def check(self, phase: Phase, context: GateContext) -> GateResult:
        """Evaluate every rule registered for ``phase``.

        Args:
            phase: Phase whose gate to evaluate
            context: Data the phase's rules need

        Returns:
            GateResult listing every violation; ``passed`` when empty.
        """
        phase = Phase(phase)
        violations = self.registry.validate(phase, context)
        result = GateResult(phase=phase, violations=tuple(violations))
        log.debug(
            "gate_checked",
            phase=phase.value,
            passed=result.passed,
            violations=[v.rule for v in violations],
        )
        return result

    def check_issue_title(self, title: str) -> GateResult:
        """Validate a candidate issue title only."""
        return self._check_only(Phase.SYNC, GateContext(issue_title=title), ["issue-title-format"])

    def check_new_issue(self, title: str, body: str) -> GateResult:
        """Validate an issue before it is created: title format and checklist."""
        issue = Issue(number=0, title=title, body=body, state=IssueState.OPEN)
        return self._check_only(
            Phase.SYNC,
            GateContext(issue=issue),
            ["issue-title-format", "issue-acceptance-criteria"],
        )

    def check_branch_name(self, name: str, issue_number: int | None = None) -> GateResult:
        """Validate a branch name, and its issue prefix when ``issue_number`` is known."""
        context = GateContext(branch_name=name, issue_number=issue_number)
        return self._check_only(Phase.BRANCH, context, ["branch-name-format", "branch-issue-match"])

    def check_commit_message(self, message: str) -> GateResult:
        """Validate a single commit message (subject line)."""
        return self.check(Phase.COMMIT, GateContext(commit_messages=[message]))

    def check_pull_request(self, title: str, body: str, issue_number: int | None = None) -> GateResult:
        """Validate PR title and body before the PR is opened."""
        return self.check(Phase.PR, GateContext(pr_title=title, pr_body=body, issue_number=issue_number))

    def _check_only(self, phase: Phase, context: GateContext, rules: list[str]) -> GateResult:
        violations = self.registry.validate(phase, context, only=rules)
        return GateResult(phase=phase, violations=tuple(violations))
