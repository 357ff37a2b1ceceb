"""
Declarative rule registry keyed by workflow phase.

Rules are pure functions over a ``GateContext``. Each rule reads one or more
context fields and returns a list of violations (empty when it holds). The
registry keeps rules per phase in registration order, so a gate reports its
violations in a stable, predictable order.

Rule Flavours:
    - pattern rules: full-match a regular expression against a value, or
      against every value of a list (commit subjects)
    - containment rules: search for a regular expression inside a value
      (``Closes #N`` in a PR body)
    - predicate rules: arbitrary pure checks such as "merge-commit count
      equals 0" or "set of test files is non-empty"

Missing Inputs:
    A rule declares the context fields it needs. When one of them is unset
    the rule either reports a MissingArtifact violation (``if_missing="report"``)
    or is skipped (``if_missing="skip"``). Cross-checks that relate two
    artifacts (branch vs. issue type, PR head vs. branch) use "skip" so
    that standalone format checks stay usable.

Example:
    >>> registry = build_default_registry()
    >>> violations = registry.validate(Phase.BRANCH, GateContext(branch_name="12-feat-ab"))
    >>> [v.rule for v in violations]
    ['branch-name-format']
"""

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from fnmatch import fnmatch
from pathlib import PurePosixPath
from typing import Any, Literal

from repo_warden.enums import CIState, Phase, ReviewDecision, ViolationKind
from repo_warden.models.domain import GateContext, Violation, issue_number_from_branch

# Bit-exact validation patterns
ISSUE_TITLE_PATTERN = re.compile(r"^(feat|fix|chore|refactor|docs): .{10,72}$")
BRANCH_NAME_PATTERN = re.compile(r"^[0-9]+-(feat|fix|chore|refactor|docs)-[a-z0-9-]{3,30}$")
COMMIT_MESSAGE_PATTERN = re.compile(r"^(feat|fix|docs|style|refactor|test|chore)\([a-z0-9-]+\): .{10,72}$")
ISSUE_REFERENCE_PATTERN = re.compile(r"Closes #[0-9]+")

# A trailing slash marks a directory name matched against any path segment;
# everything else is matched against the file name.
DEFAULT_TEST_FILE_PATTERNS = (
    "tests/",
    "test/",
    "__tests__/",
    "spec/",
    "test_*.py",
    "*_test.py",
    "*_test.go",
    "*.test.*",
    "*.spec.*",
    "*Test.java",
    "*Tests.cs",
)
DEFAULT_DOCS_FILE_PATTERNS = (
    "docs/",
    "doc/",
    "*.md",
    "*.rst",
    "*.adoc",
    "LICENSE",
    "AUTHORS",
)

RuleCheck = Callable[[GateContext], Iterable[Violation]]


@dataclass(frozen=True)
class Rule:
    """A named, pure validation rule.

    Attributes:
        name: Stable identifier reported in violations
        check: Function producing violations for a context
        requires: Context fields the check reads
        if_missing: What to do when a required field is unset
        kind: Violation kind used for the missing-input report
        description: One-line summary for listings
    """

    name: str
    check: RuleCheck
    requires: tuple[str, ...] = ()
    if_missing: Literal["report", "skip"] = "report"
    kind: ViolationKind = ViolationKind.FORMAT
    description: str = ""

    def evaluate(self, context: GateContext) -> list[Violation]:
        """Run the rule against ``context``."""
        missing = [name for name in self.requires if getattr(context, name, None) is None]
        if missing:
            if self.if_missing == "skip":
                return []
            return [
                Violation(
                    kind=ViolationKind.MISSING_ARTIFACT,
                    rule=self.name,
                    message=f"No {', '.join(name.replace('_', ' ') for name in missing)} supplied",
                )
            ]
        return list(self.check(context))


class RuleRegistry:
    """Holds rules per phase and evaluates them.

    The same ``Rule`` object may be registered for several phases (the
    merge-commit rule guards both Commit and Merge).
    """

    def __init__(self) -> None:
        self._rules: dict[Phase, dict[str, Rule]] = {phase: {} for phase in Phase}

    def register(self, phase: Phase, rule: Rule) -> Rule:
        """Register ``rule`` for ``phase``.

        Raises:
            ValueError: If a rule with the same name is already registered
                for that phase.
        """
        bucket = self._rules[Phase(phase)]
        if rule.name in bucket:
            raise ValueError(f"Rule {rule.name!r} already registered for phase {phase}")
        bucket[rule.name] = rule
        return rule

    def rules(self, phase: Phase) -> list[Rule]:
        """Rules registered for ``phase``, in registration order."""
        return list(self._rules[Phase(phase)].values())

    def get(self, phase: Phase, name: str) -> Rule:
        try:
            return self._rules[Phase(phase)][name]
        except KeyError:
            raise KeyError(f"No rule {name!r} registered for phase {phase}") from None

    def validate(self, phase: Phase, candidate: GateContext, only: Sequence[str] | None = None) -> list[Violation]:
        """Evaluate every rule of ``phase`` and collect all violations.

        Args:
            phase: Phase whose rules to run
            candidate: Context to validate
            only: Optional subset of rule names to run

        Returns:
            All violations, in rule registration order. Empty means pass.
        """
        violations: list[Violation] = []
        for rule in self.rules(phase):
            if only is not None and rule.name not in only:
                continue
            violations.extend(rule.evaluate(candidate))
        return violations


# ---------------------------------------------------------------------------
# Rule factories
# ---------------------------------------------------------------------------


def pattern_rule(
    name: str,
    field_name: str,
    pattern: re.Pattern[str],
    *,
    label: str,
    description: str = "",
) -> Rule:
    """Rule requiring ``field_name`` (a string or list of strings) to fully match."""

    def check(context: GateContext) -> Iterable[Violation]:
        value = getattr(context, field_name)
        values = value if isinstance(value, list) else [value]
        for candidate in values:
            if not pattern.fullmatch(candidate):
                yield Violation(
                    kind=ViolationKind.FORMAT,
                    rule=name,
                    message=f"{label} {candidate!r} does not match {pattern.pattern}",
                    subject=candidate,
                )

    return Rule(name=name, check=check, requires=(field_name,), description=description)


def contains_rule(
    name: str,
    field_name: str,
    pattern: re.Pattern[str],
    *,
    label: str,
    description: str = "",
) -> Rule:
    """Rule requiring ``pattern`` to occur somewhere in ``field_name``."""

    def check(context: GateContext) -> Iterable[Violation]:
        value = getattr(context, field_name)
        if not pattern.search(value):
            yield Violation(
                kind=ViolationKind.FORMAT,
                rule=name,
                message=f"{label} must contain {pattern.pattern}",
            )

    return Rule(name=name, check=check, requires=(field_name,), description=description)


def predicate_rule(
    name: str,
    requires: Sequence[str],
    predicate: Callable[[GateContext], bool],
    *,
    kind: ViolationKind,
    message: str | Callable[[GateContext], str],
    if_missing: Literal["report", "skip"] = "report",
    description: str = "",
) -> Rule:
    """Rule wrapping a boolean predicate; one violation when it is false."""

    def check(context: GateContext) -> Iterable[Violation]:
        if not predicate(context):
            text = message(context) if callable(message) else message
            yield Violation(kind=kind, rule=name, message=text)

    return Rule(
        name=name,
        check=check,
        requires=tuple(requires),
        if_missing=if_missing,
        kind=kind,
        description=description,
    )


# ---------------------------------------------------------------------------
# File classification
# ---------------------------------------------------------------------------


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """Whether ``path`` matches one of the file ``patterns``.

    Patterns ending in ``/`` match a directory name anywhere in the path;
    other patterns are matched against the file name.
    """
    pure = PurePosixPath(path)
    directories = pure.parts[:-1]
    for pattern in patterns:
        if pattern.endswith("/"):
            if pattern.rstrip("/") in directories:
                return True
        elif fnmatch(pure.name, pattern):
            return True
    return False


def find_test_files(paths: Iterable[str], patterns: Iterable[str] = DEFAULT_TEST_FILE_PATTERNS) -> list[str]:
    """Subset of ``paths`` that follow test-file naming conventions."""
    patterns = tuple(patterns)
    return [path for path in paths if matches_any(path, patterns)]


def referenced_issues(text: str) -> list[int]:
    """Issue numbers named by ``Closes #N`` references in ``text``."""
    return [int(match.group(0).rsplit("#", 1)[1]) for match in ISSUE_REFERENCE_PATTERN.finditer(text)]


# ---------------------------------------------------------------------------
# Concrete checks
# ---------------------------------------------------------------------------


def _commit_subjects(context: GateContext) -> Iterable[Violation]:
    candidates: list[tuple[str, str | None]] = []
    for commit in context.commits or []:
        candidates.append((commit.subject, commit.sha[:12]))
    for message in context.commit_messages or []:
        candidates.append((message.split("\n", 1)[0], None))

    for subject, sha in candidates:
        if not COMMIT_MESSAGE_PATTERN.fullmatch(subject):
            yield Violation(
                kind=ViolationKind.FORMAT,
                rule="commit-message-format",
                message=f"Commit message {subject!r} does not match {COMMIT_MESSAGE_PATTERN.pattern}",
                subject=sha or subject,
            )


def _commit_message_rule() -> Rule:
    def check(context: GateContext) -> Iterable[Violation]:
        if context.commits is None and context.commit_messages is None:
            yield Violation(
                kind=ViolationKind.MISSING_ARTIFACT,
                rule="commit-message-format",
                message="No commits or commit messages supplied",
            )
            return
        yield from _commit_subjects(context)

    return Rule(
        name="commit-message-format",
        check=check,
        description="Every commit subject is a conventional commit",
    )


def _no_merge_commits(context: GateContext) -> Iterable[Violation]:
    merges = [commit for commit in context.commits or [] if commit.is_merge]
    if merges:
        yield Violation(
            kind=ViolationKind.POLICY,
            rule="no-merge-commits",
            message=f"History contains {len(merges)} merge commit(s); rebase instead of merging",
            subject=", ".join(commit.sha[:12] for commit in merges),
        )


def _commit_type_scope(test_patterns: Sequence[str], docs_patterns: Sequence[str]) -> RuleCheck:
    def check(context: GateContext) -> Iterable[Violation]:
        for commit in context.commits or []:
            if not commit.files:
                continue
            if commit.type == "docs":
                stray = [path for path in commit.files if not matches_any(path, docs_patterns)]
                category = "documentation"
            elif commit.type == "test":
                stray = [path for path in commit.files if not matches_any(path, test_patterns)]
                category = "test"
            else:
                continue
            if stray:
                yield Violation(
                    kind=ViolationKind.POLICY,
                    rule="commit-type-scope",
                    message=(
                        f"'{commit.type}' commit also changes non-{category} files "
                        f"({', '.join(stray[:5])}); split it so each commit has one type"
                    ),
                    subject=commit.sha[:12],
                )

    return check


def _verification_passed(context: GateContext) -> Iterable[Violation]:
    for name, code in (context.check_results or {}).items():
        if code != 0:
            yield Violation(
                kind=ViolationKind.POLICY,
                rule="verification-passed",
                message=f"Verification command '{name}' exited with {code}",
                subject=name,
            )


def _ci_green(context: GateContext) -> Iterable[Violation]:
    for run in context.ci_runs or []:
        if run.state != CIState.SUCCESS:
            yield Violation(
                kind=ViolationKind.POLICY,
                rule="ci-green",
                message=f"CI run '{run.name}' is {run.state}" + (f": {run.url}" if run.url else ""),
                subject=run.name,
            )


def _trunk_in_sync(context: GateContext) -> bool:
    return context.local_trunk_sha == context.remote_trunk_sha


def _branch_type_matches(context: GateContext) -> bool:
    match = BRANCH_NAME_PATTERN.fullmatch(context.branch_name or "")
    title_match = ISSUE_TITLE_PATTERN.fullmatch(context.issue_title or "")
    if not match or not title_match:
        # Format rules already report malformed names and titles
        return True
    return match.group(1) == title_match.group(1)


def _pr_links_issue(context: GateContext) -> bool:
    references = referenced_issues(context.pr_body or "")
    return not references or context.issue_number in references


def build_default_registry(
    test_file_patterns: Sequence[str] = DEFAULT_TEST_FILE_PATTERNS,
    docs_file_patterns: Sequence[str] = DEFAULT_DOCS_FILE_PATTERNS,
) -> RuleRegistry:
    """Build the registry holding every workflow rule.

    Args:
        test_file_patterns: Patterns identifying test files
        docs_file_patterns: Patterns identifying documentation files

    Returns:
        A registry with rules for all eight phases.
    """
    registry = RuleRegistry()

    issue_title = pattern_rule(
        "issue-title-format",
        "issue_title",
        ISSUE_TITLE_PATTERN,
        label="Issue title",
        description="Issue title is '<type>: <10-72 char subject>'",
    )
    branch_name = pattern_rule(
        "branch-name-format",
        "branch_name",
        BRANCH_NAME_PATTERN,
        label="Branch name",
        description="Branch is '<issue>-<type>-<3-30 char slug>'",
    )
    pr_title = pattern_rule(
        "pr-title-format",
        "pr_title",
        COMMIT_MESSAGE_PATTERN,
        label="PR title",
        description="PR title is a conventional commit subject",
    )
    no_merges = Rule(
        name="no-merge-commits",
        check=_no_merge_commits,
        requires=("commits",),
        kind=ViolationKind.POLICY,
        description="Merge-commit count in branch history equals 0",
    )
    ci_present = predicate_rule(
        "ci-runs-present",
        ["ci_runs"],
        lambda ctx: bool(ctx.ci_runs),
        kind=ViolationKind.MISSING_ARTIFACT,
        message="No CI run reported for the pull request",
        description="At least one CI run exists",
    )
    ci_green = Rule(
        name="ci-green",
        check=_ci_green,
        requires=("ci_runs",),
        kind=ViolationKind.POLICY,
        description="Every CI run succeeded",
    )
    approved = predicate_rule(
        "review-approved",
        ["review_decision"],
        lambda ctx: ctx.review_decision == ReviewDecision.APPROVED,
        kind=ViolationKind.POLICY,
        message=lambda ctx: f"Review decision is {ctx.review_decision}, approval required",
        description="Pull request is approved",
    )

    # Phase 1: Sync
    registry.register(Phase.SYNC, issue_title)
    registry.register(
        Phase.SYNC,
        predicate_rule(
            "issue-acceptance-criteria",
            ["issue"],
            lambda ctx: bool(ctx.issue and ctx.issue.checklist_items),
            kind=ViolationKind.MISSING_ARTIFACT,
            message="Issue body has no acceptance criteria checklist ('- [ ] ...')",
            description="Issue body contains at least one checklist item",
        ),
    )
    registry.register(
        Phase.SYNC,
        predicate_rule(
            "issue-open",
            ["issue"],
            lambda ctx: bool(ctx.issue and ctx.issue.state.value == "open"),
            kind=ViolationKind.POLICY,
            message=lambda ctx: f"Issue #{ctx.issue_number} is closed",
            description="Issue is open",
        ),
    )
    registry.register(
        Phase.SYNC,
        predicate_rule(
            "trunk-in-sync",
            ["local_trunk_sha", "remote_trunk_sha"],
            _trunk_in_sync,
            kind=ViolationKind.STATE_MISMATCH,
            message=lambda ctx: (
                f"Local trunk {str(ctx.local_trunk_sha)[:12]} differs from remote "
                f"{str(ctx.remote_trunk_sha)[:12]}; reconcile before branching"
            ),
            description="Local trunk equals the remote trunk",
        ),
    )
    registry.register(
        Phase.SYNC,
        predicate_rule(
            "working-tree-clean",
            ["working_tree_clean"],
            lambda ctx: bool(ctx.working_tree_clean),
            kind=ViolationKind.STATE_MISMATCH,
            message="Working tree has uncommitted changes",
            description="No uncommitted changes",
        ),
    )

    # Phase 2: Branch
    registry.register(Phase.BRANCH, branch_name)
    registry.register(
        Phase.BRANCH,
        predicate_rule(
            "branch-issue-match",
            ["branch_name", "issue_number"],
            lambda ctx: issue_number_from_branch(ctx.branch_name or "") == ctx.issue_number,
            kind=ViolationKind.POLICY,
            message=lambda ctx: f"Branch {ctx.branch_name!r} does not belong to issue #{ctx.issue_number}",
            if_missing="skip",
            description="Branch prefix is the task's issue number",
        ),
    )
    registry.register(
        Phase.BRANCH,
        predicate_rule(
            "branch-type-match",
            ["branch_name", "issue_title"],
            _branch_type_matches,
            kind=ViolationKind.POLICY,
            message=lambda ctx: f"Branch {ctx.branch_name!r} type differs from the issue title type",
            if_missing="skip",
            description="Branch type equals the issue title type",
        ),
    )
    registry.register(
        Phase.BRANCH,
        predicate_rule(
            "single-branch-per-issue",
            ["other_branches"],
            lambda ctx: not ctx.other_branches,
            kind=ViolationKind.POLICY,
            message=lambda ctx: (
                f"Issue #{ctx.issue_number} already has branch(es): {', '.join(ctx.other_branches or [])}"
            ),
            if_missing="skip",
            description="An issue owns at most one open branch",
        ),
    )

    # Phase 3: Commit
    registry.register(
        Phase.COMMIT,
        predicate_rule(
            "commits-present",
            ["commits"],
            lambda ctx: bool(ctx.commits),
            kind=ViolationKind.MISSING_ARTIFACT,
            message="Branch has no commits ahead of the trunk",
            if_missing="skip",
            description="Branch has at least one commit",
        ),
    )
    registry.register(Phase.COMMIT, _commit_message_rule())
    # Hook checks supply bare messages without history
    registry.register(Phase.COMMIT, replace(no_merges, if_missing="skip"))
    registry.register(
        Phase.COMMIT,
        Rule(
            name="commit-type-scope",
            check=_commit_type_scope(tuple(test_file_patterns), tuple(docs_file_patterns)),
            requires=("commits",),
            if_missing="skip",
            kind=ViolationKind.POLICY,
            description="docs/test commits only touch docs/test files",
        ),
    )

    # Phase 4: Verify
    registry.register(
        Phase.VERIFY,
        predicate_rule(
            "verification-configured",
            ["check_results"],
            lambda ctx: bool(ctx.check_results),
            kind=ViolationKind.MISSING_ARTIFACT,
            message="No verification commands were run (configure verification.commands)",
            description="At least one verification command ran",
        ),
    )
    registry.register(
        Phase.VERIFY,
        Rule(
            name="verification-passed",
            check=_verification_passed,
            requires=("check_results",),
            if_missing="skip",
            kind=ViolationKind.POLICY,
            description="Every verification command exited 0",
        ),
    )
    patterns = tuple(test_file_patterns)
    registry.register(
        Phase.VERIFY,
        predicate_rule(
            "tests-added",
            ["changed_files"],
            lambda ctx: bool(find_test_files(ctx.changed_files or [], patterns)),
            kind=ViolationKind.MISSING_ARTIFACT,
            message="No test files among the changed files",
            description="Changed files include at least one test file",
        ),
    )

    # Phase 5: PR
    registry.register(Phase.PR, pr_title)
    registry.register(
        Phase.PR,
        contains_rule(
            "pr-closes-issue",
            "pr_body",
            ISSUE_REFERENCE_PATTERN,
            label="PR body",
            description="PR body contains 'Closes #N'",
        ),
    )
    registry.register(
        Phase.PR,
        predicate_rule(
            "pr-links-task-issue",
            ["pr_body", "issue_number"],
            _pr_links_issue,
            kind=ViolationKind.POLICY,
            message=lambda ctx: f"PR body closes {referenced_issues(ctx.pr_body or '')} but not #{ctx.issue_number}",
            if_missing="skip",
            description="Closing reference names the task issue",
        ),
    )
    registry.register(
        Phase.PR,
        predicate_rule(
            "pr-head-matches-branch",
            ["pull_request", "branch_name"],
            lambda ctx: ctx.pull_request is not None and ctx.pull_request.head == ctx.branch_name,
            kind=ViolationKind.POLICY,
            message=lambda ctx: (
                f"PR #{ctx.pull_request.number if ctx.pull_request else '?'} head is not {ctx.branch_name!r}"
            ),
            if_missing="skip",
            description="PR head is the task branch",
        ),
    )

    # Phase 6: Review
    registry.register(Phase.REVIEW, ci_present)
    registry.register(Phase.REVIEW, ci_green)
    registry.register(Phase.REVIEW, approved)

    # Phase 7: Merge
    registry.register(Phase.MERGE, no_merges)
    registry.register(Phase.MERGE, ci_present)
    registry.register(Phase.MERGE, ci_green)
    registry.register(Phase.MERGE, approved)
    registry.register(
        Phase.MERGE,
        predicate_rule(
            "pr-open",
            ["pull_request"],
            lambda ctx: ctx.pull_request is not None and not ctx.pull_request.closed_unmerged,
            kind=ViolationKind.POLICY,
            message="Pull request was closed without merging",
            description="Pull request is still open",
        ),
    )

    # Phase 8: Cleanup
    registry.register(
        Phase.CLEANUP,
        predicate_rule(
            "pr-merged",
            ["pull_request"],
            lambda ctx: ctx.pull_request is not None and ctx.pull_request.merged,
            kind=ViolationKind.STATE_MISMATCH,
            message="Pull request is not merged",
            description="Pull request reached MERGED",
        ),
    )
    registry.register(
        Phase.CLEANUP,
        predicate_rule(
            "issue-closed",
            ["issue"],
            lambda ctx: bool(ctx.issue and ctx.issue.state.value == "closed"),
            kind=ViolationKind.STATE_MISMATCH,
            message=lambda ctx: f"Issue #{ctx.issue_number} is still open",
            description="Issue was closed by the merge",
        ),
    )
    registry.register(
        Phase.CLEANUP,
        predicate_rule(
            "branch-deleted",
            ["local_branch_exists", "remote_branch_exists"],
            lambda ctx: not ctx.local_branch_exists and not ctx.remote_branch_exists,
            kind=ViolationKind.STATE_MISMATCH,
            message=lambda ctx: f"Branch {ctx.branch_name!r} still exists " + (
                "locally and on the remote"
                if ctx.local_branch_exists and ctx.remote_branch_exists
                else ("locally" if ctx.local_branch_exists else "on the remote")
            ),
            description="Task branch deleted locally and remotely",
        ),
    )

    return registry


def describe(registry: RuleRegistry) -> list[dict[str, Any]]:
    """Flat listing of the registry for display."""
    return [
        {"phase": phase.value, "rule": rule.name, "description": rule.description}
        for phase in Phase
        for rule in registry.rules(phase)
    ]
