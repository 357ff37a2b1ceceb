"""Advisory heuristics for human judgement calls.

Nothing here gates a phase. ``recommend_split`` only suggests when a task
looks like it should be split into several issues, and
``suggest_branch_name`` proposes a conforming branch name; the developer
decides.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from repo_warden.enums import IssueType
from repo_warden.models.domain import Commit, Issue

# Commit types that describe the intent of a change, as opposed to
# supporting work (tests, docs, formatting, chores) that rides along with it.
INTENT_TYPES = ("feat", "fix", "refactor")
ISSUE_TYPES = tuple(t.value for t in IssueType)


@dataclass(frozen=True)
class SplitRecommendation:
    """Outcome of the split heuristic."""

    split: bool
    reasons: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        if not self.split:
            return "Scope looks focused; no split suggested."
        return "Consider splitting this work into separate issues:\n" + "\n".join(f"  - {r}" for r in self.reasons)


def recommend_split(
    issue: Issue,
    commits: Sequence[Commit] = (),
    changed_files: Sequence[str] = (),
    file_threshold: int = 20,
    criteria_threshold: int = 6,
    area_threshold: int = 3,
) -> SplitRecommendation:
    """Suggest whether a task should be split into several issues.

    Args:
        issue: The task's issue
        commits: Branch commits so far
        changed_files: Files changed on the branch
        file_threshold: Changed-file count above which a split is suggested
        criteria_threshold: Checklist size above which a split is suggested
        area_threshold: Number of distinct top-level directories above
            which a split is suggested

    Returns:
        SplitRecommendation with the reasons that triggered it.
    """
    reasons: list[str] = []

    intents = sorted({c.type for c in commits if c.type in INTENT_TYPES})
    if len(intents) > 1:
        reasons.append(f"commits mix several change intents ({', '.join(intents)})")

    criteria = issue.checklist_items
    if len(criteria) > criteria_threshold:
        reasons.append(f"issue lists {len(criteria)} acceptance criteria (more than {criteria_threshold})")

    if len(changed_files) > file_threshold:
        reasons.append(f"{len(changed_files)} files changed (more than {file_threshold})")

    areas = {PurePosixPath(path).parts[0] for path in changed_files if len(PurePosixPath(path).parts) > 1}
    if len(areas) > area_threshold:
        reasons.append(f"changes span {len(areas)} top-level areas ({', '.join(sorted(areas))})")

    return SplitRecommendation(split=bool(reasons), reasons=reasons)


_SLUG_JUNK = re.compile(r"[^a-z0-9]+")
SLUG_MAX_LENGTH = 30


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Lower-case ``text`` and collapse everything but ``[a-z0-9]`` to single dashes."""
    slug = _SLUG_JUNK.sub("-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-")


def suggest_branch_name(issue: Issue) -> str | None:
    """Derive ``<issue>-<type>-<slug>`` from an issue title.

    Returns:
        The suggested name, or None when the title has no valid type prefix
        or too little text to build a slug.
    """
    issue_type = issue.type_prefix
    if issue_type not in ISSUE_TYPES:
        return None
    _, _, subject = issue.title.partition(": ")
    slug = slugify(subject)
    if len(slug) < 3:
        return None
    return f"{issue.number}-{issue_type}-{slug}"
