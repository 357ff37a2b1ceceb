"""Workflow policy: rule registry, action validator and advisory heuristics.

Example:
    >>> from repo_warden.policy import ActionValidator
    >>> ActionValidator().check_branch_name("12-feat-abc").passed
    True
"""

from repo_warden.policy.advisory import SplitRecommendation, recommend_split, slugify, suggest_branch_name
from repo_warden.policy.rules import (
    BRANCH_NAME_PATTERN,
    COMMIT_MESSAGE_PATTERN,
    ISSUE_REFERENCE_PATTERN,
    ISSUE_TITLE_PATTERN,
    Rule,
    RuleRegistry,
    build_default_registry,
)
from repo_warden.policy.validator import ActionValidator

__all__ = [
    "ActionValidator",
    "BRANCH_NAME_PATTERN",
    "COMMIT_MESSAGE_PATTERN",
    "ISSUE_REFERENCE_PATTERN",
    "ISSUE_TITLE_PATTERN",
    "Rule",
    "RuleRegistry",
    "SplitRecommendation",
    "build_default_registry",
    "recommend_split",
    "slugify",
    "suggest_branch_name",
]
