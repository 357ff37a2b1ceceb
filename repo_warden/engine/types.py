"""Type definitions for persisted task state.

Each task (one issue driven through the phases) is stored as one JSON file
in the state directory. These TypedDicts describe that schema so state
dictionary access can be type checked.

Example:
    A task blocked at the Commit phase::

        state: TaskState = {
            "task_id": "task-123",
            "issue_number": 123,
            "status": "blocked",
            "created_at": "2024-01-15T10:30:00+00:00",
            "updated_at": "2024-01-15T10:45:00+00:00",
            "branch": "123-feat-login",
            "pr_number": None,
            "machine": {"phase": "commit", "blocked": True, ...},
            "actions": {"branch": {"at": "...", "created": True}},
            "metadata": {},
        }
"""

from typing import Any, NotRequired, TypedDict


class ActionRecord(TypedDict):
    """Record of a phase's mutating action having been performed."""

    at: str
    """ISO 8601 timestamp of the action."""

    data: NotRequired[dict[str, Any]]
    """Action-specific details (created PR number, merged head sha, ...)."""


class TaskState(TypedDict):
    """Persisted state for one task."""

    task_id: str
    """``task-<issue number>``; also the state file stem."""

    issue_number: int

    status: str
    """One of the TaskStatus values: in_progress, blocked, completed, abandoned."""

    created_at: str
    updated_at: str

    branch: str | None
    """Task branch name, ``<issue>-<type>-<slug>``."""

    pr_number: int | None
    """Pull request opened in the PR phase."""

    machine: dict[str, Any]
    """``PhaseStateMachine.to_dict()`` output."""

    actions: dict[str, ActionRecord]
    """Mutating actions already taken, keyed by phase value."""

    metadata: dict[str, Any]
    """Free-form options such as PR title/body overrides."""

    error: NotRequired[str]
    """Message of the last adapter failure, if any."""
