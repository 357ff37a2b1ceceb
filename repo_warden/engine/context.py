"""Execution context for phase stages.

This module provides the TaskContext dataclass that carries one task's
identifiers and options through the phase stages, and lets a stage's
``inspect`` hand values to its own ``act``.
"""

from dataclasses import dataclass, field
from typing import Any

from repo_warden.engine.types import TaskState
from repo_warden.models.domain import Issue


@dataclass
class TaskContext:
    """Context passed through the phase stages.

    Attributes:
        issue_number: The issue the task drives (required)
        trunk: Trunk branch name
        remote: Remote name
        branch: Task branch name, once known
        pr_number: Pull request number, once opened
        issue: Issue as last fetched from the host
        pr_title: PR title override (defaults to the first commit subject)
        pr_body: PR body override (defaults to the rendered template)
        stage_outputs: Values a stage's inspect step leaves for its act step
        dry_run: If True, stages inspect without mutating anything
    """

    issue_number: int
    trunk: str = "master"
    remote: str = "origin"
    branch: str | None = None
    pr_number: int | None = None
    issue: Issue | None = None
    pr_title: str | None = None
    pr_body: str | None = None
    stage_outputs: dict[str, Any] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def trunk_ref(self) -> str:
        """Remote-tracking ref of the trunk, e.g. ``origin/master``."""
        return f"{self.remote}/{self.trunk}"

    def get_stage_output(self, stage: str) -> Any | None:
        """Get output recorded by a stage."""
        return self.stage_outputs.get(stage)

    def set_stage_output(self, stage: str, output: Any) -> None:
        """Record output from a stage."""
        self.stage_outputs[stage] = output

    @classmethod
    def from_state(
        cls,
        state: TaskState,
        trunk: str,
        remote: str,
        dry_run: bool = False,
    ) -> "TaskContext":
        """Build the context for a persisted task."""
        metadata = state.get("metadata", {})
        return cls(
            issue_number=state["issue_number"],
            trunk=trunk,
            remote=remote,
            branch=state.get("branch"),
            pr_number=state.get("pr_number"),
            pr_title=metadata.get("pr_title"),
            pr_body=metadata.get("pr_body"),
            dry_run=dry_run,
        )
