"""Phase stage implementations.

One stage per phase; each builds its gate context (``inspect``) and performs
its mutating action once the gate passed (``act``).

Available Stages:
    - SyncStage: Issue checks and trunk fast-forward
    - BranchStage: Create the task branch
    - CommitStage: Inspect the branch history
    - VerifyStage: Run the configured verification commands
    - PullRequestStage: Push and open the pull request
    - ReviewStage: CI state and review decision
    - MergeStage: Rebase-merge under a trunk lease
    - CleanupStage: Delete the merged branch

Example:
    >>> from repo_warden.engine.stages import build_stages
    >>> stages = build_stages(git, host, settings)
    >>> context = await stages[Phase.SYNC].inspect(task)
"""

from repo_warden.adapters.base import IssueHostClient, VersionControlClient
from repo_warden.config.settings import WardenSettings
from repo_warden.engine.stages.base import PhaseStage
from repo_warden.engine.stages.branch import BranchStage
from repo_warden.engine.stages.cleanup import CleanupStage
from repo_warden.engine.stages.commit import CommitStage
from repo_warden.engine.stages.merge import MergeStage
from repo_warden.engine.stages.pull_request import PullRequestStage
from repo_warden.engine.stages.review import ReviewStage
from repo_warden.engine.stages.sync import SyncStage
from repo_warden.engine.stages.verify import VerifyStage
from repo_warden.enums import Phase
from repo_warden.rendering.engine import TemplateEngine

STAGE_CLASSES: dict[Phase, type[PhaseStage]] = {
    Phase.SYNC: SyncStage,
    Phase.BRANCH: BranchStage,
    Phase.COMMIT: CommitStage,
    Phase.VERIFY: VerifyStage,
    Phase.PR: PullRequestStage,
    Phase.REVIEW: ReviewStage,
    Phase.MERGE: MergeStage,
    Phase.CLEANUP: CleanupStage,
}


def build_stages(
    git: VersionControlClient,
    host: IssueHostClient,
    settings: WardenSettings,
    templates: TemplateEngine | None = None,
) -> dict[Phase, PhaseStage]:
    """Instantiate one stage per phase."""
    templates = templates or TemplateEngine()
    return {phase: cls(git, host, settings, templates) for phase, cls in STAGE_CLASSES.items()}


__all__ = [
    "BranchStage",
    "CleanupStage",
    "CommitStage",
    "MergeStage",
    "PhaseStage",
    "PullRequestStage",
    "ReviewStage",
    "STAGE_CLASSES",
    "SyncStage",
    "VerifyStage",
    "build_stages",
]
