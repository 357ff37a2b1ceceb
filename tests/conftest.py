"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from repo_warden.adapters.base import IssueHostClient, VersionControlClient
from repo_warden.config.settings import WardenSettings
from repo_warden.engine.state_manager import StateManager
from repo_warden.enums import CIState, ReviewDecision
from repo_warden.models.domain import CIRun, Commit, Issue, IssueState, PullRequest

TRUNK_SHA = "a" * 40
HEAD_SHA = "b" * 40


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Temporary state directory."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def state_manager(temp_state_dir: Path) -> StateManager:
    """StateManager instance with temp directory."""
    return StateManager(temp_state_dir)


@pytest.fixture
def mock_settings(tmp_path: Path) -> WardenSettings:
    """Settings pointing at a temporary repository with one verification command."""
    return WardenSettings(
        repository={"path": str(tmp_path), "trunk": "master"},
        verification={"commands": {"test": "pytest -q"}},
        workflow={"state_directory": str(tmp_path / "state")},
    )


@pytest.fixture
def sample_issue() -> Issue:
    """Open, well-formed issue #123."""
    return Issue(
        number=123,
        title="feat: add login flow",
        body="Users need to sign in.\n\n- [ ] login form\n- [ ] jwt check\n",
        state=IssueState.OPEN,
        url="https://github.com/acme/app/issues/123",
    )


@pytest.fixture
def sample_commit() -> Commit:
    """Conventional commit touching code and a test file."""
    return Commit(
        sha=HEAD_SHA,
        message="feat(auth): add jwt check",
        parents=[TRUNK_SHA],
        files=["src/auth.py", "tests/test_auth.py"],
    )


@pytest.fixture
def sample_pr() -> PullRequest:
    """Approved PR #7 for the login branch with green CI."""
    return PullRequest(
        number=7,
        title="feat(auth): add jwt check",
        body="Closes #123",
        head="123-feat-login",
        base="master",
        state="OPEN",
        url="https://github.com/acme/app/pull/7",
        review_decision=ReviewDecision.APPROVED,
        head_sha=HEAD_SHA,
    )


@pytest.fixture
def green_runs() -> list[CIRun]:
    """A single successful CI run."""
    return [CIRun(name="ci", state=CIState.SUCCESS, url="https://ci.example/1")]


@pytest.fixture
def mock_git() -> AsyncMock:
    """Version-control client mock with a clean, in-sync repository."""
    git = AsyncMock(spec=VersionControlClient)
    git.is_clean.return_value = True
    git.current_branch.return_value = "master"
    git.rev_parse.return_value = TRUNK_SHA
    git.remote_tip.return_value = TRUNK_SHA
    git.list_branches.return_value = ["master"]
    git.log.return_value = []
    git.changed_files.return_value = []
    git.rebase_in_progress.return_value = False
    git.run_check.return_value = 0
    return git


@pytest.fixture
def mock_host(sample_issue: Issue) -> AsyncMock:
    """Issue host mock serving ``sample_issue``."""
    host = AsyncMock(spec=IssueHostClient)
    host.view_issue.return_value = sample_issue
    host.find_pull_request.return_value = None
    host.pull_request_checks.return_value = []
    return host
