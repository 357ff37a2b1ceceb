"""Tests for the workflow orchestrator, end to end over mocked adapters."""

from dataclasses import replace

import pytest

from repo_warden.config.settings import WardenSettings
from repo_warden.engine.orchestrator import TaskReport, WorkflowOrchestrator, violation_from_error
from repo_warden.enums import CIState, Phase, ReviewDecision, TaskStatus, ViolationKind
from repo_warden.exceptions import (
    ExternalCallError,
    LeaseRejectedError,
    RebaseConflictError,
    StateMismatchError,
    TaskNotFoundError,
    WorkflowError,
)
from repo_warden.models.domain import CIRun, Commit, Issue, IssueState, PullRequest

TRUNK_SHA = "a" * 40
HEAD_SHA = "b" * 40
OTHER_SHA = "c" * 40
REBASED_SHA = "d" * 40
BRANCH = "123-feat-login"


class FakeRepository:
    """In-memory repository and host wired onto the adapter mocks."""

    def __init__(self, git, host, issue: Issue, commits: list[Commit], files: list[str]) -> None:
        self.issue = issue
        self.commits = commits
        self.local = ["master"]
        self.remote = {"master": TRUNK_SHA}
        self.local_trunk = TRUNK_SHA
        self.current = "master"
        self.pr: PullRequest | None = None
        self.runs = [CIRun(name="ci", state=CIState.SUCCESS)]
        self.trunk_moves_on_push = False
        self.head = HEAD_SHA

        git.current_branch.side_effect = lambda: self.current
        git.rev_parse.side_effect = self.rev_parse
        git.remote_tip.side_effect = lambda branch: self.remote.get(branch)
        git.list_branches.side_effect = self.list_branches
        git.checkout.side_effect = self.checkout
        git.create_branch.side_effect = self.create_branch
        git.delete_branch.side_effect = self.delete_branch
        git.pull.side_effect = self.pull
        git.push.side_effect = self.push
        git.log.side_effect = lambda base, head="HEAD": list(self.commits)
        git.changed_files.return_value = files

        host.view_issue.side_effect = lambda number: self.issue
        host.find_pull_request.side_effect = lambda head: self.pr
        host.create_pull_request.side_effect = self.create_pull_request
        host.view_pull_request.side_effect = lambda number: self.pr
        host.pull_request_checks.side_effect = lambda number: list(self.runs)
        host.merge_pull_request.side_effect = self.merge

    def rev_parse(self, ref: str) -> str:
        if ref == "master":
            return self.local_trunk
        if ref == "origin/master":
            return self.remote["master"]
        return self.head

    def list_branches(self, remote: bool = False) -> list[str]:
        return list(self.remote) if remote else list(self.local)

    def checkout(self, ref: str) -> None:
        self.current = ref

    def create_branch(self, name: str, start_point: str) -> None:
        self.local.append(name)
        self.current = name

    def delete_branch(self, name: str, remote: bool = False) -> None:
        if remote:
            self.remote.pop(name)
        else:
            self.local.remove(name)

    def pull(self, branch: str) -> None:
        self.local_trunk = self.remote[branch]

    def push(self, branch: str, set_upstream: bool = False, force_with_lease: str | None = None) -> None:
        self.remote[branch] = self.head
        if self.pr is not None and self.pr.head == branch:
            self.pr.head_sha = self.head
        if force_with_lease is not None and self.trunk_moves_on_push:
            # Another task merges between our push and the trunk re-check
            self.trunk_moves_on_push = False
            self.remote["master"] = OTHER_SHA

    def create_pull_request(self, title: str, body: str, head: str, base: str) -> PullRequest:
        self.pr = PullRequest(
            number=7,
            title=title,
            body=body,
            head=head,
            base=base,
            state="OPEN",
            review_decision=ReviewDecision.APPROVED,
            head_sha=self.head,
        )
        return self.pr

    def merge(self, number: int, head_sha: str, delete_branch: bool = False) -> None:
        self.pr.state = "MERGED"
        self.issue = replace(self.issue, state=IssueState.CLOSED)
        self.remote["master"] = head_sha


@pytest.fixture
def commits() -> list[Commit]:
    return [
        Commit(
            sha=HEAD_SHA,
            message="feat(auth): add jwt check",
            parents=[TRUNK_SHA],
            files=["src/auth.py", "tests/test_auth.py"],
        )
    ]


@pytest.fixture
def repo(mock_git, mock_host, sample_issue, commits) -> FakeRepository:
    return FakeRepository(mock_git, mock_host, sample_issue, commits, ["src/auth.py", "tests/test_auth.py"])


@pytest.fixture
def orchestrator(mock_settings, mock_git, mock_host, state_manager) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(mock_settings, mock_git, mock_host, state_manager)


# =============================================================================
# Happy path
# =============================================================================


@pytest.mark.asyncio
async def test_full_cycle_completes(orchestrator, repo, mock_git, mock_host, state_manager):
    report = await orchestrator.start(123, branch=BRANCH)

    assert [r.phase for r in report.results] == list(Phase)
    assert all(r.passed for r in report.results)
    assert report.status == TaskStatus.COMPLETED
    assert report.phase == Phase.SYNC
    assert report.completed_cycles == 1
    assert report.pr_number == 7
    assert report.exit_code == 0

    mock_git.create_branch.assert_awaited_once_with(BRANCH, "master")
    mock_host.merge_pull_request.assert_awaited_once_with(7, head_sha=HEAD_SHA)
    assert repo.pr.title == "feat(auth): add jwt check"
    assert "Closes #123" in repo.pr.body
    assert BRANCH not in repo.local
    assert BRANCH not in repo.remote

    state = await state_manager.load_state(123)
    assert state["status"] == "completed"
    assert state["pr_number"] == 7
    assert set(state["actions"]) == {"branch", "pr", "merge"}
    assert state["machine"]["completed_cycles"] == 1


@pytest.mark.asyncio
async def test_branch_derived_from_issue_title(orchestrator, repo, mock_git):
    repo.commits = []

    report = await orchestrator.start(123)

    assert report.branch == "123-feat-add-login-flow"
    mock_git.create_branch.assert_awaited_once_with("123-feat-add-login-flow", "master")


@pytest.mark.asyncio
async def test_blocks_at_commit_then_resumes(orchestrator, repo, commits, state_manager):
    repo.commits = []

    first = await orchestrator.start(123, branch=BRANCH)

    assert first.status == TaskStatus.BLOCKED
    assert first.phase == Phase.COMMIT
    assert [v.rule for v in first.last_result.violations] == ["commits-present"]
    assert (await state_manager.load_state(123))["machine"]["blocked"] is True

    repo.commits = commits
    second = await orchestrator.resume(123)

    assert second.results[0].phase == Phase.COMMIT
    assert second.status == TaskStatus.COMPLETED


# =============================================================================
# Blocking gates and adapter failures
# =============================================================================


@pytest.mark.asyncio
async def test_malformed_issue_blocks_sync(orchestrator, repo, mock_git):
    repo.issue = Issue(number=123, title="fix bug", body="- [ ] it works", state=IssueState.OPEN)

    report = await orchestrator.start(123, branch="123-fix-bug-report")

    assert report.status == TaskStatus.BLOCKED
    assert report.phase == Phase.SYNC
    violation = report.last_result.violations[0]
    assert violation.kind == ViolationKind.FORMAT
    assert violation.rule == "issue-title-format"
    assert report.exit_code == 1
    mock_git.create_branch.assert_not_awaited()


@pytest.mark.asyncio
async def test_bad_commit_message_blocks(orchestrator, repo):
    repo.commits = [Commit(sha=HEAD_SHA, message="fix bug", parents=[TRUNK_SHA], files=["tests/test_a.py"])]

    report = await orchestrator.start(123, branch=BRANCH)

    assert report.phase == Phase.COMMIT
    assert report.last_result.violations[0].subject == HEAD_SHA[:12]


@pytest.mark.asyncio
async def test_lease_rejected_then_resume(orchestrator, repo, mock_host, state_manager):
    repo.trunk_moves_on_push = True

    report = await orchestrator.start(123, branch=BRANCH)

    assert report.status == TaskStatus.BLOCKED
    assert report.phase == Phase.MERGE
    violation = report.last_result.violations[0]
    assert violation.kind == ViolationKind.STATE_MISMATCH
    assert violation.rule == "lease-rejected"
    mock_host.merge_pull_request.assert_not_awaited()
    assert "moved since it was observed" in (await state_manager.load_state(123))["error"]

    resumed = await orchestrator.resume(123)

    assert resumed.status == TaskStatus.COMPLETED
    mock_host.merge_pull_request.assert_awaited_once_with(7, head_sha=HEAD_SHA)
    assert "error" not in await state_manager.load_state(123)


@pytest.mark.asyncio
async def test_rebased_head_waits_for_fresh_ci(orchestrator, repo, mock_git, mock_host):
    def rebase(onto: str) -> None:
        repo.head = REBASED_SHA

    mock_git.rebase.side_effect = rebase

    report = await orchestrator.start(123, branch=BRANCH)

    assert report.status == TaskStatus.BLOCKED
    assert report.phase == Phase.MERGE
    violation = report.last_result.violations[0]
    assert violation.kind == ViolationKind.STATE_MISMATCH
    assert "CI must re-run on the rebased head" in violation.message
    assert repo.remote[BRANCH] == REBASED_SHA
    mock_host.merge_pull_request.assert_not_awaited()

    repo.runs = [CIRun(name="ci", state=CIState.PENDING)]
    pending = await orchestrator.resume(123)

    assert pending.phase == Phase.MERGE
    assert [v.rule for v in pending.last_result.violations] == ["ci-green"]

    repo.runs = [CIRun(name="ci", state=CIState.SUCCESS)]
    resumed = await orchestrator.resume(123)

    assert resumed.status == TaskStatus.COMPLETED
    mock_host.merge_pull_request.assert_awaited_once_with(7, head_sha=REBASED_SHA)


@pytest.mark.asyncio
async def test_rebase_conflict_blocks_merge(orchestrator, repo, mock_git):
    mock_git.rebase.side_effect = RebaseConflictError(TRUNK_SHA, ["src/auth.py"])

    report = await orchestrator.start(123, branch=BRANCH)

    assert report.phase == Phase.MERGE
    violation = report.last_result.violations[0]
    assert violation.rule == "rebase-conflict"
    assert violation.kind == ViolationKind.STATE_MISMATCH
    assert "src/auth.py" in violation.message


@pytest.mark.asyncio
async def test_external_failure_blocks_pr(orchestrator, repo, mock_host):
    mock_host.create_pull_request.side_effect = ExternalCallError(
        "'gh pr create' failed", command=["gh", "pr", "create"], returncode=1, stderr="HTTP 422: Validation Failed"
    )

    report = await orchestrator.start(123, branch=BRANCH)

    assert report.phase == Phase.PR
    violation = report.last_result.violations[0]
    assert violation.kind == ViolationKind.EXTERNAL_CALL
    assert "HTTP 422" in violation.message
    assert violation.subject == "gh pr"
    assert report.pr_number is None


@pytest.mark.asyncio
async def test_pending_ci_blocks_review(orchestrator, repo):
    repo.runs = [CIRun(name="ci", state=CIState.PENDING)]

    report = await orchestrator.start(123, branch=BRANCH)

    assert report.phase == Phase.REVIEW
    assert [v.rule for v in report.last_result.violations] == ["ci-green"]


# =============================================================================
# Dry run
# =============================================================================


@pytest.mark.asyncio
async def test_dry_run_stops_before_first_mutation(orchestrator, repo, mock_git, state_manager):
    report = await orchestrator.start(123, branch=BRANCH, dry_run=True)

    assert report.dry_run
    assert [r.phase for r in report.results] == [Phase.SYNC, Phase.BRANCH]
    assert report.passed
    assert report.status == TaskStatus.IN_PROGRESS
    mock_git.pull.assert_not_awaited()
    mock_git.create_branch.assert_not_awaited()
    assert not state_manager.exists(123)


@pytest.mark.asyncio
async def test_dry_run_reports_failure(orchestrator, repo):
    repo.issue = replace(repo.issue, body="no checklist")

    report = await orchestrator.start(123, branch=BRANCH, dry_run=True)

    assert report.status == TaskStatus.BLOCKED
    assert report.exit_code == 1


@pytest.mark.asyncio
async def test_dry_run_resume_does_not_persist(orchestrator, repo, state_manager):
    repo.commits = []
    await orchestrator.start(123, branch=BRANCH)
    before = await state_manager.load_state(123)

    report = await orchestrator.resume(123, dry_run=True)

    assert report.phase == Phase.COMMIT
    assert await state_manager.load_state(123) == before


# =============================================================================
# Task lifecycle
# =============================================================================


@pytest.mark.asyncio
async def test_start_twice_rejected(orchestrator, repo):
    repo.commits = []
    await orchestrator.start(123, branch=BRANCH)

    with pytest.raises(WorkflowError):
        await orchestrator.start(123, branch=BRANCH)
    with pytest.raises(WorkflowError):
        await orchestrator.start(123, branch=BRANCH, dry_run=True)


@pytest.mark.asyncio
async def test_resume_unknown_task(orchestrator):
    with pytest.raises(TaskNotFoundError):
        await orchestrator.resume(999)


@pytest.mark.asyncio
async def test_resume_completed_task(orchestrator, repo):
    await orchestrator.start(123, branch=BRANCH)
    with pytest.raises(WorkflowError, match="nothing to resume"):
        await orchestrator.resume(123)


@pytest.mark.asyncio
async def test_resume_with_corrected_branch_name(orchestrator, repo, mock_git, state_manager):
    first = await orchestrator.start(123, branch="123-feat-ab")

    assert first.phase == Phase.BRANCH
    assert [v.rule for v in first.last_result.violations] == ["branch-name-format"]

    second = await orchestrator.resume(123, branch=BRANCH)

    assert second.status == TaskStatus.COMPLETED
    mock_git.create_branch.assert_awaited_once_with(BRANCH, "master")
    assert (await state_manager.load_state(123))["branch"] == BRANCH


@pytest.mark.asyncio
async def test_resume_cannot_rename_created_branch(orchestrator, repo, state_manager):
    repo.commits = []
    await orchestrator.start(123, branch=BRANCH)

    with pytest.raises(WorkflowError, match="already created"):
        await orchestrator.resume(123, branch="123-feat-other-name")

    assert (await state_manager.load_state(123))["branch"] == BRANCH


@pytest.mark.asyncio
async def test_resume_with_corrected_pr_title(orchestrator, repo, state_manager):
    first = await orchestrator.start(123, branch=BRANCH, pr_title="add login")

    assert first.phase == Phase.PR
    assert [v.rule for v in first.last_result.violations] == ["pr-title-format"]

    second = await orchestrator.resume(123, pr_title="feat(auth): add the login flow")

    assert second.status == TaskStatus.COMPLETED
    assert repo.pr.title == "feat(auth): add the login flow"
    state = await state_manager.load_state(123)
    assert state["metadata"]["pr_title"] == "feat(auth): add the login flow"


@pytest.mark.asyncio
async def test_abandon_deletes_branch(orchestrator, repo, mock_git, state_manager):
    repo.commits = []
    await orchestrator.start(123, branch=BRANCH)
    repo.remote[BRANCH] = HEAD_SHA

    state = await orchestrator.abandon(123)

    assert state["status"] == "abandoned"
    assert repo.current == "master"
    assert BRANCH not in repo.local
    assert BRANCH not in repo.remote
    assert await state_manager.get_active_tasks() == []


@pytest.mark.asyncio
async def test_abandon_comments_on_open_pull_request(orchestrator, repo, mock_host):
    repo.runs = []
    await orchestrator.start(123, branch=BRANCH)

    await orchestrator.abandon(123)

    mock_host.comment_pull_request.assert_awaited_once()
    assert mock_host.comment_pull_request.await_args.args[0] == 7


@pytest.mark.asyncio
async def test_abandon_completed_task_rejected(orchestrator, repo):
    await orchestrator.start(123, branch=BRANCH)
    with pytest.raises(WorkflowError, match="not rolled back"):
        await orchestrator.abandon(123)


@pytest.mark.asyncio
async def test_status(orchestrator, repo):
    repo.commits = []
    await orchestrator.start(123, branch=BRANCH)

    assert [s["issue_number"] for s in await orchestrator.status()] == [123]
    assert (await orchestrator.status(123))[0]["status"] == "blocked"


# =============================================================================
# Reporting
# =============================================================================


@pytest.mark.asyncio
async def test_block_reported_to_issue(mock_git, mock_host, state_manager, repo, tmp_path):
    settings = WardenSettings(
        repository={"path": str(tmp_path)},
        verification={"commands": {"test": "pytest -q"}},
        workflow={"report_to_issue": True},
    )
    repo.commits = []

    await WorkflowOrchestrator(settings, mock_git, mock_host, state_manager).start(123, branch=BRANCH)

    number, body = mock_host.comment_issue.await_args.args
    assert number == 123
    assert "commits-present" in body


@pytest.mark.asyncio
async def test_failed_report_does_not_change_outcome(mock_git, mock_host, state_manager, repo, tmp_path):
    settings = WardenSettings(
        repository={"path": str(tmp_path)},
        verification={"commands": {"test": "pytest -q"}},
        workflow={"report_to_issue": True},
    )
    mock_host.comment_issue.side_effect = ExternalCallError("'gh issue comment' failed", returncode=1)

    report = await WorkflowOrchestrator(settings, mock_git, mock_host, state_manager).start(123, branch=BRANCH)

    assert report.status == TaskStatus.COMPLETED


# =============================================================================
# Error conversion
# =============================================================================


class TestViolationFromError:
    def test_lease(self):
        violation = violation_from_error(LeaseRejectedError("origin/master", TRUNK_SHA, OTHER_SHA))
        assert (violation.kind, violation.rule, violation.subject) == (
            ViolationKind.STATE_MISMATCH,
            "lease-rejected",
            "origin/master",
        )

    def test_generic_state_mismatch(self):
        violation = violation_from_error(StateMismatchError("rebase in progress"))
        assert violation.rule == "state-mismatch"

    def test_external(self):
        violation = violation_from_error(ExternalCallError("boom"))
        assert violation.kind == ViolationKind.EXTERNAL_CALL
        assert violation.subject is None

    def test_workflow(self):
        violation = violation_from_error(WorkflowError("No pull request found"))
        assert (violation.kind, violation.rule) == (ViolationKind.MISSING_ARTIFACT, "task-state")


def test_report_exit_code_empty_run():
    assert TaskReport(issue_number=1, phase=Phase.SYNC, status=TaskStatus.IN_PROGRESS).exit_code == 0
