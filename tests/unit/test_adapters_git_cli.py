"""Tests for the git command-line adapter."""

from unittest.mock import AsyncMock, patch

import pytest

from repo_warden.adapters.git_cli import GitCliClient, parse_log
from repo_warden.exceptions import ExternalCallError, LeaseRejectedError, RebaseConflictError
from repo_warden.utils.async_subprocess import CommandResult

R, F = "\x1e", "\x1f"


def result(stdout: str = "", returncode: int = 0, stderr: str = "", args: tuple[str, ...] = ("git",)) -> CommandResult:
    return CommandResult(args=args, stdout=stdout, stderr=stderr, returncode=returncode)


@pytest.fixture
def client(tmp_path) -> GitCliClient:
    return GitCliClient(repo_path=tmp_path, remote="origin", timeout=5)


class TestParseLog:
    def test_two_commits_with_files(self):
        output = (
            f"{R}aaa{F}111{F}feat(auth): add jwt check\n\nbody line\n{F}\nsrc/auth.py\ntests/test_auth.py\n"
            f"{R}bbb{F}222 333{F}Merge branch 'master'\n{F}\n"
        )
        commits = parse_log(output)

        assert [c.sha for c in commits] == ["aaa", "bbb"]
        assert commits[0].subject == "feat(auth): add jwt check"
        assert commits[0].message.endswith("body line")
        assert commits[0].files == ["src/auth.py", "tests/test_auth.py"]
        assert commits[1].is_merge
        assert commits[1].files == []

    def test_empty_output(self):
        assert parse_log("") == []


class TestGitCliClient:
    @pytest.mark.asyncio
    async def test_remote_tip_found(self, client):
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock()) as run:
            run.return_value = result("abc123\trefs/heads/master\n")
            assert await client.remote_tip("master") == "abc123"

        args = run.call_args.args
        assert args[:4] == ("git", "ls-remote", "--heads", "origin")

    @pytest.mark.asyncio
    async def test_remote_tip_missing(self, client):
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(return_value=result(""))):
            assert await client.remote_tip("123-feat-login") is None

    @pytest.mark.asyncio
    async def test_list_remote_branches_skips_head(self, client):
        output = "refs/remotes/origin/HEAD\nrefs/remotes/origin/master\nrefs/remotes/origin/12-feat-abc\n"
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(return_value=result(output))):
            assert await client.list_branches(remote=True) == ["master", "12-feat-abc"]

    @pytest.mark.asyncio
    async def test_push_with_lease_arguments(self, client):
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(return_value=result())) as run:
            await client.push("12-feat-abc", set_upstream=True, force_with_lease="deadbeef")

        assert run.call_args.args == (
            "git",
            "push",
            "--set-upstream",
            "--force-with-lease=12-feat-abc:deadbeef",
            "origin",
            "12-feat-abc",
        )

    @pytest.mark.asyncio
    async def test_push_lease_rejected(self, client):
        rejected = result(returncode=1, stderr=" ! [rejected] 12-feat-abc -> 12-feat-abc (stale info)")
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(return_value=rejected)):
            with pytest.raises(LeaseRejectedError) as exc_info:
                await client.push("12-feat-abc", force_with_lease="deadbeef")

        assert exc_info.value.ref == "origin/12-feat-abc"
        assert exc_info.value.expected == "deadbeef"

    @pytest.mark.asyncio
    async def test_plain_push_failure_is_external(self, client):
        failed = result(returncode=128, stderr="fatal: could not read from remote repository")
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(return_value=failed)):
            with pytest.raises(ExternalCallError) as exc_info:
                await client.push("12-feat-abc")

        assert "could not read from remote" in exc_info.value.stderr

    @pytest.mark.asyncio
    async def test_rebase_conflict(self, client, tmp_path):
        (tmp_path / ".git" / "rebase-merge").mkdir(parents=True)
        responses = [
            result(returncode=1, stderr="CONFLICT (content): Merge conflict in app.py"),
            result(".git/rebase-merge\n"),
            result("app.py\n"),
        ]
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(side_effect=responses)):
            with pytest.raises(RebaseConflictError) as exc_info:
                await client.rebase("abc123")

        assert exc_info.value.files == ["app.py"]
        assert exc_info.value.onto == "abc123"

    @pytest.mark.asyncio
    async def test_is_clean(self, client):
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(return_value=result(" M app.py\n"))):
            assert not await client.is_clean()

    @pytest.mark.asyncio
    async def test_run_check_returns_exit_code(self, client):
        with patch(
            "repo_warden.adapters.git_cli.run_shell_command", new=AsyncMock(return_value=result(returncode=3))
        ) as run:
            assert await client.run_check("make test") == 3

        assert run.call_args.args == ("make test",)
        assert run.call_args.kwargs["check"] is False

    @pytest.mark.asyncio
    async def test_push_declined_by_hook_is_external(self, client):
        declined = result(
            returncode=1,
            stderr=" ! [remote rejected] 12-feat-abc -> 12-feat-abc (protected branch hook declined)\n",
        )
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(return_value=declined)):
            with pytest.raises(ExternalCallError) as exc_info:
                await client.push("12-feat-abc", force_with_lease="deadbeef")

        assert not isinstance(exc_info.value, LeaseRejectedError)
        assert exc_info.value.stderr == declined.stderr

    @pytest.mark.asyncio
    async def test_add_and_commit(self, client):
        responses = [result(), result(), result("c0ffee\n")]
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(side_effect=responses)) as run:
            await client.add(["src/auth.py", "tests/test_auth.py"])
            sha = await client.commit("feat(auth): add jwt check")

        assert sha == "c0ffee"
        calls = [c.args for c in run.call_args_list]
        assert calls[0] == ("git", "add", "--", "src/auth.py", "tests/test_auth.py")
        assert calls[1] == ("git", "commit", "-m", "feat(auth): add jwt check")
        assert calls[2] == ("git", "rev-parse", "--verify", "HEAD")

    @pytest.mark.asyncio
    async def test_rebase_continue_skips_editor(self, client):
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(return_value=result())) as run:
            await client.rebase_continue()

        assert run.call_args.args == ("git", "-c", "core.editor=true", "rebase", "--continue")

    @pytest.mark.asyncio
    async def test_rebase_abort(self, client):
        with patch("repo_warden.adapters.git_cli.run_command", new=AsyncMock(return_value=result())) as run:
            await client.rebase_abort()

        assert run.call_args.args == ("git", "rebase", "--abort")
