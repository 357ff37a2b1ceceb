"""Tests for task state persistence."""

import asyncio
import json

import pytest

from repo_warden.engine.state_manager import StateManager, initial_state, task_id_for
from repo_warden.enums import TaskStatus
from repo_warden.exceptions import TaskNotFoundError, WorkflowError


def test_initial_state():
    state = initial_state(123, branch="123-feat-login", metadata={"pr_title": "x"})

    assert state["task_id"] == task_id_for(123) == "task-123"
    assert state["status"] == "in_progress"
    assert state["machine"]["phase"] == "sync"
    assert state["actions"] == {}
    assert state["metadata"] == {"pr_title": "x"}


@pytest.mark.asyncio
async def test_directory_created_lazily(tmp_path):
    state_dir = tmp_path / "nested" / "state"
    manager = StateManager(state_dir)
    assert not state_dir.exists()

    await manager.create_task(1)

    assert (state_dir / "task-1.json").exists()


@pytest.mark.asyncio
async def test_create_and_load(state_manager):
    await state_manager.create_task(123, branch="123-feat-login")
    state = await state_manager.load_state(123)

    assert state["issue_number"] == 123
    assert state["branch"] == "123-feat-login"
    assert state_manager.exists(123)


@pytest.mark.asyncio
async def test_load_missing(state_manager):
    with pytest.raises(TaskNotFoundError) as exc_info:
        await state_manager.load_state(9)
    assert exc_info.value.issue_number == 9


@pytest.mark.asyncio
async def test_active_task_cannot_be_recreated(state_manager):
    await state_manager.create_task(123)
    with pytest.raises(WorkflowError, match="already in_progress"):
        await state_manager.create_task(123)


@pytest.mark.asyncio
async def test_finished_task_is_replaced(state_manager):
    await state_manager.create_task(123, branch="123-feat-old")
    await state_manager.mark_status(123, TaskStatus.ABANDONED)

    state = await state_manager.create_task(123, branch="123-feat-new")

    assert state["branch"] == "123-feat-new"
    assert (await state_manager.load_state(123))["status"] == "in_progress"


@pytest.mark.asyncio
async def test_transaction_saves(state_manager):
    await state_manager.create_task(123)

    async with state_manager.transaction(123) as state:
        state["pr_number"] = 7

    assert (await state_manager.load_state(123))["pr_number"] == 7


@pytest.mark.asyncio
async def test_transaction_discards_on_error(state_manager):
    await state_manager.create_task(123)

    with pytest.raises(RuntimeError):
        async with state_manager.transaction(123) as state:
            state["pr_number"] = 7
            raise RuntimeError("boom")

    assert (await state_manager.load_state(123))["pr_number"] is None


@pytest.mark.asyncio
async def test_mark_status_with_error(state_manager):
    await state_manager.create_task(123)

    await state_manager.mark_status(123, TaskStatus.BLOCKED, error="git push failed")
    assert (await state_manager.load_state(123))["error"] == "git push failed"

    await state_manager.mark_status(123, TaskStatus.IN_PROGRESS)
    assert "error" not in await state_manager.load_state(123)


@pytest.mark.asyncio
async def test_corrupt_state(state_manager, temp_state_dir):
    (temp_state_dir / "task-5.json").write_text("{not json")
    with pytest.raises(WorkflowError, match="Corrupt"):
        await state_manager.load_state(5)


@pytest.mark.asyncio
async def test_list_and_active(state_manager, temp_state_dir):
    await state_manager.create_task(20)
    await state_manager.create_task(3)
    await state_manager.create_task(7)
    await state_manager.mark_status(7, TaskStatus.COMPLETED)
    (temp_state_dir / "task-notes.json").write_text("{}")

    assert [s["issue_number"] for s in await state_manager.list_tasks()] == [3, 7, 20]
    assert [s["issue_number"] for s in await state_manager.get_active_tasks()] == [3, 20]


@pytest.mark.asyncio
async def test_list_without_directory(tmp_path):
    assert await StateManager(tmp_path / "none").list_tasks() == []


@pytest.mark.asyncio
async def test_concurrent_transactions_serialize(state_manager):
    await state_manager.create_task(1)

    async def bump():
        async with state_manager.transaction(1) as state:
            count = state["metadata"].get("count", 0)
            await asyncio.sleep(0)
            state["metadata"]["count"] = count + 1

    await asyncio.gather(*(bump() for _ in range(10)))

    assert (await state_manager.load_state(1))["metadata"]["count"] == 10


@pytest.mark.asyncio
async def test_written_file_is_json(state_manager, temp_state_dir):
    await state_manager.create_task(4)
    data = json.loads((temp_state_dir / "task-4.json").read_text())
    assert data["task_id"] == "task-4"
    assert not (temp_state_dir / "task-4.tmp").exists()
