"""
State management with atomic transactions for task persistence.

This module provides the StateManager class which persists the progress of
each task (one issue) so a blocked task can be resumed from another process.
The state manager ensures data integrity through:

- Atomic file writes using temporary files and rename operations
- Per-task locking to prevent concurrent modification

State File Structure:
    Each task gets its own file named ``task-<issue>.json`` in the state
    directory; see ``repo_warden.engine.types.TaskState`` for the schema.

Transaction Support:
    The ``transaction()`` context manager provides atomic state updates::

        async with state_manager.transaction(123) as state:
            state["pr_number"] = 7
            # Changes are saved atomically on context exit

Concurrency Model:
    Each task has its own asyncio lock. Distinct tasks can be accessed
    concurrently; one task is accessed serially.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

import aiofiles
import structlog

from repo_warden.engine.phases import PhaseStateMachine
from repo_warden.engine.types import TaskState
from repo_warden.enums import TaskStatus
from repo_warden.exceptions import TaskNotFoundError, WorkflowError

log = structlog.get_logger(__name__)

ACTIVE_STATUSES = (TaskStatus.IN_PROGRESS.value, TaskStatus.BLOCKED.value)


def task_id_for(issue_number: int) -> str:
    """State key for the task driving ``issue_number``."""
    return f"task-{issue_number}"


def initial_state(issue_number: int, branch: str | None = None, metadata: dict[str, Any] | None = None) -> TaskState:
    """Fresh state for a task that has not passed any gate yet."""
    now = datetime.now(UTC).isoformat()
    return {
        "task_id": task_id_for(issue_number),
        "issue_number": issue_number,
        "status": TaskStatus.IN_PROGRESS.value,
        "created_at": now,
        "updated_at": now,
        "branch": branch,
        "pr_number": None,
        "machine": PhaseStateMachine().to_dict(),
        "actions": {},
        "metadata": dict(metadata or {}),
    }


class StateManager:
    """Manage task state with atomic file operations.

    Attributes:
        state_dir: Directory where state files are stored.

    Example:
        >>> manager = StateManager(".warden/state")
        >>> state = await manager.create_task(123, branch="123-feat-login")
        >>> state = await manager.load_state(123)
    """

    def __init__(self, state_dir: str | Path) -> None:
        """Initialize the state manager with a storage directory.

        The directory is created on first write, so read-only commands such
        as ``warden status`` do not leave an empty directory behind.

        Args:
            state_dir: Directory for the JSON state files.
        """
        self.state_dir = Path(state_dir)
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()

    async def _get_lock(self, task_id: str) -> asyncio.Lock:
        async with self._locks_lock:
            if task_id not in self._locks:
                self._locks[task_id] = asyncio.Lock()
            return self._locks[task_id]

    def _get_state_path(self, task_id: str) -> Path:
        return self.state_dir / f"{task_id}.json"

    def exists(self, issue_number: int) -> bool:
        """Whether a state file exists for ``issue_number``."""
        return self._get_state_path(task_id_for(issue_number)).exists()

    async def _load_state_internal(self, task_id: str, issue_number: int) -> TaskState:
        """Load state from disk; caller must hold the task lock."""
        state_path = self._get_state_path(task_id)
        if not state_path.exists():
            raise TaskNotFoundError(issue_number)

        async with aiofiles.open(state_path) as f:
            content = await f.read()
        try:
            return cast(TaskState, json.loads(content))
        except json.JSONDecodeError as e:
            raise WorkflowError(f"Corrupt state file {state_path}: {e}") from e

    async def _save_state_internal(self, state: TaskState) -> None:
        """Save state to disk; caller must hold the task lock."""
        state["updated_at"] = datetime.now(UTC).isoformat()
        await self._write_state(self._get_state_path(state["task_id"]), state)

    async def _write_state(self, path: Path, state: TaskState) -> None:
        """Write state atomically via a temporary file in the same directory."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")

        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(state, indent=2))

        tmp_path.replace(path)

    async def create_task(
        self,
        issue_number: int,
        branch: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TaskState:
        """Create the initial state for a new task.

        A completed or abandoned task for the same issue is replaced.

        Raises:
            WorkflowError: If an active task already exists for the issue.
        """
        task_id = task_id_for(issue_number)
        lock = await self._get_lock(task_id)
        async with lock:
            path = self._get_state_path(task_id)
            if path.exists():
                existing = await self._load_state_internal(task_id, issue_number)
                if existing["status"] in ACTIVE_STATUSES:
                    raise WorkflowError(
                        f"Task for issue #{issue_number} is already {existing['status']}; "
                        "use 'warden resume' or 'warden abandon'"
                    )

            state = initial_state(issue_number, branch, metadata)
            await self._write_state(path, state)

        log.info("task_created", task_id=task_id, branch=branch)
        return state

    async def load_state(self, issue_number: int) -> TaskState:
        """Load the state of the task for ``issue_number``.

        Raises:
            TaskNotFoundError: If no task exists for the issue.
        """
        task_id = task_id_for(issue_number)
        lock = await self._get_lock(task_id)
        async with lock:
            return await self._load_state_internal(task_id, issue_number)

    async def save_state(self, state: TaskState) -> None:
        """Atomically save ``state``, refreshing ``updated_at``."""
        lock = await self._get_lock(state["task_id"])
        async with lock:
            await self._save_state_internal(state)

    @asynccontextmanager
    async def transaction(self, issue_number: int) -> AsyncIterator[TaskState]:
        """Load, yield and save a task's state under its lock.

        If an exception occurs within the context, the state is NOT saved.
        """
        task_id = task_id_for(issue_number)
        lock = await self._get_lock(task_id)
        async with lock:
            state = await self._load_state_internal(task_id, issue_number)
            try:
                yield state
                await self._save_state_internal(state)
            except Exception:
                log.error("state_transaction_failed", task_id=task_id)
                raise

    async def mark_status(self, issue_number: int, status: TaskStatus, error: str | None = None) -> None:
        """Update a task's status."""
        async with self.transaction(issue_number) as state:
            state["status"] = status.value
            if error:
                state["error"] = error
            else:
                state.pop("error", None)

        log.info("task_status_updated", issue=issue_number, status=status.value)

    async def list_tasks(self) -> list[TaskState]:
        """All persisted tasks, ordered by issue number."""
        if not self.state_dir.exists():
            return []
        tasks = []
        for state_file in sorted(self.state_dir.glob("task-*.json")):
            number = state_file.stem.removeprefix("task-")
            if not number.isdigit():
                continue
            tasks.append(await self.load_state(int(number)))
        tasks.sort(key=lambda state: state["issue_number"])
        return tasks

    async def get_active_tasks(self) -> list[TaskState]:
        """Tasks that are still in progress or blocked."""
        return [state for state in await self.list_tasks() if state["status"] in ACTIVE_STATUSES]
