"""Workflow engine: phase state machine, task persistence and orchestration.

Key Components:
    - PhaseStateMachine: Enforces strictly forward phase progression
    - WorkflowOrchestrator: Drives a task through the phases
    - StateManager: Persistent task state with atomic transactions
    - TrunkLease: Optimistic concurrency guard for the shared trunk
    - TaskContext: Per-run task identifiers and options

Type Definitions:
    - TaskState: TypedDict for persisted task state

Example:
    >>> from repo_warden.engine import WorkflowOrchestrator
    >>> orchestrator = WorkflowOrchestrator(settings, git, host, state)
    >>> report = await orchestrator.resume(123)
"""

from repo_warden.engine.context import TaskContext
from repo_warden.engine.orchestrator import TaskReport, WorkflowOrchestrator
from repo_warden.engine.phases import PhaseStateMachine
from repo_warden.engine.state_manager import StateManager
from repo_warden.engine.trunk import TrunkLease
from repo_warden.engine.types import TaskState

__all__ = [
    "PhaseStateMachine",
    "StateManager",
    "TaskContext",
    "TaskReport",
    "TaskState",
    "TrunkLease",
    "WorkflowOrchestrator",
]
