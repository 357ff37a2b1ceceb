"""
Phase state machine for a single task.

States are the eight ordered phases plus an implicit Blocked flag::

    Sync -> Branch -> Commit -> Verify -> PR -> Review -> Merge -> Cleanup
      ^                                                              |
      +--------------------------------------------------------------+

Rules:
    - A passing gate moves the task to the next phase.
    - A failing gate leaves the task in the same phase, Blocked.
    - The only exit from Blocked is a new gate result for that same phase.
    - A gate result for any other phase is rejected (no skipping).
    - Cleanup passing wraps around to Sync and counts a completed cycle.

Example:
    >>> machine = PhaseStateMachine()
    >>> machine.advance(GateResult(Phase.SYNC))
    <Phase.BRANCH: 'branch'>
    >>> machine.advance(GateResult(Phase.BRANCH, (violation,)))
    <Phase.BRANCH: 'branch'>
    >>> machine.is_blocked
    True
"""

from datetime import UTC, datetime
from typing import Any

import structlog

from repo_warden.enums import Phase
from repo_warden.exceptions import PhaseTransitionError
from repo_warden.models.domain import GateResult

log = structlog.get_logger(__name__)


class PhaseStateMachine:
    """Track and enforce phase progression for one task.

    Attributes:
        phase: Current phase
        is_blocked: Whether the last gate for ``phase`` failed
        last_result: Most recent gate result, if any
        completed_cycles: How many times Cleanup has passed
        history: Chronological list of applied gate outcomes
    """

    def __init__(
        self,
        phase: Phase = Phase.SYNC,
        blocked: bool = False,
        last_result: GateResult | None = None,
        completed_cycles: int = 0,
        history: list[dict[str, Any]] | None = None,
    ) -> None:
        self.phase = Phase(phase)
        self.is_blocked = blocked
        self.last_result = last_result
        self.completed_cycles = completed_cycles
        self.history: list[dict[str, Any]] = list(history or [])

    @property
    def state_name(self) -> str:
        """Display name of the current state, e.g. ``Merge`` or ``Blocked(Merge)``."""
        return f"Blocked({self.phase.label})" if self.is_blocked else self.phase.label

    def advance(self, result: GateResult) -> Phase:
        """Apply a gate outcome for the current phase.

        Args:
            result: Gate result produced for the current phase

        Returns:
            The phase the task is in afterwards.

        Raises:
            PhaseTransitionError: If ``result`` belongs to another phase.
        """
        if result.phase != self.phase:
            raise PhaseTransitionError(self.phase.value, result.phase.value)

        self.last_result = result
        self.history.append(
            {
                "phase": result.phase.value,
                "passed": result.passed,
                "violations": [v.rule for v in result.violations],
                "at": datetime.now(UTC).isoformat(),
            }
        )

        if not result.passed:
            self.is_blocked = True
            log.info("phase_blocked", phase=self.phase.value, violations=len(result.violations))
            return self.phase

        previous = self.phase
        self.is_blocked = False
        self.phase = previous.next
        if previous == Phase.CLEANUP:
            self.completed_cycles += 1
        log.info("phase_advanced", previous=previous.value, phase=self.phase.value)
        return self.phase

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for persistence."""
        return {
            "phase": self.phase.value,
            "blocked": self.is_blocked,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "completed_cycles": self.completed_cycles,
            "history": list(self.history),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PhaseStateMachine":
        """Rebuild a machine from ``to_dict`` output."""
        last = data.get("last_result")
        return cls(
            phase=Phase(data.get("phase", Phase.SYNC.value)),
            blocked=bool(data.get("blocked", False)),
            last_result=GateResult.from_dict(last) if last else None,
            completed_cycles=int(data.get("completed_cycles", 0)),
            history=data.get("history") or [],
        )
