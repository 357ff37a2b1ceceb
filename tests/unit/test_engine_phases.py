"""Tests for the phase state machine."""

import pytest

from repo_warden.enums import Phase, ViolationKind
from repo_warden.engine.phases import PhaseStateMachine
from repo_warden.exceptions import PhaseTransitionError
from repo_warden.models.domain import GateResult, Violation

VIOLATION = Violation(ViolationKind.FORMAT, "commit-message-format", "bad subject", subject="abc")


def passing(phase: Phase) -> GateResult:
    return GateResult(phase)


def failing(phase: Phase) -> GateResult:
    return GateResult(phase, (VIOLATION,))


class TestPhaseStateMachine:
    def test_starts_at_sync(self):
        machine = PhaseStateMachine()
        assert machine.phase == Phase.SYNC
        assert not machine.is_blocked
        assert machine.state_name == "Sync"

    def test_pass_advances(self):
        machine = PhaseStateMachine()
        assert machine.advance(passing(Phase.SYNC)) == Phase.BRANCH

    def test_fail_blocks_in_place(self):
        machine = PhaseStateMachine(phase=Phase.COMMIT)
        assert machine.advance(failing(Phase.COMMIT)) == Phase.COMMIT
        assert machine.is_blocked
        assert machine.state_name == "Blocked(Commit)"
        assert machine.last_result.violations == (VIOLATION,)

    def test_blocked_exits_only_on_same_phase(self):
        machine = PhaseStateMachine(phase=Phase.COMMIT)
        machine.advance(failing(Phase.COMMIT))

        with pytest.raises(PhaseTransitionError):
            machine.advance(passing(Phase.VERIFY))

        assert machine.advance(passing(Phase.COMMIT)) == Phase.VERIFY
        assert not machine.is_blocked

    def test_skipping_rejected(self):
        machine = PhaseStateMachine()
        with pytest.raises(PhaseTransitionError) as exc_info:
            machine.advance(passing(Phase.MERGE))
        assert exc_info.value.current == "sync"
        assert exc_info.value.attempted == "merge"

    def test_full_cycle_wraps_and_counts(self):
        machine = PhaseStateMachine()
        for phase in Phase:
            machine.advance(passing(phase))

        assert machine.phase == Phase.SYNC
        assert machine.completed_cycles == 1
        assert [entry["phase"] for entry in machine.history] == [p.value for p in Phase]

    def test_round_trip(self):
        machine = PhaseStateMachine(phase=Phase.REVIEW)
        machine.advance(failing(Phase.REVIEW))

        restored = PhaseStateMachine.from_dict(machine.to_dict())

        assert restored.phase == Phase.REVIEW
        assert restored.is_blocked
        assert restored.last_result == machine.last_result
        assert restored.history == machine.history

    def test_from_empty_dict(self):
        machine = PhaseStateMachine.from_dict({})
        assert machine.phase == Phase.SYNC
        assert machine.last_result is None


def test_phase_order_and_labels():
    assert [p.order for p in Phase] == list(range(8))
    assert Phase.CLEANUP.next == Phase.SYNC
    assert Phase.PR.label == "PR"
    assert Phase.MERGE.label == "Merge"
