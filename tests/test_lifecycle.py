from __future__ import annotations

from typing import Any, Dict

import pytest

from coach_tools.errors import AlreadyAppliedError, InvalidTransitionError, ProposalNotFoundError
from coach_tools.models import ChatResponse, Decision, Program, ToolCall
from coach_tools.services.lifecycle import ProposalEvent, ProposalManager, ProposalState, advance
from coach_tools.services.lookup import find_exercise, find_set


@pytest.fixture
def manager(program: Program, id_factory, clock) -> ProposalManager:
    return ProposalManager(program, id_factory=id_factory, clock=clock)


def _propose(manager: ProposalManager, name: str, params: Dict[str, Any]) -> str:
    result = manager.receive(ToolCall(name=name, params=params))
    assert result.proposal is not None, result.agent_feedback
    return result.proposal.id


ADD_INCLINE = {"sessionId": "session-1", "name": "Incline Press", "sets": [{"reps": 10}]}


def test_transition_table() -> None:
    assert advance(ProposalState.PENDING, ProposalEvent.CONFIRM) is ProposalState.CONFIRMED
    assert advance(ProposalState.PENDING, ProposalEvent.REJECT) is ProposalState.REJECTED
    assert advance(ProposalState.CONFIRMED, ProposalEvent.APPLY) is ProposalState.APPLIED
    assert advance(ProposalState.CONFIRMED, ProposalEvent.FAIL) is ProposalState.FAILED
    with pytest.raises(AlreadyAppliedError):
        advance(ProposalState.APPLIED, ProposalEvent.CONFIRM)
    with pytest.raises(InvalidTransitionError):
        advance(ProposalState.REJECTED, ProposalEvent.REJECT)
    with pytest.raises(InvalidTransitionError):
        advance(ProposalState.PENDING, ProposalEvent.APPLY)


def test_nothing_is_applied_before_confirmation(manager: ProposalManager, program: Program) -> None:
    received = manager.receive(ToolCall(id="call-1", name="add_exercise", params=ADD_INCLINE))
    assert received.accepted
    assert received.proposal is not None
    assert received.proposal.state == "pending"
    assert received.proposal.human_summary == "Add: Incline Press to Push Day (Week 1), at end"
    assert manager.program is program

    result = manager.confirm(received.proposal.id)
    assert result.ok
    assert result.proposal is not None and result.proposal.state == "applied"
    assert result.proposal.result_version == manager.version == result.program_version
    assert manager.program is not program
    ref = find_exercise(manager.program, "exercise-new-1")
    assert ref is not None and ref.exercise.name == "Incline Press"


def test_reject_leaves_program_alone(manager: ProposalManager, program: Program) -> None:
    proposal_id = _propose(manager, "remove_session", {"sessionId": "session-2"})
    result = manager.reject(proposal_id)
    assert result.ok
    assert result.proposal is not None and result.proposal.state == "rejected"
    assert manager.program is program

    again = manager.reject(proposal_id)
    assert not again.ok
    assert again.error is not None and again.error.code == "INVALID_TRANSITION"

    confirm = manager.decide(Decision(proposal_id=proposal_id, decision="confirm"))
    assert confirm.error is not None and confirm.error.code == "INVALID_TRANSITION"
    assert manager.program is program


def test_confirming_twice_reports_already_applied(manager: ProposalManager) -> None:
    proposal_id = _propose(manager, "add_exercise", ADD_INCLINE)
    assert manager.confirm(proposal_id).ok
    version = manager.version

    again = manager.confirm(proposal_id)
    assert not again.ok
    assert again.error is not None and again.error.code == "ALREADY_APPLIED"
    assert manager.version == version
    assert len(manager.program.weeks[0].sessions[0].exercises) == 3


def test_second_proposal_goes_stale(manager: ProposalManager) -> None:
    first = _propose(manager, "modify_set", {"setId": "set-1", "prescribed": {"weight": 82.5}})
    second = _propose(manager, "modify_set", {"setId": "set-1", "prescribed": {"weight": 85}})

    assert manager.confirm(first).ok
    stale = manager.confirm(second)
    assert not stale.ok
    assert stale.error is not None and stale.error.code == "STALE_SNAPSHOT"
    assert stale.proposal is not None and stale.proposal.state == "failed"

    ref = find_set(manager.program, "set-1")
    assert ref is not None and ref.workout_set.prescribed.weight == 82.5


def test_retry_reproposes_against_current_snapshot(manager: ProposalManager) -> None:
    first = _propose(manager, "modify_set", {"setId": "set-1", "prescribed": {"weight": 82.5}})
    second = _propose(manager, "modify_set", {"setId": "set-1", "prescribed": {"weight": 85}})
    manager.confirm(first)
    manager.confirm(second)

    retried = manager.retry(second)
    assert retried.call_id.endswith("-retry")
    assert retried.proposal is not None
    assert manager.confirm(retried.proposal.id).ok
    ref = find_set(manager.program, "set-1")
    assert ref is not None and ref.workout_set.prescribed.weight == 85


def test_retry_only_from_failed(manager: ProposalManager) -> None:
    proposal_id = _propose(manager, "add_exercise", ADD_INCLINE)
    result = manager.retry(proposal_id)
    assert not result.accepted
    assert result.error is not None and result.error.code == "INVALID_TRANSITION"
    assert result.tool_name == "add_exercise"
    assert [v.state for v in manager.views()] == ["pending"]


def test_retry_unknown_proposal_is_reported(manager: ProposalManager) -> None:
    result = manager.retry("proposal-404")
    assert not result.accepted
    assert result.call_id == "proposal-404"
    assert result.error is not None and result.error.code == "PROPOSAL_NOT_FOUND"


def test_referentially_invalid_proposal_fails_on_confirm(manager: ProposalManager, program: Program) -> None:
    received = manager.receive(ToolCall(name="remove_exercise", params={"exerciseId": "exercise-999"}))
    assert received.proposal is not None
    assert not received.proposal.validation.ok
    assert received.agent_feedback[0].code == "REFERENTIAL_INVALID"

    result = manager.confirm(received.proposal.id)
    assert not result.ok
    assert result.error is not None and result.error.code == "REFERENTIAL_INVALID"
    assert manager.program is program


def test_malformed_calls_never_become_proposals(manager: ProposalManager) -> None:
    unknown = manager.receive(ToolCall(name="delete_program", params={}))
    assert not unknown.accepted
    assert unknown.agent_feedback[0].code == "UNKNOWN_TOOL"

    broken = manager.receive(ToolCall(name="add_exercise", params='{"name": "Dips"'))
    assert not broken.accepted
    assert broken.agent_feedback[0].code == "STRUCTURAL_INVALID"
    assert manager.views() == []


def test_unknown_proposal_id(manager: ProposalManager) -> None:
    result = manager.confirm("proposal-404")
    assert not result.ok
    assert result.proposal is None
    assert result.error is not None and result.error.code == "PROPOSAL_NOT_FOUND"
    with pytest.raises(ProposalNotFoundError):
        manager.get("proposal-404")


def test_receive_response_handles_each_call(manager: ProposalManager) -> None:
    response = ChatResponse(
        reply="Two tweaks.",
        tool_calls=[
            ToolCall(name="modify_week", params={"weekId": "week-2", "updates": {"phase": "Deload"}}),
            ToolCall(name="modify_week", params={"weekId": "week-2"}),
        ],
    )
    results = manager.receive_response(response)
    assert [r.accepted for r in results] == [True, False]
    pending = manager.pending_views()
    assert len(pending) == 1
    assert pending[0].human_summary == "Modify: Week 2"
    assert pending[0].changes[0].field == "Phase"
    assert (pending[0].changes[0].before, pending[0].changes[0].after) == ("Intensification", "Deload")


def test_end_turn_abandons_pending_and_forgets_finished(manager: ProposalManager) -> None:
    applied = _propose(manager, "add_exercise", ADD_INCLINE)
    manager.confirm(applied)
    waiting = _propose(manager, "remove_week", {"weekId": "week-2"})

    abandoned = manager.end_turn()
    assert abandoned == [waiting]
    assert manager.views() == []
    assert len(manager.program.weeks) == 2


def test_abandoned_proposals_record_decision_time(manager: ProposalManager, clock) -> None:
    waiting = _propose(manager, "remove_week", {"weekId": "week-2"})
    proposal = manager.get(waiting)
    assert proposal.decided_at is None

    manager.end_turn()
    assert proposal.state is ProposalState.REJECTED
    assert proposal.decided_at == clock()


def test_views_are_independent_snapshots(manager: ProposalManager) -> None:
    _propose(manager, "add_exercise", ADD_INCLINE)
    views = manager.views()
    _propose(manager, "remove_week", {"weekId": "week-2"})
    assert len(views) == 1
    assert len(manager.views()) == 2
    assert len(manager.pending_views()) == 2


def test_confirm_all_applies_independent_proposals_together(manager: ProposalManager) -> None:
    add = _propose(manager, "add_exercise", ADD_INCLINE)
    deload = _propose(manager, "modify_week", {"weekId": "week-2", "updates": {"phase": "Deload"}})

    results = manager.confirm_all([add, deload])
    assert [r.ok for r in results] == [True, True]
    assert [r.proposal.state for r in results] == ["applied", "applied"]
    assert results[0].proposal.result_version == results[1].proposal.result_version == manager.version
    assert len(manager.program.weeks[0].sessions[0].exercises) == 3
    assert manager.program.weeks[1].phase == "Deload"


def test_confirm_all_later_calls_see_earlier_changes(manager: ProposalManager, program: Program) -> None:
    drop = _propose(manager, "remove_session", {"sessionId": "session-3"})
    add = _propose(manager, "add_exercise", {"sessionId": "session-3", "name": "Dips"})

    results = manager.confirm_all([drop, add])
    assert [r.ok for r in results] == [False, False]
    assert {r.error.code for r in results} == {"REFERENTIAL_INVALID"}
    assert [r.proposal.state for r in results] == ["failed", "failed"]
    assert manager.program is program


def test_confirm_all_fails_every_proposal_on_first_issue(manager: ProposalManager, program: Program) -> None:
    add = _propose(manager, "add_exercise", ADD_INCLINE)
    missing = manager.receive(ToolCall(name="remove_exercise", params={"exerciseId": "exercise-999"}))
    assert missing.proposal is not None

    results = manager.confirm_all([add, missing.proposal.id])
    assert [r.ok for r in results] == [False, False]
    assert results[0].error == results[1].error
    assert results[0].error.code == "REFERENTIAL_INVALID"
    assert manager.program is program


def test_confirm_all_goes_stale_as_a_whole(manager: ProposalManager) -> None:
    first = _propose(manager, "modify_set", {"setId": "set-1", "prescribed": {"weight": 82.5}})
    add = _propose(manager, "add_exercise", ADD_INCLINE)
    deload = _propose(manager, "modify_week", {"weekId": "week-2", "updates": {"phase": "Deload"}})
    assert manager.confirm(first).ok
    version = manager.version

    results = manager.confirm_all([add, deload])
    assert {r.error.code for r in results} == {"STALE_SNAPSHOT"}
    assert manager.version == version


def test_confirm_all_refuses_batch_with_decided_proposal(manager: ProposalManager) -> None:
    rejected = _propose(manager, "remove_week", {"weekId": "week-2"})
    manager.reject(rejected)
    add = _propose(manager, "add_exercise", ADD_INCLINE)

    results = manager.confirm_all([add, rejected, add])
    assert len(results) == 2
    assert {r.error.code for r in results} == {"INVALID_TRANSITION"}
    assert manager.get(add).state is ProposalState.PENDING
    assert manager.confirm_all(["proposal-404"])[0].error.code == "PROPOSAL_NOT_FOUND"
