"""
Proposal lifecycle - the confirmation gate between the coach agent and the program.

States:
    pending -> confirmed | rejected
    confirmed -> applied | failed
    rejected, applied, failed are terminal.

A tool call that fails structural validation never becomes a proposal; its
issues go back to the agent. Every other call waits in ``pending`` until the
user decides. Nothing is applied without an explicit confirm.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from coach_tools.config import get_settings
from coach_tools.errors import (
    AlreadyAppliedError,
    InvalidTransitionError,
    ProposalNotFoundError,
    ToolError,
)
from coach_tools.models.program import Program, snapshot_version
from coach_tools.models.tool_io import (
    ChatResponse,
    Change,
    Decision,
    DecisionResult,
    Issue,
    ProposalView,
    ReceiveResult,
    ToolCall,
    ValidationReport,
)
from coach_tools.models.tool_params import ToolParams
from coach_tools.services.applier import Clock, IdFactory, apply_tool_call, new_entity_id, utc_now
from coach_tools.services.summary import build_preview
from coach_tools.services.validator import validate_references, validate_structure

logger = logging.getLogger(__name__)


class ProposalState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    APPLIED = "applied"
    FAILED = "failed"


class ProposalEvent(str, Enum):
    CONFIRM = "confirm"
    REJECT = "reject"
    APPLY = "apply"
    FAIL = "fail"


_TRANSITIONS: Dict[Tuple[ProposalState, ProposalEvent], ProposalState] = {
    (ProposalState.PENDING, ProposalEvent.CONFIRM): ProposalState.CONFIRMED,
    (ProposalState.PENDING, ProposalEvent.REJECT): ProposalState.REJECTED,
    (ProposalState.CONFIRMED, ProposalEvent.APPLY): ProposalState.APPLIED,
    (ProposalState.CONFIRMED, ProposalEvent.FAIL): ProposalState.FAILED,
}

TERMINAL_STATES = frozenset({ProposalState.REJECTED, ProposalState.APPLIED, ProposalState.FAILED})


def advance(state: ProposalState, event: ProposalEvent) -> ProposalState:
    """Next state, or a typed error when the move is not allowed."""
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        if state is ProposalState.APPLIED and event is ProposalEvent.CONFIRM:
            raise AlreadyAppliedError(state.value, event.value) from None
        raise InvalidTransitionError(state.value, event.value) from None


@dataclass
class Proposal:
    id: str
    call: ToolCall
    params: ToolParams
    validation: ValidationReport
    base_version: str
    summary: str
    preview: List[Change]
    state: ProposalState = ProposalState.PENDING
    created_at: dt.datetime = field(default_factory=utc_now)
    decided_at: Optional[dt.datetime] = None
    failure: Optional[Issue] = None
    result_version: Optional[str] = None
    result: Optional[Program] = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def move(self, event: ProposalEvent) -> None:
        previous = self.state
        self.state = advance(self.state, event)
        logger.info("Proposal %s (%s): %s -> %s", self.id, self.call.name, previous.value, self.state.value)

    def view(self) -> ProposalView:
        return ProposalView(
            id=self.id,
            tool_name=self.call.name,
            human_summary=self.summary,
            changes=self.preview,
            state=self.state.value,
            validation=self.validation,
            failure=self.failure,
            result_version=self.result_version,
        )


class ProposalManager:
    """
    Holds the current program root and the proposals raised against it.

    One instance per conversation. Apply attempts are serialized; readers only
    ever see immutable snapshots.
    """

    def __init__(
        self,
        program: Program,
        *,
        id_factory: Optional[IdFactory] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._program = program
        self._id_factory = id_factory or new_entity_id
        self._clock = clock or utc_now
        self._proposals: Dict[str, Proposal] = {}
        self._lock = threading.RLock()

    @property
    def program(self) -> Program:
        return self._program

    @property
    def version(self) -> str:
        return snapshot_version(self._program)

    def get(self, proposal_id: str) -> Proposal:
        try:
            return self._proposals[proposal_id]
        except KeyError:
            raise ProposalNotFoundError(proposal_id) from None

    # ----- inbound from the chat transport -----

    def receive(self, call: ToolCall) -> ReceiveResult:
        params, structural = validate_structure(call)
        if params is None:
            logger.info("Tool call %s (%s) rejected before proposal: %s", call.id, call.name, structural.issues)
            return ReceiveResult(call_id=call.id, tool_name=call.name, agent_feedback=structural.issues)

        with self._lock:
            program = self._program
            validation = validate_references(call.name, params, program)
            summary, preview = build_preview(call.name, params, program)
            proposal = Proposal(
                id=self._id_factory("proposal"),
                call=call,
                params=params,
                validation=validation,
                base_version=snapshot_version(program),
                summary=summary,
                preview=preview,
                created_at=self._clock(),
            )
            self._proposals[proposal.id] = proposal
        logger.info("Proposal %s created for %s (valid=%s)", proposal.id, call.name, validation.ok)
        return ReceiveResult(
            call_id=call.id,
            tool_name=call.name,
            proposal=proposal.view(),
            agent_feedback=validation.issues,
        )

    def receive_response(self, response: ChatResponse) -> List[ReceiveResult]:
        return [self.receive(call) for call in response.tool_calls]

    # ----- outbound to the confirmation UI -----

    def views(self) -> List[ProposalView]:
        with self._lock:
            return [p.view() for p in self._proposals.values()]

    def pending_views(self) -> List[ProposalView]:
        with self._lock:
            return [p.view() for p in self._proposals.values() if p.state is ProposalState.PENDING]

    # ----- user decisions -----

    def decide(self, decision: Decision) -> DecisionResult:
        try:
            if decision.decision == "confirm":
                proposal = self._confirm(decision.proposal_id)
            else:
                proposal = self._reject(decision.proposal_id)
        except ToolError as exc:
            logger.warning("Decision %s on %s refused: %s", decision.decision, decision.proposal_id, exc)
            existing = self._proposals.get(decision.proposal_id)
            return DecisionResult(
                ok=False,
                proposal=existing.view() if existing else None,
                error=Issue(code=exc.code, message=str(exc)),
                program_version=self.version,
            )
        return DecisionResult(
            ok=proposal.state is ProposalState.APPLIED or proposal.state is ProposalState.REJECTED,
            proposal=proposal.view(),
            error=proposal.failure,
            program_version=self.version,
        )

    def confirm(self, proposal_id: str) -> DecisionResult:
        return self.decide(Decision(proposal_id=proposal_id, decision="confirm"))

    def reject(self, proposal_id: str) -> DecisionResult:
        return self.decide(Decision(proposal_id=proposal_id, decision="reject"))

    def confirm_all(self, proposal_ids: Sequence[str]) -> List[DecisionResult]:
        """
        Confirm several proposals as one change.

        Each proposal is applied in order to a working snapshot; the program
        root is replaced only if every one of them succeeds. Otherwise all of
        them fail with the first issue and the root is left as it was.
        """
        ids = list(dict.fromkeys(proposal_ids))
        try:
            proposals = self._confirm_batch(ids)
        except ToolError as exc:
            logger.warning("Batch confirm of %s refused: %s", ids, exc)
            error = Issue(code=exc.code, message=str(exc))
            version = self.version
            results: List[DecisionResult] = []
            for proposal_id in ids:
                existing = self._proposals.get(proposal_id)
                results.append(DecisionResult(
                    ok=False,
                    proposal=existing.view() if existing else None,
                    error=error,
                    program_version=version,
                ))
            return results

        version = self.version
        return [
            DecisionResult(
                ok=p.state is ProposalState.APPLIED,
                proposal=p.view(),
                error=p.failure,
                program_version=version,
            )
            for p in proposals
        ]

    def _confirm_batch(self, proposal_ids: List[str]) -> List[Proposal]:
        with self._lock:
            proposals = [self.get(pid) for pid in proposal_ids]
            # refuse the whole batch before any proposal moves
            for proposal in proposals:
                advance(proposal.state, ProposalEvent.CONFIRM)
            now = self._clock()
            for proposal in proposals:
                proposal.move(ProposalEvent.CONFIRM)
                proposal.decided_at = now

            current = self._program
            version = snapshot_version(current)
            if any(p.base_version != version for p in proposals):
                return self._fail_all(proposals, Issue(
                    code="STALE_SNAPSHOT",
                    message="The program changed since these changes were proposed. Ask the coach to retry.",
                ))

            working = current
            for proposal in proposals:
                report = validate_references(proposal.call.name, proposal.params, working)
                proposal.validation = report
                if not report.ok:
                    return self._fail_all(proposals, report.issues[0])
                result = apply_tool_call(
                    working,
                    proposal.call.name,
                    proposal.params,
                    id_factory=self._id_factory,
                    clock=self._clock,
                )
                if not result.ok:
                    return self._fail_all(proposals, result.error)
                working = result.program

            self._program = working
            result_version = snapshot_version(working)
            for proposal in proposals:
                proposal.result = working
                proposal.result_version = result_version
                proposal.move(ProposalEvent.APPLY)
            logger.info("Applied %d proposals as one change, version %s", len(proposals), result_version)
        return proposals

    def _fail_all(self, proposals: List[Proposal], issue: Optional[Issue]) -> List[Proposal]:
        for proposal in proposals:
            self._fail(proposal, issue)
        return proposals

    def _reject(self, proposal_id: str) -> Proposal:
        with self._lock:
            proposal = self.get(proposal_id)
            proposal.move(ProposalEvent.REJECT)
            proposal.decided_at = self._clock()
        return proposal

    def _confirm(self, proposal_id: str) -> Proposal:
        with self._lock:
            proposal = self.get(proposal_id)
            proposal.move(ProposalEvent.CONFIRM)
            proposal.decided_at = self._clock()

            current = self._program
            if snapshot_version(current) != proposal.base_version:
                return self._fail(proposal, Issue(
                    code="STALE_SNAPSHOT",
                    message="The program changed since this change was proposed. Ask the coach to retry.",
                ))

            revalidated = validate_references(proposal.call.name, proposal.params, current)
            proposal.validation = revalidated
            if not revalidated.ok:
                return self._fail(proposal, revalidated.issues[0])

            result = apply_tool_call(
                current,
                proposal.call.name,
                proposal.params,
                id_factory=self._id_factory,
                clock=self._clock,
            )
            if not result.ok:
                if result.error is not None and result.error.code == "APPLY_FAILURE":
                    logger.error("Proposal %s hit an apply defect: %s", proposal.id, result.error.message)
                return self._fail(proposal, result.error)

            self._program = result.program
            proposal.result = result.program
            proposal.result_version = snapshot_version(result.program)
            proposal.move(ProposalEvent.APPLY)
        return proposal

    def _fail(self, proposal: Proposal, issue: Optional[Issue]) -> Proposal:
        proposal.failure = issue or Issue(code="APPLY_FAILURE", message="Apply failed")
        proposal.move(ProposalEvent.FAIL)
        logger.warning("Proposal %s failed: %s", proposal.id, proposal.failure.message)
        return proposal

    # ----- turn handling -----

    def retry(self, proposal_id: str) -> ReceiveResult:
        """Propose a failed call again against the current snapshot."""
        try:
            proposal = self.get(proposal_id)
            if proposal.state is not ProposalState.FAILED:
                raise InvalidTransitionError(proposal.state.value, "retry")
        except ToolError as exc:
            logger.warning("Retry of %s refused: %s", proposal_id, exc)
            existing = self._proposals.get(proposal_id)
            return ReceiveResult(
                call_id=existing.call.id if existing else proposal_id,
                tool_name=existing.call.name if existing else "",
                error=Issue(code=exc.code, message=str(exc)),
            )
        call = proposal.call.model_copy(update={"id": f"{proposal.call.id}-retry"})
        return self.receive(call)

    def end_turn(self) -> List[str]:
        """Abandon undecided proposals and forget finished ones. Returns abandoned ids."""
        abandoned: List[str] = []
        with self._lock:
            if get_settings().ABANDON_PENDING_ON_TURN_END:
                now = self._clock()
                for proposal in self._proposals.values():
                    if proposal.state is ProposalState.PENDING:
                        proposal.move(ProposalEvent.REJECT)
                        proposal.decided_at = now
                        abandoned.append(proposal.id)
            self._proposals = {pid: p for pid, p in self._proposals.items() if not p.terminal}
        return abandoned
