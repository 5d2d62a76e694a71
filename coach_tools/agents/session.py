from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from coach_tools.models import (
    ChatMessage,
    ChatResponse,
    Decision,
    DecisionResult,
    Issue,
    Program,
    ProposalView,
    ReceiveResult,
)
from coach_tools.services.applier import Clock, IdFactory
from coach_tools.services.lifecycle import ProposalManager

Transport = Callable[[Sequence[ChatMessage], Program], ChatResponse]


def _default_transport(history: Sequence[ChatMessage], program: Program) -> ChatResponse:
    from coach_tools.llm.groq_client import send_chat_message

    return send_chat_message(history, program)


def _describe_issues(issues: Sequence[Issue]) -> str:
    parts = []
    for issue in issues:
        where = f" ({issue.field})" if issue.field else ""
        parts.append(f"{issue.code}{where}: {issue.message}")
    return "; ".join(parts)


def _feedback_note(result: ReceiveResult) -> Optional[str]:
    if result.error is not None:
        return f"Tool call {result.call_id} could not be retried: {_describe_issues([result.error])}"
    if not result.agent_feedback:
        return None
    issues = _describe_issues(result.agent_feedback)
    if result.proposal is None:
        return f"Tool call {result.call_id} ({result.tool_name}) was not accepted: {issues}"
    return f'Proposed "{result.proposal.human_summary}" will fail unless corrected: {issues}'


def _decision_note(result: DecisionResult) -> str:
    proposal = result.proposal
    if proposal is None:
        return f"Decision refused: {_describe_issues([result.error])}" if result.error else "Decision refused."
    summary = proposal.human_summary
    if proposal.state == "applied":
        return f'The user confirmed "{summary}"; it was applied.'
    if proposal.state == "rejected":
        return f'The user rejected "{summary}"; nothing was changed.'
    reason = _describe_issues([result.error]) if result.error else "unknown error"
    if proposal.state == "pending":
        return f'Could not confirm "{summary}": {reason}'
    return f'Failed to apply "{summary}": {reason}'


@dataclass
class TurnResult:
    reply: str
    proposals: List[ProposalView] = field(default_factory=list)
    agent_feedback: List[Issue] = field(default_factory=list)
    abandoned: List[str] = field(default_factory=list)


class ConversationSession:
    """
    One conversation: its message history, its program root and its proposals.

    Tool results and user decisions are written back into the history as
    ``system`` messages so the coach sees them on its next turn.
    """

    def __init__(
        self,
        program: Program,
        transport: Optional[Transport] = None,
        *,
        id_factory: Optional[IdFactory] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.manager = ProposalManager(program, id_factory=id_factory, clock=clock)
        self.history: List[ChatMessage] = []
        self._transport = transport or _default_transport

    @property
    def program(self) -> Program:
        return self.manager.program

    def _note(self, text: str) -> None:
        self.history.append(ChatMessage(role="system", content=f"[SYSTEM] {text}"))

    def send(self, text: str) -> TurnResult:
        # a new user message ends the previous turn
        abandoned = self.manager.end_turn()
        if abandoned:
            self._note(
                f"The user moved on without deciding; {len(abandoned)} proposed change(s) were discarded: "
                + ", ".join(abandoned)
            )
        self.history.append(ChatMessage(role="user", content=text))

        response = self._transport(list(self.history), self.manager.program)
        if response.reply:
            self.history.append(ChatMessage(role="coach", content=response.reply))

        received: List[ReceiveResult] = self.manager.receive_response(response)
        for result in received:
            note = _feedback_note(result)
            if note:
                self._note(note)
        return TurnResult(
            reply=response.reply,
            proposals=[r.proposal for r in received if r.proposal is not None],
            agent_feedback=[issue for r in received for issue in r.agent_feedback],
            abandoned=abandoned,
        )

    # ----- user decisions, echoed to the coach -----

    def decide(self, decision: Decision) -> DecisionResult:
        result = self.manager.decide(decision)
        self._note(_decision_note(result))
        return result

    def confirm(self, proposal_id: str) -> DecisionResult:
        return self.decide(Decision(proposal_id=proposal_id, decision="confirm"))

    def reject(self, proposal_id: str) -> DecisionResult:
        return self.decide(Decision(proposal_id=proposal_id, decision="reject"))

    def confirm_all(self, proposal_ids: Sequence[str]) -> List[DecisionResult]:
        results = self.manager.confirm_all(proposal_ids)
        for result in results:
            self._note(_decision_note(result))
        return results

    def retry(self, proposal_id: str) -> ReceiveResult:
        result = self.manager.retry(proposal_id)
        note = _feedback_note(result)
        if note:
            self._note(note)
        return result
