from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class ToolName(str, Enum):
    """Closed set of program-modifying tools the coach agent may call."""

    MODIFY_EXERCISE = "modify_exercise"
    ADD_EXERCISE = "add_exercise"
    REMOVE_EXERCISE = "remove_exercise"
    REORDER_EXERCISE = "reorder_exercises"
    MODIFY_SESSION = "modify_session"
    ADD_SESSION = "add_session"
    REMOVE_SESSION = "remove_session"
    COPY_SESSION = "copy_session"
    MODIFY_WEEK = "modify_week"
    ADD_WEEK = "add_week"
    REMOVE_WEEK = "remove_week"
    MODIFY_SET = "modify_set"


IssueCode = Literal[
    "UNKNOWN_TOOL",
    "STRUCTURAL_INVALID",
    "REFERENTIAL_INVALID",
    "NOT_FOUND",
    "ALREADY_APPLIED",
    "STALE_SNAPSHOT",
    "INVALID_TRANSITION",
    "PROPOSAL_NOT_FOUND",
    "APPLY_FAILURE",
]


class Issue(BaseModel):
    code: IssueCode
    message: str
    field: Optional[str] = None


class ValidationReport(BaseModel):
    ok: bool
    issues: List[Issue] = Field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: List[Issue]) -> "ValidationReport":
        return cls(ok=not issues, issues=issues)


def _new_call_id() -> str:
    return f"call-{uuid.uuid4().hex[:12]}"


class ToolCall(BaseModel):
    id: str = Field(default_factory=_new_call_id)
    name: str
    # Chat transports deliver arguments as a JSON string; already-decoded dicts are accepted too.
    params: Union[Dict[str, Any], str] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    # "system" carries tool results and user decisions back to the coach
    role: Literal["user", "coach", "system"]
    content: str


class ChatResponse(BaseModel):
    reply: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)


class Change(BaseModel):
    field: str
    before: Optional[str] = None
    after: Optional[str] = None


class ProposalView(BaseModel):
    """What the confirmation UI renders for one proposal."""

    id: str
    tool_name: str
    human_summary: str
    changes: List[Change] = Field(default_factory=list)
    state: str
    validation: ValidationReport
    failure: Optional[Issue] = None
    result_version: Optional[str] = None


class Decision(BaseModel):
    proposal_id: str
    decision: Literal["confirm", "reject"]


class DecisionResult(BaseModel):
    ok: bool
    proposal: Optional[ProposalView] = None
    error: Optional[Issue] = None
    program_version: str


class ReceiveResult(BaseModel):
    call_id: str
    tool_name: str
    proposal: Optional[ProposalView] = None
    # Malformed calls are reported to the agent only; they never reach the user.
    agent_feedback: List[Issue] = Field(default_factory=list)
    error: Optional[Issue] = None

    @property
    def accepted(self) -> bool:
        return self.proposal is not None
