from .program import (
    SetBlock,
    WorkoutSet,
    Exercise,
    CardioBlock,
    Session,
    Week,
    Program,
    program_invariant_violations,
    snapshot_version,
)
from .tool_io import (
    ToolName,
    Issue,
    ValidationReport,
    ToolCall,
    ChatMessage,
    ChatResponse,
    Change,
    ProposalView,
    Decision,
    DecisionResult,
    ReceiveResult,
)
from .tool_params import ToolParams

__all__ = [
    "SetBlock",
    "WorkoutSet",
    "Exercise",
    "CardioBlock",
    "Session",
    "Week",
    "Program",
    "program_invariant_violations",
    "snapshot_version",
    "ToolName",
    "Issue",
    "ValidationReport",
    "ToolCall",
    "ChatMessage",
    "ChatResponse",
    "Change",
    "ProposalView",
    "Decision",
    "DecisionResult",
    "ReceiveResult",
    "ToolParams",
]
