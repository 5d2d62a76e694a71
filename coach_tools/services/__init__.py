from .lookup import find_week, find_session, find_exercise, find_set, index_program
from .registry import TOOL_REGISTRY, ToolDefinition, get_tool, agent_tool_schemas
from .validator import validate_structure, validate_references, validate_tool_call
from .applier import ApplyResult, apply_tool_call
from .lifecycle import Proposal, ProposalManager, ProposalState, advance
from .export import to_record, from_record, to_json, from_json, to_csv, to_markdown

__all__ = [
    "find_week",
    "find_session",
    "find_exercise",
    "find_set",
    "index_program",
    "TOOL_REGISTRY",
    "ToolDefinition",
    "get_tool",
    "agent_tool_schemas",
    "validate_structure",
    "validate_references",
    "validate_tool_call",
    "ApplyResult",
    "apply_tool_call",
    "Proposal",
    "ProposalManager",
    "ProposalState",
    "advance",
    "to_record",
    "from_record",
    "to_json",
    "from_json",
    "to_csv",
    "to_markdown",
]
