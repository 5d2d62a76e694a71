from __future__ import annotations


class ToolError(RuntimeError):
    """Base class for tool-call protocol errors. ``code`` matches ``Issue.code``."""

    code = "APPLY_FAILURE"


class UnknownToolError(ToolError):
    code = "UNKNOWN_TOOL"

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name!r}")
        self.name = name


class RegistryConfigError(ToolError):
    """Tool enumeration and dispatch tables are out of step."""

    code = "APPLY_FAILURE"


class InvalidTransitionError(ToolError):
    code = "INVALID_TRANSITION"

    def __init__(self, state: str, event: str) -> None:
        super().__init__(f"Cannot {event} a proposal in state '{state}'")
        self.state = state
        self.event = event


class AlreadyAppliedError(InvalidTransitionError):
    code = "ALREADY_APPLIED"


class ProposalNotFoundError(ToolError):
    code = "PROPOSAL_NOT_FOUND"

    def __init__(self, proposal_id: str) -> None:
        super().__init__(f"Proposal {proposal_id} not found")
        self.proposal_id = proposal_id
