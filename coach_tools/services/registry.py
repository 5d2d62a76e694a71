from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Type

from coach_tools.errors import RegistryConfigError, UnknownToolError
from coach_tools.models.tool_io import ToolName
from coach_tools.models.tool_params import (
    AddExerciseParams,
    AddSessionParams,
    AddWeekParams,
    CopySessionParams,
    ModifyExerciseParams,
    ModifySessionParams,
    ModifySetParams,
    ModifyWeekParams,
    RemoveExerciseParams,
    RemoveSessionParams,
    RemoveWeekParams,
    ReorderExerciseParams,
    ToolParams,
)


@dataclass(frozen=True)
class ToolDefinition:
    name: ToolName
    description: str
    params_model: Type[ToolParams]

    def input_schema(self) -> Dict[str, Any]:
        return self.params_model.model_json_schema(by_alias=True)

    def to_agent_tool(self) -> Dict[str, Any]:
        """Function-calling entry in the shape chat completion APIs expect."""
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": self.input_schema(),
            },
        }


_DEFINITIONS = (
    ToolDefinition(
        ToolName.MODIFY_EXERCISE,
        "Change name, notes, superset label or completion of one exercise. Only listed fields change.",
        ModifyExerciseParams,
    ),
    ToolDefinition(
        ToolName.ADD_EXERCISE,
        "Add an exercise to a session at a 1-based position, or at the end when position is omitted.",
        AddExerciseParams,
    ),
    ToolDefinition(
        ToolName.REMOVE_EXERCISE,
        "Remove one exercise from its session.",
        RemoveExerciseParams,
    ),
    ToolDefinition(
        ToolName.REORDER_EXERCISE,
        "Move an exercise to a new 1-based position within its session.",
        ReorderExerciseParams,
    ),
    ToolDefinition(
        ToolName.MODIFY_SESSION,
        "Change title, day, date, notes, completion or cardio of a session. Only listed fields change.",
        ModifySessionParams,
    ),
    ToolDefinition(
        ToolName.ADD_SESSION,
        "Add a session, optionally with exercises, to a week.",
        AddSessionParams,
    ),
    ToolDefinition(
        ToolName.REMOVE_SESSION,
        "Remove a session and all of its exercises.",
        RemoveSessionParams,
    ),
    ToolDefinition(
        ToolName.COPY_SESSION,
        "Copy a session into a week. The copy starts uncompleted with no logged set data.",
        CopySessionParams,
    ),
    ToolDefinition(
        ToolName.MODIFY_WEEK,
        "Change phase, dates or description of a week.",
        ModifyWeekParams,
    ),
    ToolDefinition(
        ToolName.ADD_WEEK,
        "Insert one or more weeks into the program. Week numbers are reassigned in order.",
        AddWeekParams,
    ),
    ToolDefinition(
        ToolName.REMOVE_WEEK,
        "Remove a week. Later weeks are renumbered.",
        RemoveWeekParams,
    ),
    ToolDefinition(
        ToolName.MODIFY_SET,
        "Change prescribed or logged reps, weight, RIR or notes of one set, or mark it completed.",
        ModifySetParams,
    ),
)


def ensure_complete(table: Iterable[Any], what: str) -> None:
    """Fail at import time when a dispatch table does not cover exactly ``ToolName``."""
    keys = set(table)
    expected = set(ToolName)
    missing = sorted(n.value for n in expected - keys)
    extra = sorted(str(k) for k in keys - expected)
    if missing or extra:
        raise RegistryConfigError(f"{what} out of step with ToolName: missing={missing} extra={extra}")


TOOL_REGISTRY: Mapping[ToolName, ToolDefinition] = MappingProxyType({d.name: d for d in _DEFINITIONS})
ensure_complete(TOOL_REGISTRY, "Tool registry")


def get_tool(name: str) -> ToolDefinition:
    try:
        return TOOL_REGISTRY[ToolName(name)]
    except ValueError:
        raise UnknownToolError(name) from None


def agent_tool_schemas() -> List[Dict[str, Any]]:
    return [d.to_agent_tool() for d in TOOL_REGISTRY.values()]
