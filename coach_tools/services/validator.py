"""Structural and referential validation of agent tool calls.

Both layers return a ``ValidationReport`` and never raise for expected
conditions (unknown tool, malformed arguments, missing ids). They are
independent: ``validate_structure`` needs no program, ``validate_references``
takes already-parsed parameters.
"""
from __future__ import annotations

import json
import logging
from typing import Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from coach_tools.errors import UnknownToolError
from coach_tools.models.program import Program
from coach_tools.models.tool_io import Issue, ToolCall, ToolName, ValidationReport
from coach_tools.models.tool_params import (
    AddExerciseParams,
    AddSessionParams,
    AddWeekParams,
    CopySessionParams,
    ModifyExerciseParams,
    ModifySessionParams,
    ModifySetParams,
    ModifyWeekParams,
    Position,
    RemoveExerciseParams,
    RemoveSessionParams,
    RemoveWeekParams,
    ReorderExerciseParams,
    ToolParams,
)
from coach_tools.services.lookup import find_exercise, find_session, find_set, find_week
from coach_tools.services.registry import ensure_complete, get_tool

logger = logging.getLogger(__name__)


# =============================================================================
# STRUCTURAL VALIDATION
# =============================================================================


def _structural(message: str, field: Optional[str] = None) -> Issue:
    return Issue(code="STRUCTURAL_INVALID", message=message, field=field)


def _issues_from_error(exc: ValidationError) -> List[Issue]:
    issues: List[Issue] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        issues.append(_structural(err.get("msg", "Invalid value"), loc or None))
    return issues


def validate_structure(call: ToolCall) -> Tuple[Optional[ToolParams], ValidationReport]:
    """Check a call against its registry entry. Returns parsed params when valid."""
    try:
        definition = get_tool(call.name)
    except UnknownToolError as exc:
        return None, ValidationReport.from_issues([Issue(code="UNKNOWN_TOOL", message=str(exc))])

    raw = call.params
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            return None, ValidationReport.from_issues([_structural(f"Arguments are not valid JSON: {exc.msg}")])
    if not isinstance(raw, dict):
        return None, ValidationReport.from_issues([_structural("Arguments must be a JSON object")])

    try:
        params = definition.params_model.model_validate(raw)
    except ValidationError as exc:
        issues = _issues_from_error(exc)
        logger.debug("Structural validation failed for %s (%s): %s", call.name, call.id, issues)
        return None, ValidationReport.from_issues(issues)
    return params, ValidationReport(ok=True)


# =============================================================================
# REFERENTIAL VALIDATION
# =============================================================================


def _missing(kind: str, entity_id: str, field: str) -> Issue:
    return Issue(code="REFERENTIAL_INVALID", message=f"{kind} {entity_id} not found", field=field)


def _mismatch(message: str, field: str) -> Issue:
    return Issue(code="REFERENTIAL_INVALID", message=message, field=field)


def _check_position(position: Optional[Position], count: int, field: str = "position") -> List[Issue]:
    if position is None or position == "end":
        return []
    if position > count + 1:
        return [_mismatch(f'Invalid position {position}. Must be 1-{count + 1} or "end"', field)]
    return []


def _check_exercise_target(exercise_id: str, session_id: Optional[str], program: Program) -> List[Issue]:
    ref = find_exercise(program, exercise_id)
    if ref is None:
        return [_missing("Exercise", exercise_id, "exerciseId")]
    if session_id is not None and ref.session.id != session_id:
        return [_mismatch(
            f"Exercise {exercise_id} belongs to session {ref.session.id}, not {session_id}",
            "sessionId",
        )]
    return []


def _check_session_target(session_id: str, week_id: Optional[str], program: Program) -> List[Issue]:
    ref = find_session(program, session_id)
    if ref is None:
        return [_missing("Session", session_id, "sessionId")]
    if week_id is not None and ref.week.id != week_id:
        return [_mismatch(f"Session {session_id} belongs to week {ref.week.id}, not {week_id}", "weekId")]
    return []


def _check_modify_exercise(params: ModifyExerciseParams, program: Program) -> List[Issue]:
    return _check_exercise_target(params.exercise_id, params.session_id, program)


def _check_add_exercise(params: AddExerciseParams, program: Program) -> List[Issue]:
    ref = find_session(program, params.session_id)
    if ref is None:
        return [_missing("Session", params.session_id, "sessionId")]
    return _check_position(params.position, len(ref.session.exercises))


def _check_remove_exercise(params: RemoveExerciseParams, program: Program) -> List[Issue]:
    return _check_exercise_target(params.exercise_id, params.session_id, program)


def _check_reorder_exercise(params: ReorderExerciseParams, program: Program) -> List[Issue]:
    ref = find_exercise(program, params.exercise_id)
    if ref is None:
        return [_missing("Exercise", params.exercise_id, "exerciseId")]
    count = len(ref.session.exercises)
    if params.new_position > count:
        return [_mismatch(f"Invalid position {params.new_position}. Must be 1-{count}", "newPosition")]
    return []


def _check_modify_session(params: ModifySessionParams, program: Program) -> List[Issue]:
    return _check_session_target(params.session_id, params.week_id, program)


def _check_add_session(params: AddSessionParams, program: Program) -> List[Issue]:
    ref = find_week(program, params.week_id)
    if ref is None:
        return [_missing("Week", params.week_id, "weekId")]
    return _check_position(params.position, len(ref.week.sessions))


def _check_remove_session(params: RemoveSessionParams, program: Program) -> List[Issue]:
    return _check_session_target(params.session_id, params.week_id, program)


def _check_copy_session(params: CopySessionParams, program: Program) -> List[Issue]:
    issues: List[Issue] = []
    if find_session(program, params.source_session_id) is None:
        issues.append(_missing("Source session", params.source_session_id, "sourceSessionId"))
    target = find_week(program, params.target_week_id)
    if target is None:
        issues.append(_missing("Target week", params.target_week_id, "targetWeekId"))
    else:
        issues.extend(_check_position(params.position, len(target.week.sessions)))
    return issues


def _check_modify_week(params: ModifyWeekParams, program: Program) -> List[Issue]:
    ref = find_week(program, params.week_id)
    if ref is None:
        return [_missing("Week", params.week_id, "weekId")]
    changes = params.updates.changes()
    start = changes.get("start_date", ref.week.start_date)
    end = changes.get("end_date", ref.week.end_date)
    if start > end:
        return [_mismatch(f"Week would start on {start} after it ends on {end}", "updates")]
    return []


def _check_add_week(params: AddWeekParams, program: Program) -> List[Issue]:
    return _check_position(params.position, len(program.weeks))


def _check_remove_week(params: RemoveWeekParams, program: Program) -> List[Issue]:
    if find_week(program, params.week_id) is None:
        return [_missing("Week", params.week_id, "weekId")]
    return []


def _check_modify_set(params: ModifySetParams, program: Program) -> List[Issue]:
    ref = find_set(program, params.set_id)
    if ref is None:
        return [_missing("Set", params.set_id, "setId")]
    if params.exercise_id is not None and ref.exercise.id != params.exercise_id:
        return [_mismatch(
            f"Set {params.set_id} belongs to exercise {ref.exercise.id}, not {params.exercise_id}",
            "exerciseId",
        )]
    return []


_CHECKS: Dict[ToolName, Callable[..., List[Issue]]] = {
    ToolName.MODIFY_EXERCISE: _check_modify_exercise,
    ToolName.ADD_EXERCISE: _check_add_exercise,
    ToolName.REMOVE_EXERCISE: _check_remove_exercise,
    ToolName.REORDER_EXERCISE: _check_reorder_exercise,
    ToolName.MODIFY_SESSION: _check_modify_session,
    ToolName.ADD_SESSION: _check_add_session,
    ToolName.REMOVE_SESSION: _check_remove_session,
    ToolName.COPY_SESSION: _check_copy_session,
    ToolName.MODIFY_WEEK: _check_modify_week,
    ToolName.ADD_WEEK: _check_add_week,
    ToolName.REMOVE_WEEK: _check_remove_week,
    ToolName.MODIFY_SET: _check_modify_set,
}
ensure_complete(_CHECKS, "Referential validators")


def validate_references(name: Union[str, ToolName], params: ToolParams, program: Program) -> ValidationReport:
    """Check that every id in ``params`` resolves against ``program`` and fits together."""
    tool = get_tool(name).name
    issues = _CHECKS[tool](params, program)
    if issues:
        logger.debug("Referential validation failed for %s: %s", tool.value, issues)
    return ValidationReport.from_issues(issues)


def validate_tool_call(call: ToolCall, program: Program) -> Tuple[Optional[ToolParams], ValidationReport]:
    params, report = validate_structure(call)
    if params is None:
        return None, report
    return params, validate_references(call.name, params, program)
