from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from coach_tools.models.program import Program
from coach_tools.models.tool_io import Change, ToolName
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

Preview = Tuple[str, List[Change]]


def _fmt(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        parts = [f"{k}={v}" for k, v in value.model_dump(exclude_none=True).items()]
        return ", ".join(parts) or "-"
    return str(value)


def _label(field: str) -> str:
    return field.replace("_", " ").capitalize()


def _diff(current: Any, updates: Dict[str, Any]) -> List[Change]:
    changes: List[Change] = []
    for name in sorted(updates):
        before = getattr(current, name, None) if current is not None else None
        changes.append(Change(field=_label(name), before=_fmt(before), after=_fmt(updates[name])))
    return changes


def _where(position: Optional[Position]) -> str:
    return "at end" if position in (None, "end") else f"at position {position}"


def _session_label(program: Program, session_id: str) -> str:
    ref = find_session(program, session_id)
    if ref is None:
        return f"session {session_id}"
    return f"{ref.session.title} (Week {ref.week.number})"


def _week_label(program: Program, week_id: str) -> str:
    ref = find_week(program, week_id)
    return f"Week {ref.week.number}" if ref else f"week {week_id}"


def _exercise_name(program: Program, exercise_id: str) -> str:
    ref = find_exercise(program, exercise_id)
    return ref.exercise.name if ref else f"exercise {exercise_id}"


def _modify_exercise(p: ModifyExerciseParams, program: Program) -> Preview:
    ref = find_exercise(program, p.exercise_id)
    name = ref.exercise.name if ref else f"exercise {p.exercise_id}"
    where = f" in {_session_label(program, ref.session.id)}" if ref else ""
    return f"Modify: {name}{where}", _diff(ref.exercise if ref else None, p.updates.changes())


def _add_exercise(p: AddExerciseParams, program: Program) -> Preview:
    title = f"Add: {p.name} to {_session_label(program, p.session_id)}, {_where(p.position)}"
    changes = [Change(field="Sets", after=str(len(p.sets)))]
    if p.notes:
        changes.append(Change(field="Notes", after=p.notes))
    return title, changes


def _remove_exercise(p: RemoveExerciseParams, program: Program) -> Preview:
    ref = find_exercise(program, p.exercise_id)
    if ref is None:
        return f"Remove: exercise {p.exercise_id}", []
    return f"Remove: {ref.exercise.name}", [Change(field="From", after=_session_label(program, ref.session.id))]


def _reorder_exercise(p: ReorderExerciseParams, program: Program) -> Preview:
    ref = find_exercise(program, p.exercise_id)
    before = str(ref.exercise_index + 1) if ref else None
    return (
        f"Move: {_exercise_name(program, p.exercise_id)}",
        [Change(field="Position", before=before, after=str(p.new_position))],
    )


def _modify_session(p: ModifySessionParams, program: Program) -> Preview:
    ref = find_session(program, p.session_id)
    return f"Modify session: {_session_label(program, p.session_id)}", _diff(ref.session if ref else None, p.updates.changes())


def _add_session(p: AddSessionParams, program: Program) -> Preview:
    title = f"Add session: {p.title} to {_week_label(program, p.week_id)}, {_where(p.position)}"
    changes = [Change(field="Exercises", after=", ".join(ex.name for ex in p.exercises) or "none")]
    if p.day:
        changes.append(Change(field="Day", after=p.day))
    return title, changes


def _remove_session(p: RemoveSessionParams, program: Program) -> Preview:
    ref = find_session(program, p.session_id)
    changes = [Change(field="Exercises", before=str(len(ref.session.exercises)))] if ref else []
    return f"Remove session: {_session_label(program, p.session_id)}", changes


def _copy_session(p: CopySessionParams, program: Program) -> Preview:
    return (
        f"Copy session: {_session_label(program, p.source_session_id)}",
        [Change(field="To", after=f"{_week_label(program, p.target_week_id)}, {_where(p.position)}")],
    )


def _modify_week(p: ModifyWeekParams, program: Program) -> Preview:
    ref = find_week(program, p.week_id)
    return f"Modify: {_week_label(program, p.week_id)}", _diff(ref.week if ref else None, p.updates.changes())


def _add_week(p: AddWeekParams, program: Program) -> Preview:
    noun = "week" if len(p.weeks) == 1 else "weeks"
    changes = [
        Change(field="Week", after=f"{w.phase or 'unnamed'} ({w.start_date} - {w.end_date}), {len(w.sessions)} sessions")
        for w in p.weeks
    ]
    return f"Add {len(p.weeks)} {noun}, {_where(p.position)}", changes


def _remove_week(p: RemoveWeekParams, program: Program) -> Preview:
    ref = find_week(program, p.week_id)
    changes = [Change(field="Sessions", before=str(len(ref.week.sessions)))] if ref else []
    return f"Remove: {_week_label(program, p.week_id)}", changes


def _modify_set(p: ModifySetParams, program: Program) -> Preview:
    ref = find_set(program, p.set_id)
    if ref is None:
        title = f"Modify set {p.set_id}"
    else:
        title = f"Modify: {ref.exercise.name}, set {ref.set_index + 1}"
    changes: List[Change] = []
    for block in ("prescribed", "actual"):
        patch = getattr(p, block)
        if patch is not None:
            current = getattr(ref.workout_set, block) if ref else None
            for change in _diff(current, patch.changes()):
                change.field = f"{_label(block)} {change.field.lower()}"
                changes.append(change)
    if p.completed is not None:
        before = str(ref.workout_set.completed) if ref else None
        changes.append(Change(field="Completed", before=before, after=str(p.completed)))
    return title, changes


_PREVIEWS: Dict[ToolName, Callable[[Any, Program], Preview]] = {
    ToolName.MODIFY_EXERCISE: _modify_exercise,
    ToolName.ADD_EXERCISE: _add_exercise,
    ToolName.REMOVE_EXERCISE: _remove_exercise,
    ToolName.REORDER_EXERCISE: _reorder_exercise,
    ToolName.MODIFY_SESSION: _modify_session,
    ToolName.ADD_SESSION: _add_session,
    ToolName.REMOVE_SESSION: _remove_session,
    ToolName.COPY_SESSION: _copy_session,
    ToolName.MODIFY_WEEK: _modify_week,
    ToolName.ADD_WEEK: _add_week,
    ToolName.REMOVE_WEEK: _remove_week,
    ToolName.MODIFY_SET: _modify_set,
}
ensure_complete(_PREVIEWS, "Proposal previews")


def build_preview(name: Union[str, ToolName], params: ToolParams, program: Program) -> Preview:
    """One-line summary plus field-level before/after changes for the confirmation UI."""
    return _PREVIEWS[get_tool(name).name](params, program)
