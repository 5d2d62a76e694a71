"""
Mutation Applier - pure, per-tool transformations of a program snapshot.

Every function takes the current snapshot and validated parameters and
returns a new snapshot. Nothing is mutated in place: only the path from the
changed node up to the root is rebuilt, untouched siblings are shared by
reference.

Key rules:
- Targets are re-resolved here; an earlier validation pass is not trusted.
- Modify tools apply only the fields present in the payload.
- On any failure the input program object is returned unchanged.
- Program invariants are checked after every apply.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from coach_tools.config import get_settings
from coach_tools.errors import UnknownToolError
from coach_tools.models.program import (
    Exercise,
    Program,
    Session,
    Week,
    WorkoutSet,
    program_invariant_violations,
)
from coach_tools.models.tool_io import Issue, ToolName
from coach_tools.models.tool_params import (
    AddExerciseParams,
    AddSessionParams,
    AddWeekParams,
    CopySessionParams,
    ModifyExerciseParams,
    ModifySessionParams,
    ModifySetParams,
    ModifyWeekParams,
    NewExercise,
    NewSession,
    NewWeek,
    Position,
    RemoveExerciseParams,
    RemoveSessionParams,
    RemoveWeekParams,
    ReorderExerciseParams,
    ToolParams,
)
from coach_tools.services.lookup import (
    ExerciseRef,
    SessionRef,
    SetRef,
    find_exercise,
    find_session,
    find_set,
    find_week,
)
from coach_tools.services.registry import ensure_complete, get_tool

logger = logging.getLogger(__name__)

IdFactory = Callable[[str], str]
Clock = Callable[[], dt.datetime]


def new_entity_id(kind: str) -> str:
    """Fresh id such as ``exercise-3f9c1a7b2d4e``."""
    return f"{kind}-{uuid.uuid4().hex[:get_settings().ID_HEX_LENGTH]}"


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass
class ApplyResult:
    """Result of applying one tool call."""
    ok: bool
    program: Program
    error: Optional[Issue] = None
    created_ids: List[str] = field(default_factory=list)


class _TargetMissing(Exception):
    pass


class _Conflict(Exception):
    pass


@dataclass
class _Context:
    id_factory: IdFactory
    created: List[str] = field(default_factory=list)

    def new_id(self, kind: str) -> str:
        entity_id = self.id_factory(kind)
        self.created.append(entity_id)
        return entity_id


# =============================================================================
# COPY-ON-WRITE HELPERS
# =============================================================================


def _replace_at(items: Tuple[Any, ...], index: int, item: Any) -> Tuple[Any, ...]:
    return items[:index] + (item,) + items[index + 1:]


def _insert_at(items: Tuple[Any, ...], index: int, new: Tuple[Any, ...]) -> Tuple[Any, ...]:
    return items[:index] + new + items[index:]


def _remove_at(items: Tuple[Any, ...], index: int) -> Tuple[Any, ...]:
    return items[:index] + items[index + 1:]


def _insert_index(position: Optional[Position], count: int) -> int:
    if position is None or position == "end":
        return count
    if position > count + 1:
        raise _Conflict(f'Invalid position {position}. Must be 1-{count + 1} or "end"')
    return position - 1


def _with_week(program: Program, week_index: int, week: Week) -> Program:
    return program.model_copy(update={"weeks": _replace_at(program.weeks, week_index, week)})


def _with_session(program: Program, ref: Union[SessionRef, ExerciseRef, SetRef], session: Session) -> Program:
    week = ref.week.model_copy(update={"sessions": _replace_at(ref.week.sessions, ref.session_index, session)})
    return _with_week(program, ref.week_index, week)


def _with_exercise(program: Program, ref: Union[ExerciseRef, SetRef], exercise: Exercise) -> Program:
    session = ref.session.model_copy(
        update={"exercises": _replace_at(ref.session.exercises, ref.exercise_index, exercise)}
    )
    return _with_session(program, ref, session)


def _with_set(program: Program, ref: SetRef, workout_set: WorkoutSet) -> Program:
    exercise = ref.exercise.model_copy(update={"sets": _replace_at(ref.exercise.sets, ref.set_index, workout_set)})
    return _with_exercise(program, ref, exercise)


def _renumber(weeks: Tuple[Week, ...], start: int) -> Tuple[Week, ...]:
    return tuple(
        week if week.number == start + i else week.model_copy(update={"number": start + i})
        for i, week in enumerate(weeks)
    )


# =============================================================================
# BUILDERS
# =============================================================================


def _build_exercise(draft: NewExercise, ctx: _Context) -> Exercise:
    return Exercise(
        id=ctx.new_id("exercise"),
        name=draft.name,
        notes=draft.notes,
        group_label=draft.group_label,
        sets=tuple(WorkoutSet(id=ctx.new_id("set"), prescribed=block) for block in draft.sets),
    )


def _build_session(draft: NewSession, ctx: _Context) -> Session:
    return Session(
        id=ctx.new_id("session"),
        title=draft.title,
        day=draft.day,
        date=draft.date,
        notes=draft.notes,
        cardio=draft.cardio,
        exercises=tuple(_build_exercise(ex, ctx) for ex in draft.exercises),
    )


def _build_week(draft: NewWeek, ctx: _Context) -> Week:
    return Week(
        id=ctx.new_id("week"),
        number=1,  # reassigned by _renumber
        phase=draft.phase,
        start_date=draft.start_date,
        end_date=draft.end_date,
        description=draft.description,
        sessions=tuple(_build_session(s, ctx) for s in draft.sessions),
    )


def _fresh_copy(session: Session, ctx: _Context) -> Session:
    """Copy with new ids, no completion state and no logged set data."""
    exercises = tuple(
        ex.model_copy(update={
            "id": ctx.new_id("exercise"),
            "completed": False,
            "sets": tuple(WorkoutSet(id=ctx.new_id("set"), prescribed=s.prescribed) for s in ex.sets),
        })
        for ex in session.exercises
    )
    return session.model_copy(update={
        "id": ctx.new_id("session"),
        "completed": False,
        "started_at": None,
        "completed_at": None,
        "exercises": exercises,
    })


# =============================================================================
# EXERCISE TOOLS
# =============================================================================


def _exercise_ref(program: Program, exercise_id: str) -> ExerciseRef:
    ref = find_exercise(program, exercise_id)
    if ref is None:
        raise _TargetMissing(f"Exercise {exercise_id} not found")
    return ref


def _session_ref(program: Program, session_id: str) -> SessionRef:
    ref = find_session(program, session_id)
    if ref is None:
        raise _TargetMissing(f"Session {session_id} not found")
    return ref


def apply_modify_exercise(program: Program, params: ModifyExerciseParams, ctx: _Context) -> Program:
    ref = _exercise_ref(program, params.exercise_id)
    return _with_exercise(program, ref, ref.exercise.model_copy(update=params.updates.changes()))


def apply_add_exercise(program: Program, params: AddExerciseParams, ctx: _Context) -> Program:
    ref = _session_ref(program, params.session_id)
    index = _insert_index(params.position, len(ref.session.exercises))
    exercise = _build_exercise(params, ctx)
    session = ref.session.model_copy(update={"exercises": _insert_at(ref.session.exercises, index, (exercise,))})
    return _with_session(program, ref, session)


def apply_remove_exercise(program: Program, params: RemoveExerciseParams, ctx: _Context) -> Program:
    ref = _exercise_ref(program, params.exercise_id)
    session = ref.session.model_copy(update={"exercises": _remove_at(ref.session.exercises, ref.exercise_index)})
    return _with_session(program, ref, session)


def apply_reorder_exercise(program: Program, params: ReorderExerciseParams, ctx: _Context) -> Program:
    ref = _exercise_ref(program, params.exercise_id)
    count = len(ref.session.exercises)
    if params.new_position > count:
        raise _Conflict(f"Invalid position {params.new_position}. Must be 1-{count}")
    rest = _remove_at(ref.session.exercises, ref.exercise_index)
    exercises = _insert_at(rest, params.new_position - 1, (ref.exercise,))
    return _with_session(program, ref, ref.session.model_copy(update={"exercises": exercises}))


# =============================================================================
# SESSION TOOLS
# =============================================================================


def apply_modify_session(program: Program, params: ModifySessionParams, ctx: _Context) -> Program:
    ref = _session_ref(program, params.session_id)
    return _with_session(program, ref, ref.session.model_copy(update=params.updates.changes()))


def apply_add_session(program: Program, params: AddSessionParams, ctx: _Context) -> Program:
    ref = find_week(program, params.week_id)
    if ref is None:
        raise _TargetMissing(f"Week {params.week_id} not found")
    index = _insert_index(params.position, len(ref.week.sessions))
    session = _build_session(params, ctx)
    week = ref.week.model_copy(update={"sessions": _insert_at(ref.week.sessions, index, (session,))})
    return _with_week(program, ref.week_index, week)


def apply_remove_session(program: Program, params: RemoveSessionParams, ctx: _Context) -> Program:
    ref = _session_ref(program, params.session_id)
    week = ref.week.model_copy(update={"sessions": _remove_at(ref.week.sessions, ref.session_index)})
    return _with_week(program, ref.week_index, week)


def apply_copy_session(program: Program, params: CopySessionParams, ctx: _Context) -> Program:
    source = find_session(program, params.source_session_id)
    if source is None:
        raise _TargetMissing(f"Source session {params.source_session_id} not found")
    target = find_week(program, params.target_week_id)
    if target is None:
        raise _TargetMissing(f"Target week {params.target_week_id} not found")
    index = _insert_index(params.position, len(target.week.sessions))
    copy = _fresh_copy(source.session, ctx)
    week = target.week.model_copy(update={"sessions": _insert_at(target.week.sessions, index, (copy,))})
    return _with_week(program, target.week_index, week)


# =============================================================================
# WEEK TOOLS
# =============================================================================


def apply_modify_week(program: Program, params: ModifyWeekParams, ctx: _Context) -> Program:
    ref = find_week(program, params.week_id)
    if ref is None:
        raise _TargetMissing(f"Week {params.week_id} not found")
    return _with_week(program, ref.week_index, ref.week.model_copy(update=params.updates.changes()))


def apply_add_week(program: Program, params: AddWeekParams, ctx: _Context) -> Program:
    start = program.weeks[0].number if program.weeks else 1
    index = _insert_index(params.position, len(program.weeks))
    new_weeks = tuple(_build_week(draft, ctx) for draft in params.weeks)
    weeks = _renumber(_insert_at(program.weeks, index, new_weeks), start)
    return program.model_copy(update={"weeks": weeks})


def apply_remove_week(program: Program, params: RemoveWeekParams, ctx: _Context) -> Program:
    ref = find_week(program, params.week_id)
    if ref is None:
        raise _TargetMissing(f"Week {params.week_id} not found")
    weeks = _renumber(_remove_at(program.weeks, ref.week_index), program.weeks[0].number)
    return program.model_copy(update={"weeks": weeks})


# =============================================================================
# SET TOOLS
# =============================================================================


def apply_modify_set(program: Program, params: ModifySetParams, ctx: _Context) -> Program:
    ref = find_set(program, params.set_id)
    if ref is None:
        raise _TargetMissing(f"Set {params.set_id} not found")
    current = ref.workout_set
    update: Dict[str, Any] = {}
    if params.prescribed is not None:
        update["prescribed"] = current.prescribed.model_copy(update=params.prescribed.changes())
    if params.actual is not None:
        update["actual"] = current.actual.model_copy(update=params.actual.changes())
    if params.completed is not None:
        update["completed"] = params.completed
    return _with_set(program, ref, current.model_copy(update=update))


_APPLIERS: Dict[ToolName, Callable[[Program, Any, _Context], Program]] = {
    ToolName.MODIFY_EXERCISE: apply_modify_exercise,
    ToolName.ADD_EXERCISE: apply_add_exercise,
    ToolName.REMOVE_EXERCISE: apply_remove_exercise,
    ToolName.REORDER_EXERCISE: apply_reorder_exercise,
    ToolName.MODIFY_SESSION: apply_modify_session,
    ToolName.ADD_SESSION: apply_add_session,
    ToolName.REMOVE_SESSION: apply_remove_session,
    ToolName.COPY_SESSION: apply_copy_session,
    ToolName.MODIFY_WEEK: apply_modify_week,
    ToolName.ADD_WEEK: apply_add_week,
    ToolName.REMOVE_WEEK: apply_remove_week,
    ToolName.MODIFY_SET: apply_modify_set,
}
ensure_complete(_APPLIERS, "Mutation appliers")


def apply_tool_call(
    program: Program,
    name: Union[str, ToolName],
    params: ToolParams,
    *,
    id_factory: Optional[IdFactory] = None,
    clock: Optional[Clock] = None,
) -> ApplyResult:
    """
    Apply one validated tool call to ``program``.

    Args:
        program: Snapshot to transform
        name: Tool name
        params: Parsed parameters for that tool
        id_factory: Generates ids for created entities (kind -> id)
        clock: Source of the new ``updated_at``

    Returns:
        ApplyResult; on failure ``program`` is the input object.
    """
    try:
        tool = get_tool(name).name
    except UnknownToolError as exc:
        return ApplyResult(ok=False, program=program, error=Issue(code="UNKNOWN_TOOL", message=str(exc)))

    ctx = _Context(id_factory=id_factory or new_entity_id)
    try:
        updated = _APPLIERS[tool](program, params, ctx)
    except _TargetMissing as exc:
        logger.warning("Apply %s: %s", tool.value, exc)
        return ApplyResult(ok=False, program=program, error=Issue(code="NOT_FOUND", message=str(exc)))
    except _Conflict as exc:
        logger.warning("Apply %s: %s", tool.value, exc)
        return ApplyResult(ok=False, program=program, error=Issue(code="REFERENTIAL_INVALID", message=str(exc)))
    except ValidationError as exc:
        logger.error("Apply %s built an invalid entity: %s", tool.value, exc)
        return ApplyResult(ok=False, program=program, error=Issue(code="APPLY_FAILURE", message=str(exc)))

    updated = updated.model_copy(update={"updated_at": (clock or utc_now)()})

    problems = program_invariant_violations(updated)
    if problems:
        logger.error("Apply %s broke program invariants: %s", tool.value, problems)
        return ApplyResult(
            ok=False,
            program=program,
            error=Issue(code="APPLY_FAILURE", message="; ".join(problems)),
        )

    logger.debug("Applied %s, created=%s", tool.value, ctx.created)
    return ApplyResult(ok=True, program=updated, created_ids=ctx.created)
