from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from coach_tools.models.program import Exercise, Program, Session, Week, WorkoutSet, iter_entity_ids


@dataclass(frozen=True)
class WeekRef:
    week: Week
    week_index: int


@dataclass(frozen=True)
class SessionRef:
    week: Week
    week_index: int
    session: Session
    session_index: int


@dataclass(frozen=True)
class ExerciseRef:
    week: Week
    week_index: int
    session: Session
    session_index: int
    exercise: Exercise
    exercise_index: int


@dataclass(frozen=True)
class SetRef:
    week: Week
    week_index: int
    session: Session
    session_index: int
    exercise: Exercise
    exercise_index: int
    workout_set: WorkoutSet
    set_index: int


def find_week(program: Program, week_id: str) -> Optional[WeekRef]:
    for wi, week in enumerate(program.weeks):
        if week.id == week_id:
            return WeekRef(week, wi)
    return None


def find_session(program: Program, session_id: str) -> Optional[SessionRef]:
    for wi, week in enumerate(program.weeks):
        for si, session in enumerate(week.sessions):
            if session.id == session_id:
                return SessionRef(week, wi, session, si)
    return None


def find_exercise(program: Program, exercise_id: str) -> Optional[ExerciseRef]:
    for wi, week in enumerate(program.weeks):
        for si, session in enumerate(week.sessions):
            for ei, exercise in enumerate(session.exercises):
                if exercise.id == exercise_id:
                    return ExerciseRef(week, wi, session, si, exercise, ei)
    return None


def find_set(program: Program, set_id: str) -> Optional[SetRef]:
    for wi, week in enumerate(program.weeks):
        for si, session in enumerate(week.sessions):
            for ei, exercise in enumerate(session.exercises):
                for xi, workout_set in enumerate(exercise.sets):
                    if workout_set.id == set_id:
                        return SetRef(week, wi, session, si, exercise, ei, workout_set, xi)
    return None


def index_program(program: Program) -> Dict[str, str]:
    """Map every entity id to its kind ("week", "session", "exercise", "set")."""
    return {entity_id: kind for kind, entity_id in iter_entity_ids(program)}
