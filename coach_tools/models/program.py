from __future__ import annotations

import datetime as dt
import hashlib
from typing import Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, model_validator


class _Snapshot(BaseModel):
    """Immutable node of a program snapshot."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class SetBlock(_Snapshot):
    reps: Optional[StrictInt] = Field(None, ge=1)
    weight: Optional[StrictFloat] = Field(None, ge=0)
    rir: Optional[StrictInt] = Field(None, ge=0, le=10, description="Reps in reserve")
    notes: Optional[str] = None


class WorkoutSet(_Snapshot):
    id: str
    prescribed: SetBlock
    actual: SetBlock = Field(default_factory=SetBlock)
    completed: bool = False


class Exercise(_Snapshot):
    id: str
    name: str
    notes: Optional[str] = None
    group_label: Optional[str] = Field(None, description="Superset label")
    completed: bool = False
    sets: Tuple[WorkoutSet, ...] = ()


class CardioBlock(_Snapshot):
    duration: StrictInt = Field(..., ge=0, description="Minutes")
    type: Optional[str] = None
    notes: Optional[str] = None


class Session(_Snapshot):
    id: str
    title: str
    day: str = ""
    date: Optional[dt.date] = None
    completed: bool = False
    cardio: Optional[CardioBlock] = None
    notes: Optional[str] = None
    started_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None
    exercises: Tuple[Exercise, ...] = ()


class Week(_Snapshot):
    id: str
    number: int = Field(..., ge=1)
    phase: str = ""
    start_date: dt.date
    end_date: dt.date
    description: Optional[str] = None
    sessions: Tuple[Session, ...] = ()

    @model_validator(mode="after")
    def _check_dates(self) -> "Week":
        if self.start_date > self.end_date:
            raise ValueError(f"Week {self.number}: start_date {self.start_date} is after end_date {self.end_date}")
        return self


class Program(_Snapshot):
    id: str
    name: str
    created_at: dt.datetime
    updated_at: dt.datetime
    weeks: Tuple[Week, ...] = ()

    @model_validator(mode="after")
    def _check_invariants(self) -> "Program":
        problems = program_invariant_violations(self)
        if problems:
            raise ValueError("; ".join(problems))
        return self


def iter_entity_ids(program: Program) -> Iterator[Tuple[str, str]]:
    """Yield ``(kind, id)`` for every week, session, exercise and set, in tree order."""
    for week in program.weeks:
        yield "week", week.id
        for session in week.sessions:
            yield "session", session.id
            for exercise in session.exercises:
                yield "exercise", exercise.id
                for workout_set in exercise.sets:
                    yield "set", workout_set.id


def program_invariant_violations(program: Program) -> List[str]:
    problems: List[str] = []
    previous: Optional[int] = None
    for week in program.weeks:
        if previous is not None and week.number <= previous:
            problems.append(f"Week number {week.number} does not increase after {previous}")
        previous = week.number
        if week.start_date > week.end_date:
            problems.append(f"Week {week.number} starts after it ends")

    seen: set[str] = set()
    for kind, entity_id in iter_entity_ids(program):
        if not entity_id:
            problems.append(f"A {kind} has an empty id")
        elif entity_id in seen:
            problems.append(f"Duplicate id: {entity_id}")
        seen.add(entity_id)
    return problems


def snapshot_version(program: Program) -> str:
    """Content-derived version marker used for optimistic concurrency."""
    digest = hashlib.sha256(program.model_dump_json().encode("utf-8"))
    return digest.hexdigest()[:16]
