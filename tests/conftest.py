from __future__ import annotations

import datetime as dt
from typing import Callable, Dict

import pytest

from coach_tools.models import CardioBlock, Exercise, Program, Session, SetBlock, Week, WorkoutSet

FIXED_NOW = dt.datetime(2026, 1, 6, 9, 30, tzinfo=dt.timezone.utc)


def build_program() -> Program:
    push = Session(
        id="session-1",
        title="Push Day",
        day="Monday",
        date=dt.date(2026, 1, 5),
        exercises=(
            Exercise(
                id="exercise-1",
                name="Bench Press",
                sets=(
                    WorkoutSet(id="set-1", prescribed=SetBlock(reps=8, weight=80, rir=2)),
                    WorkoutSet(id="set-2", prescribed=SetBlock(reps=8, weight=80, rir=2)),
                ),
            ),
            Exercise(
                id="exercise-2",
                name="Overhead Press",
                notes="Strict, no leg drive",
                sets=(WorkoutSet(id="set-3", prescribed=SetBlock(reps=10, weight=40, rir=2)),),
            ),
        ),
    )
    pull = Session(
        id="session-2",
        title="Pull Day",
        day="Wednesday",
        date=dt.date(2026, 1, 7),
        completed=True,
        cardio=CardioBlock(duration=20, type="rowing"),
        exercises=(
            Exercise(
                id="exercise-3",
                name="Barbell Row",
                completed=True,
                sets=(
                    WorkoutSet(
                        id="set-4",
                        prescribed=SetBlock(reps=8, weight=70, rir=2),
                        actual=SetBlock(reps=8, weight=70, rir=1),
                        completed=True,
                    ),
                ),
            ),
        ),
    )
    legs = Session(
        id="session-3",
        title="Legs",
        day="Friday",
        exercises=(
            Exercise(
                id="exercise-4",
                name="Back Squat",
                sets=(WorkoutSet(id="set-5", prescribed=SetBlock(reps=5, weight=120, rir=3)),),
            ),
        ),
    )
    return Program(
        id="program-1",
        name="Upper/Lower Block",
        created_at=dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc),
        updated_at=dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc),
        weeks=(
            Week(
                id="week-1",
                number=1,
                phase="Accumulation",
                start_date=dt.date(2026, 1, 5),
                end_date=dt.date(2026, 1, 11),
                sessions=(push, pull),
            ),
            Week(
                id="week-2",
                number=2,
                phase="Intensification",
                start_date=dt.date(2026, 1, 12),
                end_date=dt.date(2026, 1, 18),
                sessions=(legs,),
            ),
        ),
    )


@pytest.fixture
def program() -> Program:
    return build_program()


@pytest.fixture
def id_factory() -> Callable[[str], str]:
    counters: Dict[str, int] = {}

    def make(kind: str) -> str:
        counters[kind] = counters.get(kind, 0) + 1
        return f"{kind}-new-{counters[kind]}"

    return make


@pytest.fixture
def clock() -> Callable[[], dt.datetime]:
    return lambda: FIXED_NOW
