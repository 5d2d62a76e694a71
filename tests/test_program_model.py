from __future__ import annotations

import datetime as dt

import pytest
from pydantic import ValidationError

from coach_tools.models import Program, Week
from coach_tools.models.program import iter_entity_ids, program_invariant_violations, snapshot_version
from coach_tools.services.lookup import find_exercise, find_session, find_set, find_week, index_program
from coach_tools.services.export import to_record


def test_lookup_returns_parent_chain(program: Program) -> None:
    ref = find_set(program, "set-3")
    assert ref is not None
    assert ref.exercise.id == "exercise-2"
    assert ref.session.id == "session-1"
    assert ref.week.id == "week-1"
    assert (ref.week_index, ref.session_index, ref.exercise_index, ref.set_index) == (0, 0, 1, 0)

    session_ref = find_session(program, "session-3")
    assert session_ref is not None and session_ref.week.number == 2


def test_lookup_unknown_ids_return_none(program: Program) -> None:
    assert find_week(program, "week-9") is None
    assert find_session(program, "session-9") is None
    assert find_exercise(program, "exercise-9") is None
    assert find_set(program, "set-9") is None


def test_index_program_covers_every_entity(program: Program) -> None:
    index = index_program(program)
    assert index["week-2"] == "week"
    assert index["session-2"] == "session"
    assert index["exercise-4"] == "exercise"
    assert index["set-5"] == "set"
    assert len(index) == len(list(iter_entity_ids(program)))


def test_snapshots_are_frozen(program: Program) -> None:
    with pytest.raises(ValidationError):
        program.name = "Renamed"  # type: ignore[misc]


def test_week_dates_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        Week(id="week-x", number=1, start_date=dt.date(2026, 2, 8), end_date=dt.date(2026, 2, 1))


def test_duplicate_ids_are_rejected(program: Program) -> None:
    record = to_record(program)
    record["weeks"][1]["sessions"][0]["id"] = "session-1"
    with pytest.raises(ValidationError) as excinfo:
        Program.model_validate(record)
    assert "Duplicate id: session-1" in str(excinfo.value)


def test_week_numbers_must_increase(program: Program) -> None:
    record = to_record(program)
    record["weeks"][1]["number"] = 1
    with pytest.raises(ValidationError):
        Program.model_validate(record)


def test_invariant_violations_on_unvalidated_copy(program: Program) -> None:
    # model_copy skips validation, so the checker has to catch it
    week = program.weeks[0].model_copy(update={"id": "week-2"})
    broken = program.model_copy(update={"weeks": (week, program.weeks[1])})
    assert program_invariant_violations(program) == []
    assert program_invariant_violations(broken) == ["Duplicate id: week-2"]


def test_snapshot_version_tracks_content(program: Program) -> None:
    same = Program.model_validate(to_record(program))
    renamed = program.model_copy(update={"name": "Other"})
    assert snapshot_version(program) == snapshot_version(same)
    assert snapshot_version(program) != snapshot_version(renamed)
    assert len(snapshot_version(program)) == 16
