from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, List, Optional

from coach_tools.models.program import Program, SetBlock


def to_record(program: Program) -> Dict[str, Any]:
    """Plain nested record (weeks -> sessions -> exercises -> sets) for storage."""
    return program.model_dump(mode="json")


def from_record(record: Dict[str, Any]) -> Program:
    return Program.model_validate(record)


def to_json(program: Program) -> str:
    return json.dumps(to_record(program), ensure_ascii=False, indent=2)


def from_json(text: str) -> Program:
    return Program.model_validate_json(text)


def _cell(value: Optional[Any]) -> str:
    return "" if value is None else str(value)


def to_csv(program: Program) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "week_number",
        "phase",
        "session_id",
        "session_title",
        "session_date",
        "exercise_id",
        "exercise_name",
        "set_number",
        "set_id",
        "prescribed_reps",
        "prescribed_weight",
        "prescribed_rir",
        "actual_reps",
        "actual_weight",
        "actual_rir",
        "completed",
    ])
    for week in program.weeks:
        for session in week.sessions:
            for exercise in session.exercises:
                for n, workout_set in enumerate(exercise.sets, start=1):
                    writer.writerow([
                        week.number,
                        week.phase,
                        session.id,
                        session.title,
                        _cell(session.date),
                        exercise.id,
                        exercise.name,
                        n,
                        workout_set.id,
                        _cell(workout_set.prescribed.reps),
                        _cell(workout_set.prescribed.weight),
                        _cell(workout_set.prescribed.rir),
                        _cell(workout_set.actual.reps),
                        _cell(workout_set.actual.weight),
                        _cell(workout_set.actual.rir),
                        workout_set.completed,
                    ])
    return output.getvalue().encode("utf-8")


def _block_text(block: SetBlock) -> str:
    parts: List[str] = []
    if block.reps is not None:
        parts.append(f"{block.reps} reps")
    if block.weight is not None:
        parts.append(f"@ {block.weight:g}")
    if block.rir is not None:
        parts.append(f"RIR {block.rir}")
    return " ".join(parts) or "-"


def to_markdown(program: Program) -> str:
    lines: List[str] = []
    lines.append(f"# {program.name} ({len(program.weeks)} weeks)\n")
    for week in program.weeks:
        lines.append(f"\n## Week {week.number}: {week.phase} ({week.start_date} - {week.end_date})")
        for session in week.sessions:
            done = " [done]" if session.completed else ""
            lines.append(f"\n### {session.title} - {session.day}{done}")
            if session.cardio:
                kind = session.cardio.type or "cardio"
                lines.append(f"- Cardio: {session.cardio.duration} min {kind}")
            for exercise in session.exercises:
                label = f"{exercise.group_label} " if exercise.group_label else ""
                sets = "; ".join(_block_text(s.prescribed) for s in exercise.sets) or "no sets"
                lines.append(f"- {label}{exercise.name}: {sets}")
    return "\n".join(lines) + "\n"
