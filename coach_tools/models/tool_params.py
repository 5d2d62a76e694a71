from __future__ import annotations

import datetime as dt
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, model_validator
from pydantic.alias_generators import to_camel

from .program import CardioBlock, SetBlock

EntityId = Annotated[str, Field(min_length=1)]
# 1-based insertion point, or "end"
Position = Union[Literal["end"], Annotated[StrictInt, Field(ge=1)]]


class ToolParams(BaseModel):
    """Base for tool parameter payloads.

    The agent sends camelCase keys; snake_case is accepted too. Unknown keys are
    rejected so schema drift on the agent side surfaces as a structural error.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class _Updates(ToolParams):
    """Partial update: only keys present in the payload are applied."""

    non_nullable: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _check_not_empty(self) -> "_Updates":
        if not self.model_fields_set:
            raise ValueError("No updates provided")
        for name in self.non_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class ExerciseUpdates(_Updates):
    non_nullable: ClassVar[Tuple[str, ...]] = ("name", "completed")

    name: Optional[str] = Field(None, min_length=1)
    notes: Optional[str] = None
    group_label: Optional[str] = None
    completed: Optional[StrictBool] = None


class SessionUpdates(_Updates):
    non_nullable: ClassVar[Tuple[str, ...]] = ("title", "day", "completed")

    title: Optional[str] = Field(None, min_length=1)
    day: Optional[str] = None
    date: Optional[dt.date] = None
    notes: Optional[str] = None
    completed: Optional[StrictBool] = None
    cardio: Optional[CardioBlock] = Field(None, description="null removes the cardio block")


class WeekUpdates(_Updates):
    non_nullable: ClassVar[Tuple[str, ...]] = ("phase", "start_date", "end_date")

    phase: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    description: Optional[str] = None


class SetBlockPatch(_Updates):
    reps: Optional[StrictInt] = Field(None, ge=1)
    weight: Optional[StrictFloat] = Field(None, ge=0)
    rir: Optional[StrictInt] = Field(None, ge=0, le=10)
    notes: Optional[str] = None


class NewExercise(ToolParams):
    name: str = Field(..., min_length=1)
    notes: Optional[str] = None
    group_label: Optional[str] = None
    sets: List[SetBlock] = Field(default_factory=list, description="Prescribed blocks, one per set")


class NewSession(ToolParams):
    title: str = Field(..., min_length=1)
    day: str = ""
    date: Optional[dt.date] = None
    notes: Optional[str] = None
    cardio: Optional[CardioBlock] = None
    exercises: List[NewExercise] = Field(default_factory=list)


class NewWeek(ToolParams):
    phase: str = ""
    start_date: dt.date
    end_date: dt.date
    description: Optional[str] = None
    sessions: List[NewSession] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_dates(self) -> "NewWeek":
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


# ----- per-tool payloads -----


class ModifyExerciseParams(ToolParams):
    exercise_id: EntityId
    session_id: Optional[EntityId] = None
    updates: ExerciseUpdates


class AddExerciseParams(NewExercise):
    session_id: EntityId
    position: Optional[Position] = None


class RemoveExerciseParams(ToolParams):
    exercise_id: EntityId
    session_id: Optional[EntityId] = None


class ReorderExerciseParams(ToolParams):
    exercise_id: EntityId
    new_position: StrictInt = Field(..., ge=1)


class ModifySessionParams(ToolParams):
    session_id: EntityId
    week_id: Optional[EntityId] = None
    updates: SessionUpdates


class AddSessionParams(NewSession):
    week_id: EntityId
    position: Optional[Position] = None


class RemoveSessionParams(ToolParams):
    session_id: EntityId
    week_id: Optional[EntityId] = None


class CopySessionParams(ToolParams):
    source_session_id: EntityId
    target_week_id: EntityId
    position: Optional[Position] = None


class ModifyWeekParams(ToolParams):
    week_id: EntityId
    updates: WeekUpdates


class AddWeekParams(ToolParams):
    weeks: List[NewWeek] = Field(..., min_length=1)
    position: Optional[Position] = None


class RemoveWeekParams(ToolParams):
    week_id: EntityId


class ModifySetParams(ToolParams):
    set_id: EntityId
    exercise_id: Optional[EntityId] = None
    prescribed: Optional[SetBlockPatch] = None
    actual: Optional[SetBlockPatch] = None
    completed: Optional[StrictBool] = None

    @model_validator(mode="after")
    def _check_has_change(self) -> "ModifySetParams":
        if not any(getattr(self, name) is not None for name in ("prescribed", "actual", "completed")):
            raise ValueError("No updates provided")
        return self
