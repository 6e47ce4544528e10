import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

WORKOUT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s-]+$")


class SetShape(BaseModel):
    """Target shape of one template set. ``id`` is set when the row already exists."""

    id: Optional[str] = None
    set_number: Optional[int] = Field(default=None, ge=1)
    target_reps: int = Field(default=0, ge=0)
    target_weight: float = Field(default=0, ge=0)


class WorkoutExerciseShape(BaseModel):
    id: Optional[str] = None
    exercise_id: str
    order: Optional[int] = Field(default=None, ge=1)
    sets: List[SetShape] = []


class WorkoutUpsert(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    exercises: List[WorkoutExerciseShape] = []

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not WORKOUT_NAME_PATTERN.match(value):
            raise ValueError("Workout name can only contain letters, numbers, spaces, and hyphens")
        return value


class SetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    set_number: int
    target_reps: int
    target_weight: float
    is_synced: bool


class WorkoutExerciseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    exercise_id: str
    order: int
    sets: List[SetRead]


class WorkoutRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    exercise_count: int
    set_count: int
    is_default_workout: bool
    is_synced: bool
    created_at: datetime
    exercises: List[WorkoutExerciseRead] = []
