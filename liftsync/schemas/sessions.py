from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from liftsync.core.identity import new_id
from liftsync.schemas.base import WireModel


class SessionSetShape(BaseModel):
    id: Optional[str] = None
    set_number: Optional[int] = Field(default=None, ge=1)
    reps: Optional[int] = Field(default=None, ge=0)
    weight: Optional[float] = Field(default=None, ge=0)


class SessionExerciseShape(BaseModel):
    id: Optional[str] = None
    exercise_id: str
    order: Optional[int] = Field(default=None, ge=1)
    sets: List[SessionSetShape] = []


class SessionUpdate(BaseModel):
    name: Optional[str] = None
    completed_at: Optional[datetime] = None
    session_time: Optional[str] = None
    exercises: List[SessionExerciseShape] = []


class SessionSetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    set_number: int
    reps: Optional[int]
    weight: Optional[float]


class SessionExerciseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    exercise_id: str
    order: int
    sets: List[SessionSetRead]


class SessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workout_id: Optional[str]
    derived_workout_id: Optional[str]
    name: str
    created_at: datetime
    completed_at: Optional[datetime]
    session_time: Optional[str]
    exercise_count: int
    set_count: int
    is_from_default_workout: bool
    updated_workout_at: Optional[datetime]
    exercises: List[SessionExerciseRead] = []


# Session-completion diff sent by the client and applied by the server.

class SessionSetAdd(WireModel):
    id: str = Field(default_factory=new_id)
    set_number: int = Field(ge=1)
    reps: int = Field(ge=0)
    weight: float = Field(ge=0)


class SessionSetUpdate(WireModel):
    session_set_id: str
    set_number: int = Field(ge=1)
    reps: int = Field(ge=0)
    weight: float = Field(ge=0)


class SessionExerciseAdd(WireModel):
    id: str = Field(default_factory=new_id)
    exercise_id: str  # exercise reference
    order: int = Field(ge=1)
    session_sets: List[SessionSetAdd] = []


class SessionExerciseUpdate(WireModel):
    exercise_id: str  # session exercise row id
    order: int = Field(ge=1)
    sets_update: List[SessionSetUpdate] = []
    sets_add: List[SessionSetAdd] = []


class SessionUpdatePayload(WireModel):
    session_id: str
    workout_id: Optional[str] = None
    created_at: datetime
    completed_at: datetime
    name: Optional[str] = None
    exercises_add: List[SessionExerciseAdd] = []
    exercises_update: List[SessionExerciseUpdate] = []
    sets_remove: List[str] = []
    exercises_remove: List[str] = []
    # Exercise references discarded for having no completed sets; never sent.
    discarded_exercise_ids: List[str] = Field(default_factory=list, exclude=True)


class StatsRead(WireModel):
    favorite_workout: str = ""
    total_sessions: int = 0
    total_exercises: int = 0
