from typing import List, Optional

from liftsync.schemas.base import UtcDatetime, WireModel


class UserSync(WireModel):
    id: str
    username: str
    email: Optional[str] = None
    created_at: UtcDatetime


class ExerciseSync(WireModel):
    id: str
    name: str
    link: Optional[str] = None
    info: Optional[str] = None
    image_name: Optional[str] = None
    body_part_id: Optional[str] = None
    equipment_id: Optional[str] = None


class WorkoutSync(WireModel):
    id: str
    name: str
    exercise_count: int
    set_count: int
    is_default_workout: bool = False
    created_at: UtcDatetime


class WorkoutExerciseSync(WireModel):
    id: str
    workout_id: str
    exercise_id: str
    order: int


class SetSync(WireModel):
    id: str
    workout_exercise_id: str
    set_number: int
    target_reps: int
    target_weight: float


class SessionSync(WireModel):
    id: str
    workout_id: Optional[str] = None
    derived_workout_id: Optional[str] = None
    name: str
    created_at: UtcDatetime
    completed_at: Optional[UtcDatetime] = None
    session_time: Optional[str] = None
    exercise_count: int
    set_count: int
    is_from_default_workout: bool = False
    updated_workout_at: Optional[UtcDatetime] = None


class SessionExerciseSync(WireModel):
    id: str
    session_id: str
    exercise_id: str
    order: int


class SessionSetSync(WireModel):
    id: str
    session_exercise_id: str
    set_number: int
    reps: Optional[int] = None
    weight: Optional[float] = None


class DeletedRowSync(WireModel):
    id: str
    table_name: str
    row_id: str


class SyncAck(WireModel):
    accepted: int
    ids: List[str] = []


class TokenResponse(WireModel):
    access_token: str
    token_type: str = "bearer"
