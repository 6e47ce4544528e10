from liftsync.models.user import User
from liftsync.models.exercise import BodyPart, Equipment, Exercise
from liftsync.models.workout import Workout, WorkoutExercise, WorkoutSet
from liftsync.models.session import Session, SessionExercise, SessionSet
from liftsync.models.deleted_row import DeletedRow


__all__ = [
    "User",
    "BodyPart",
    "Equipment",
    "Exercise",
    "Workout",
    "WorkoutExercise",
    "WorkoutSet",
    "Session",
    "SessionExercise",
    "SessionSet",
    "DeletedRow",
]
