from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.core.exceptions import NotFoundError
from liftsync.models import Session, SessionExercise, SessionSet, Workout, WorkoutExercise, WorkoutSet

# child model -> (parent model, foreign key attribute on the child)
PARENT_LINKS: dict[type, tuple[type, str]] = {
    WorkoutSet: (WorkoutExercise, "workout_exercise_id"),
    WorkoutExercise: (Workout, "workout_id"),
    SessionSet: (SessionExercise, "session_exercise_id"),
    SessionExercise: (Session, "session_id"),
}


async def resolve_owner_id(db: AsyncSession, row) -> str | None:
    """Walk up to the aggregate root and return its user id."""
    model = type(row)
    while model in PARENT_LINKS:
        parent_model, fk = PARENT_LINKS[model]
        parent_id = getattr(row, fk)
        row = await db.get(parent_model, parent_id)
        if row is None:
            raise NotFoundError(f"{parent_model.__tablename__} {parent_id} not found")
        model = parent_model
    return row.user_id
