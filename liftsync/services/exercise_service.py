import logging

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.core.exceptions import ConflictError, InvariantViolation, NotFoundError
from liftsync.core.identity import new_id
from liftsync.database import transaction
from liftsync.models import BodyPart, Equipment, Exercise, SessionExercise, WorkoutExercise
from liftsync.services.tombstone_service import TombstoneTracker

logger = logging.getLogger(__name__)


class ExerciseInput(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    link: str | None = None
    info: str | None = None
    image_name: str | None = None
    body_part_id: str | None = None
    equipment_id: str | None = None


class ExerciseService:
    @staticmethod
    async def list_exercises(
        db: AsyncSession,
        *,
        body_part_id: str | None = None,
        equipment_id: str | None = None,
        search: str | None = None,
    ) -> list[Exercise]:
        stmt = select(Exercise)
        if body_part_id:
            stmt = stmt.where(Exercise.body_part_id == body_part_id)
        if equipment_id:
            stmt = stmt.where(Exercise.equipment_id == equipment_id)
        if search:
            stmt = stmt.where(Exercise.name.ilike(f"%{search.strip()}%"))
        result = await db.execute(stmt.order_by(Exercise.name))
        return list(result.scalars().all())

    @staticmethod
    async def get_exercise(db: AsyncSession, exercise_id: str) -> Exercise:
        exercise = await db.get(Exercise, exercise_id)
        if exercise is None:
            raise NotFoundError(f"Exercise {exercise_id} not found")
        return exercise

    @staticmethod
    async def name_exists(db: AsyncSession, name: str) -> bool:
        result = await db.execute(select(Exercise.id).where(Exercise.name == name.strip()).limit(1))
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def create_exercise(db: AsyncSession, data: ExerciseInput) -> Exercise:
        async with transaction(db):
            if await ExerciseService.name_exists(db, data.name):
                raise InvariantViolation(f"An exercise named '{data.name.strip()}' already exists")
            exercise = Exercise(id=new_id(), **{**data.model_dump(), "name": data.name.strip()})
            db.add(exercise)
        return exercise

    @staticmethod
    async def update_exercise(db: AsyncSession, exercise_id: str, data: ExerciseInput) -> Exercise:
        async with transaction(db):
            exercise = await ExerciseService.get_exercise(db, exercise_id)
            if exercise.is_default_exercise:
                raise ConflictError("Default exercises are read-only")
            for field, value in data.model_dump().items():
                setattr(exercise, field, value)
            exercise.name = data.name.strip()
            exercise.is_synced = False
        return exercise

    @staticmethod
    async def delete_exercise(db: AsyncSession, exercise_id: str) -> None:
        async with transaction(db):
            exercise = await ExerciseService.get_exercise(db, exercise_id)
            if exercise.is_default_exercise:
                raise ConflictError("Default exercises are read-only")
            in_use = 0
            for model in (WorkoutExercise, SessionExercise):
                count = await db.execute(select(func.count()).select_from(model).where(model.exercise_id == exercise_id))
                in_use += count.scalar() or 0
            if in_use:
                raise ConflictError(f"Exercise {exercise_id} is used by {in_use} workout or session rows")
            await TombstoneTracker.delete_row(db, exercise)
        logger.info("Exercise %s deleted", exercise_id)

    @staticmethod
    async def list_body_parts(db: AsyncSession) -> list[BodyPart]:
        return list((await db.execute(select(BodyPart).order_by(BodyPart.name))).scalars().all())

    @staticmethod
    async def list_equipment(db: AsyncSession) -> list[Equipment]:
        return list((await db.execute(select(Equipment).order_by(Equipment.name))).scalars().all())
