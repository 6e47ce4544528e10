from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from liftsync.core.exceptions import ConflictError, InvariantViolation, NotFoundError
from liftsync.core.identity import new_id
from liftsync.database import transaction
from liftsync.models import Workout, WorkoutExercise, WorkoutSet
from liftsync.schemas.workouts import SetShape, WorkoutExerciseShape, WorkoutUpsert
from liftsync.services.reconciler import SESSION_AGGREGATE, WORKOUT_AGGREGATE, load_aggregate, reconcile
from liftsync.services.tombstone_service import TombstoneTracker

logger = logging.getLogger(__name__)


async def _name_taken(db: AsyncSession, name: str, *, exclude_id: str | None = None) -> bool:
    stmt = select(Workout.id).where(Workout.name == name)
    if exclude_id:
        stmt = stmt.where(Workout.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def _ensure_name_available(db: AsyncSession, name: str, *, exclude_id: str | None = None) -> None:
    if await _name_taken(db, name, exclude_id=exclude_id):
        logger.warning("Rejected duplicate workout name %r", name)
        raise InvariantViolation(f"A workout named '{name}' already exists")


async def _next_free_name(db: AsyncSession, base: str) -> str:
    name, suffix = base, 2
    while await _name_taken(db, name):
        name = f"{base} {suffix}"
        suffix += 1
    return name


def _ensure_editable(workout: Workout) -> None:
    if workout.is_default_workout:
        raise ConflictError("Default workouts are read-only")


class WorkoutService:
    @staticmethod
    async def list_workouts(db: AsyncSession) -> list[Workout]:
        stmt = (
            select(Workout)
            .options(selectinload(Workout.exercises).selectinload(WorkoutExercise.sets))
            .order_by(Workout.created_at.desc())
        )
        return list((await db.execute(stmt)).scalars().all())

    @staticmethod
    async def get_workout(db: AsyncSession, workout_id: str) -> Workout:
        return await load_aggregate(db, WORKOUT_AGGREGATE, workout_id, refresh=True)

    @staticmethod
    async def create_workout(db: AsyncSession, data: WorkoutUpsert) -> Workout:
        async with transaction(db):
            await _ensure_name_available(db, data.name)
            workout = Workout(id=new_id(), name=data.name, is_default_workout=False)
            db.add(workout)
            await db.flush()
            await reconcile(db, WORKOUT_AGGREGATE, workout.id, data.exercises)
        logger.info("Workout %s created offline", workout.id)
        return await WorkoutService.get_workout(db, workout.id)

    @staticmethod
    async def update_workout(db: AsyncSession, workout_id: str, data: WorkoutUpsert) -> Workout:
        """Replace the workout's exercises and sets with ``data``, keeping matched rows."""
        async with transaction(db):
            workout = await load_aggregate(db, WORKOUT_AGGREGATE, workout_id, refresh=True)
            _ensure_editable(workout)
            if workout.name != data.name:
                await _ensure_name_available(db, data.name, exclude_id=workout_id)
                workout.name = data.name
                workout.is_synced = False
                await db.flush()
            await reconcile(db, WORKOUT_AGGREGATE, workout_id, data.exercises)
        return await WorkoutService.get_workout(db, workout_id)

    @staticmethod
    async def update_set(
        db: AsyncSession,
        set_id: str,
        *,
        target_reps: int | None = None,
        target_weight: float | None = None,
    ) -> WorkoutSet:
        async with transaction(db):
            set_row = await db.get(WorkoutSet, set_id)
            if set_row is None:
                raise NotFoundError(f"Set {set_id} not found")
            if target_reps is not None:
                set_row.target_reps = target_reps
            if target_weight is not None:
                set_row.target_weight = target_weight
            set_row.is_synced = False
        return set_row

    @staticmethod
    async def delete_workout(db: AsyncSession, workout_id: str) -> None:
        async with transaction(db):
            workout = await load_aggregate(db, WORKOUT_AGGREGATE, workout_id, refresh=True)
            _ensure_editable(workout)
            recorded = await TombstoneTracker.record_aggregate(db, workout)
            await db.delete(workout)
        logger.info("Workout %s deleted (%s tombstones)", workout_id, recorded)

    @staticmethod
    async def create_workout_from_session(db: AsyncSession, session_id: str, name: str | None = None) -> Workout:
        """Save a performed session as a new workout. Allowed once per session."""
        async with transaction(db):
            session = await load_aggregate(db, SESSION_AGGREGATE, session_id, refresh=True)
            if session.derived_workout_id:
                raise ConflictError(f"Session {session_id} already created workout {session.derived_workout_id}")

            if name:
                name = WorkoutUpsert(name=name).name
                await _ensure_name_available(db, name)
            else:
                name = await _next_free_name(db, session.name)

            workout = Workout(id=new_id(), name=name, is_default_workout=False)
            db.add(workout)
            await db.flush()
            target = [
                WorkoutExerciseShape(
                    exercise_id=exercise.exercise_id,
                    order=exercise.order,
                    sets=[
                        SetShape(
                            set_number=set_row.set_number,
                            target_reps=set_row.reps or 0,
                            target_weight=set_row.weight or 0,
                        )
                        for set_row in exercise.sets
                    ],
                )
                for exercise in session.exercises
            ]
            await reconcile(db, WORKOUT_AGGREGATE, workout.id, target)

            session.derived_workout_id = workout.id
            session.is_synced = False
        logger.info("Workout %s derived from session %s", workout.id, session_id)
        return await WorkoutService.get_workout(db, workout.id)

    @staticmethod
    async def update_workout_by_session(db: AsyncSession, session_id: str) -> Workout:
        """Write a session's performed sets back into its source workout. Allowed once per session."""
        async with transaction(db):
            session = await load_aggregate(db, SESSION_AGGREGATE, session_id, refresh=True)
            if session.updated_workout_at:
                raise ConflictError(f"Session {session_id} already updated its workout")
            if not session.workout_id:
                raise NotFoundError(f"Session {session_id} has no source workout")

            workout = await load_aggregate(db, WORKOUT_AGGREGATE, session.workout_id, refresh=True)
            _ensure_editable(workout)

            # Reuse the workout's set rows position by position so they update in place.
            current = {exercise.exercise_id: exercise for exercise in workout.exercises}
            target = []
            for exercise in session.exercises:
                existing_sets = list(current[exercise.exercise_id].sets) if exercise.exercise_id in current else []
                target.append(
                    WorkoutExerciseShape(
                        exercise_id=exercise.exercise_id,
                        order=exercise.order,
                        sets=[
                            SetShape(
                                id=existing_sets[index].id if index < len(existing_sets) else None,
                                target_reps=set_row.reps or 0,
                                target_weight=set_row.weight or 0,
                            )
                            for index, set_row in enumerate(exercise.sets)
                        ],
                    )
                )
            await reconcile(db, WORKOUT_AGGREGATE, workout.id, target)

            session.updated_workout_at = datetime.now(timezone.utc)
            session.is_synced = False
            workout_id = workout.id
        logger.info("Workout %s updated from session %s", workout_id, session_id)
        return await WorkoutService.get_workout(db, workout_id)
