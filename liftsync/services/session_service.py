from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.core.exceptions import InvariantViolation, NotFoundError
from liftsync.core.identity import new_id
from liftsync.database import transaction
from liftsync.models import Session, SessionExercise, SessionSet
from liftsync.schemas.sessions import SessionUpdate, SessionUpdatePayload, StatsRead
from liftsync.services.reconciler import (
    SESSION_AGGREGATE,
    WORKOUT_AGGREGATE,
    load_aggregate,
    reconcile,
    recount,
)
from liftsync.services.tombstone_service import TombstoneTracker

logger = logging.getLogger(__name__)


def format_session_time(seconds: float) -> str:
    seconds = max(int(seconds), 0)
    hrs, rest = divmod(seconds, 3600)
    mins, secs = divmod(rest, 60)
    if hrs > 0:
        return f"{hrs}h {mins}m {secs}s"
    if mins > 0:
        return f"{mins}m {secs}s"
    return f"{secs}s"


def _to_utc_datetime(value: datetime) -> datetime:
    # SQLite hands timestamps back naive.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _elapsed_time(created_at: datetime, completed_at: datetime) -> str:
    return format_session_time((_to_utc_datetime(completed_at) - _to_utc_datetime(created_at)).total_seconds())


async def _place_sets(db: AsyncSession, exercise_row, entries: list[tuple[int, int, object, dict]]) -> None:
    """Renumber an exercise's sets densely from (wanted number, tiebreak, row-or-None, values) entries."""
    entries.sort(key=lambda entry: (entry[0], entry[1]))
    survivors = [row for _, _, row, _ in entries if row is not None]
    before = {row.id: row.set_number for row in survivors}
    if survivors:
        for offset, row in enumerate(survivors, start=1):
            row.set_number = -offset
        await db.flush()
    for position, (_, _, row, values) in enumerate(entries, start=1):
        if row is None:
            exercise_row.sets.append(SessionSet(set_number=position, **values))
            continue
        row.set_number = position
        changed = before[row.id] != position
        for field, value in values.items():
            if getattr(row, field) != value:
                setattr(row, field, value)
                changed = True
        if changed:
            row.is_synced = False



class SessionService:
    @staticmethod
    async def list_sessions(db: AsyncSession) -> list[Session]:
        result = await db.execute(select(Session).order_by(Session.created_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def get_session(db: AsyncSession, session_id: str) -> Session:
        return await load_aggregate(db, SESSION_AGGREGATE, session_id, refresh=True)

    @staticmethod
    async def get_stats(db: AsyncSession, user_id: str | None = None) -> StatsRead:
        """Profile totals. Without ``user_id`` every session in the store counts."""
        owned = (Session.user_id == user_id,) if user_id is not None else ()

        favorite = await db.execute(
            select(Session.name)
            .where(*owned)
            .group_by(Session.name)
            .order_by(func.count(Session.id).desc(), Session.name)
            .limit(1)
        )
        total_sessions = await db.execute(select(func.count(Session.id)).where(*owned))
        total_exercises = await db.execute(
            select(func.count(SessionExercise.id))
            .join(Session, SessionExercise.session_id == Session.id)
            .where(*owned)
        )
        return StatsRead(
            favorite_workout=favorite.scalar_one_or_none() or "",
            total_sessions=total_sessions.scalar() or 0,
            total_exercises=total_exercises.scalar() or 0,
        )

    @staticmethod
    async def create_session(
        db: AsyncSession,
        *,
        workout_id: str | None = None,
        session_id: str | None = None,
    ) -> Session:
        """Start a session from a workout template, or repeat a previous session."""
        if not workout_id and not session_id:
            raise InvariantViolation("No workout or session ID provided")

        async with transaction(db):
            new_session = Session(id=new_id(), created_at=datetime.now(timezone.utc))
            if workout_id:
                source = await load_aggregate(db, WORKOUT_AGGREGATE, workout_id)
                new_session.workout_id = source.id
                new_session.is_from_default_workout = source.is_default_workout
                copied = [
                    (exercise, [(s.set_number, s.target_reps, s.target_weight) for s in exercise.sets])
                    for exercise in source.exercises
                ]
            else:
                source = await load_aggregate(db, SESSION_AGGREGATE, session_id)
                new_session.workout_id = source.workout_id
                new_session.is_from_default_workout = source.is_from_default_workout
                copied = [
                    (exercise, [(s.set_number, s.reps, s.weight) for s in exercise.sets])
                    for exercise in source.exercises
                ]
            new_session.name = source.name

            for exercise, sets in copied:
                new_session.exercises.append(
                    SessionExercise(
                        id=new_id(),
                        exercise_id=exercise.exercise_id,
                        order=exercise.order,
                        sets=[
                            SessionSet(id=new_id(), set_number=number, reps=reps, weight=weight)
                            for number, reps, weight in sets
                        ],
                    )
                )
            new_session.exercise_count, new_session.set_count = recount(new_session)
            db.add(new_session)
        logger.info("Session %s started (workout=%s, repeat_of=%s)", new_session.id, workout_id, session_id)
        return await SessionService.get_session(db, new_session.id)

    @staticmethod
    async def update_session(db: AsyncSession, session_id: str, data: SessionUpdate) -> Session:
        async with transaction(db):
            session = await load_aggregate(db, SESSION_AGGREGATE, session_id, refresh=True)
            if data.name is not None:
                session.name = data.name
            if data.completed_at is not None:
                session.completed_at = data.completed_at
                session.session_time = data.session_time or _elapsed_time(session.created_at, data.completed_at)
            elif data.session_time is not None:
                session.session_time = data.session_time
            session.is_synced = False
            await db.flush()
            await reconcile(db, SESSION_AGGREGATE, session_id, data.exercises)
        return await SessionService.get_session(db, session_id)

    @staticmethod
    async def delete_session(db: AsyncSession, session_id: str) -> None:
        async with transaction(db):
            session = await load_aggregate(db, SESSION_AGGREGATE, session_id, refresh=True)
            recorded = await TombstoneTracker.record_aggregate(db, session)
            await db.delete(session)
        logger.info("Session %s deleted (%s tombstones)", session_id, recorded)

    @staticmethod
    async def apply_completion(
        db: AsyncSession,
        payload: SessionUpdatePayload,
        *,
        user_id: str | None = None,
        track_deletions: bool = False,
    ) -> Session:
        """Apply a session-completion diff to a store.

        Removals run first so their set numbers are free, then updates and
        additions, then every order and set number is made dense again.
        Rows already removed and additions whose id already exists are
        skipped, so a retried payload lands once. The caller commits.

        The server applies it scoped to ``user_id``. The device applies the
        same payload with ``track_deletions`` so the ids it later pushes are
        the ones the server already holds.
        """
        session = await load_aggregate(db, SESSION_AGGREGATE, payload.session_id, refresh=True)
        if user_id is not None and session.user_id != user_id:
            raise NotFoundError(f"Session {payload.session_id} not found")

        exercises = {row.id: row for row in session.exercises}
        sets = {set_row.id: (row, set_row) for row in session.exercises for set_row in row.sets}

        for set_id in payload.sets_remove:
            found = sets.pop(set_id, None)
            if found:
                if track_deletions:
                    await TombstoneTracker.record_if_synced(db, found[1])
                found[0].sets.remove(found[1])
        for exercise_id in payload.exercises_remove:
            row = exercises.pop(exercise_id, None)
            if row:
                for set_row in row.sets:
                    sets.pop(set_row.id, None)
                if track_deletions:
                    for set_row in row.sets:
                        await TombstoneTracker.record_if_synced(db, set_row)
                    await TombstoneTracker.record_if_synced(db, row)
                session.exercises.remove(row)
        await db.flush()

        updates = {update.exercise_id: update for update in payload.exercises_update}
        missing = set(updates) - set(exercises)
        if missing:
            raise NotFoundError(f"Session exercises not found: {', '.join(sorted(missing))}")

        for row in list(exercises.values()):
            update = updates.get(row.id)
            set_updates = {su.session_set_id: su for su in update.sets_update} if update else {}
            unknown = set(set_updates) - {set_row.id for set_row in row.sets}
            if unknown:
                raise NotFoundError(f"Session sets not found: {', '.join(sorted(unknown))}")

            entries = []
            for set_row in row.sets:
                su = set_updates.get(set_row.id)
                if su:
                    entries.append((su.set_number, 0, set_row, {"reps": su.reps, "weight": su.weight}))
                else:
                    entries.append((set_row.set_number, 0, set_row, {}))
            if update:
                if row.order != update.order:
                    row.order = update.order
                    row.is_synced = False
                known_ids = {set_row.id for set_row in row.sets}
                for added in update.sets_add:
                    if added.id in known_ids:
                        continue
                    entries.append((added.set_number, 1, None, {"id": added.id, "reps": added.reps, "weight": added.weight}))
            await _place_sets(db, row, entries)

        for added in payload.exercises_add:
            if added.id in exercises:
                continue
            row = SessionExercise(id=added.id, exercise_id=added.exercise_id, order=added.order, sets=[])
            session.exercises.append(row)
            await _place_sets(
                db,
                row,
                [
                    (set_add.set_number, index, None, {"id": set_add.id, "reps": set_add.reps, "weight": set_add.weight})
                    for index, set_add in enumerate(added.session_sets)
                ],
            )

        for position, row in enumerate(sorted(session.exercises, key=lambda row: row.order), start=1):
            if row.order != position:
                row.order = position
                row.is_synced = False
        session.exercise_count, session.set_count = recount(session)
        session.completed_at = payload.completed_at
        session.session_time = _elapsed_time(payload.created_at, payload.completed_at)
        if payload.name:
            session.name = payload.name
        session.is_synced = False
        await db.flush()
        logger.info(
            "Session %s completed: +%s/~%s/-%s exercises, -%s sets",
            session.id,
            len(payload.exercises_add),
            len(payload.exercises_update),
            len(payload.exercises_remove),
            len(payload.sets_remove),
        )
        return session
