import logging
from typing import Annotated, List, Sequence

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.auth import dependencies
from liftsync.core.exceptions import ConflictError
from liftsync.core.responses import StandardResponse
from liftsync.database import get_db
from liftsync.models import (
    Exercise,
    Session,
    SessionExercise,
    SessionSet,
    User,
    Workout,
    WorkoutExercise,
    WorkoutSet,
)
from liftsync.schemas.base import WireModel
from liftsync.schemas.sync import (
    DeletedRowSync,
    ExerciseSync,
    SessionExerciseSync,
    SessionSetSync,
    SessionSync,
    SetSync,
    SyncAck,
    WorkoutExerciseSync,
    WorkoutSync,
)
from liftsync.services.ownership import PARENT_LINKS, resolve_owner_id
from liftsync.services.tombstone_service import replay_deletions

logger = logging.getLogger(__name__)

router = APIRouter()

DB = Annotated[AsyncSession, Depends(get_db)]


async def _ensure_owned(db: AsyncSession, row, user: User) -> None:
    owner_id = await resolve_owner_id(db, row)
    if owner_id != user.id:
        raise ConflictError(f"{row.__tablename__} {row.id} belongs to another user")


async def _upsert(
    db: AsyncSession,
    user: User,
    model: type,
    rows: Sequence[WireModel],
    *,
    create_only: frozenset[str] = frozenset(),
    number_field: str | None = None,
) -> SyncAck:
    """Insert or update ``rows`` by primary key, scoped to ``user``.

    Roots are created under the caller. Children must hang off an aggregate
    the caller owns. Shared seed rows (no owner) are left untouched. When the
    batch renumbers sets, existing rows are parked first so the unique
    (set number, parent) pair never collides mid-batch.
    """
    ids = [data.id for data in rows]
    existing = {
        row.id: row
        for row in (await db.execute(select(model).where(model.id.in_(ids)))).scalars().all()
    }
    is_root = model not in PARENT_LINKS

    accepted: list[str] = []
    writable: dict[str, object] = {}
    for row_id, row in existing.items():
        if is_root and row.user_id is None:
            logger.info("Shared %s %s left unchanged", model.__tablename__, row_id)
            accepted.append(row_id)
            continue
        await _ensure_owned(db, row, user)
        writable[row_id] = row

    if number_field and writable:
        for offset, row in enumerate(writable.values(), start=1):
            setattr(row, number_field, -offset)
        await db.flush()

    for data in rows:
        if data.id in existing and data.id not in writable:
            continue
        values = data.model_dump(exclude={"id"})
        row = writable.get(data.id)
        if row is None:
            row = model(id=data.id, **values)
            if is_root:
                row.user_id = user.id
            await _ensure_owned(db, row, user)
            db.add(row)
        else:
            for field, value in values.items():
                if field not in create_only:
                    setattr(row, field, value)
            await _ensure_owned(db, row, user)
        row.is_synced = True
        accepted.append(data.id)

    await db.commit()
    logger.info("Synced %s %s rows for user %s", len(accepted), model.__tablename__, user.id)
    return SyncAck(accepted=len(accepted), ids=accepted)


@router.post("/exercises", response_model=StandardResponse[SyncAck])
async def sync_exercises(rows: List[ExerciseSync], current_user: dependencies.CurrentUser, db: DB):
    return StandardResponse(data=await _upsert(db, current_user, Exercise, rows))


@router.post("/workouts", response_model=StandardResponse[SyncAck])
async def sync_workouts(rows: List[WorkoutSync], current_user: dependencies.CurrentUser, db: DB):
    ack = await _upsert(db, current_user, Workout, rows, create_only=frozenset({"created_at", "is_default_workout"}))
    return StandardResponse(data=ack)


@router.post("/workout-exercises", response_model=StandardResponse[SyncAck])
async def sync_workout_exercises(rows: List[WorkoutExerciseSync], current_user: dependencies.CurrentUser, db: DB):
    return StandardResponse(data=await _upsert(db, current_user, WorkoutExercise, rows))


@router.post("/sets", response_model=StandardResponse[SyncAck])
async def sync_sets(rows: List[SetSync], current_user: dependencies.CurrentUser, db: DB):
    return StandardResponse(data=await _upsert(db, current_user, WorkoutSet, rows, number_field="set_number"))


@router.post("/sessions", response_model=StandardResponse[SyncAck])
async def sync_sessions(rows: List[SessionSync], current_user: dependencies.CurrentUser, db: DB):
    ack = await _upsert(db, current_user, Session, rows, create_only=frozenset({"created_at"}))
    return StandardResponse(data=ack)


@router.post("/session-exercises", response_model=StandardResponse[SyncAck])
async def sync_session_exercises(rows: List[SessionExerciseSync], current_user: dependencies.CurrentUser, db: DB):
    return StandardResponse(data=await _upsert(db, current_user, SessionExercise, rows))


@router.post("/session-sets", response_model=StandardResponse[SyncAck])
async def sync_session_sets(rows: List[SessionSetSync], current_user: dependencies.CurrentUser, db: DB):
    return StandardResponse(data=await _upsert(db, current_user, SessionSet, rows, number_field="set_number"))


@router.post("/deleted-rows", response_model=StandardResponse[SyncAck])
async def sync_deleted_rows(rows: List[DeletedRowSync], current_user: dependencies.CurrentUser, db: DB):
    """Replay device tombstones. Unknown table names reject the whole batch."""
    removed = await replay_deletions(db, current_user.id, rows)
    await db.commit()
    logger.info("Replayed %s tombstones for user %s (%s rows removed)", len(rows), current_user.id, removed)
    return StandardResponse(data=SyncAck(accepted=len(rows), ids=[row.id for row in rows]))
