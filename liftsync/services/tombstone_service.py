"""Tombstone tracking for rows deleted on the device after they were synced."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.core.exceptions import UnknownTableError
from liftsync.models import (
    DeletedRow,
    Exercise,
    Session,
    SessionExercise,
    SessionSet,
    Workout,
    WorkoutExercise,
    WorkoutSet,
)
from liftsync.services.ownership import resolve_owner_id

logger = logging.getLogger(__name__)


# Children before parents so a parent is never removed server-side ahead of its rows.
REPLAY_ORDER: tuple[str, ...] = (
    SessionSet.__tablename__,
    SessionExercise.__tablename__,
    Session.__tablename__,
    WorkoutSet.__tablename__,
    WorkoutExercise.__tablename__,
    Workout.__tablename__,
    Exercise.__tablename__,
)

SYNCED_TABLES: dict[str, type] = {
    SessionSet.__tablename__: SessionSet,
    SessionExercise.__tablename__: SessionExercise,
    Session.__tablename__: Session,
    WorkoutSet.__tablename__: WorkoutSet,
    WorkoutExercise.__tablename__: WorkoutExercise,
    Workout.__tablename__: Workout,
    Exercise.__tablename__: Exercise,
}


def model_for_table(table_name: str) -> type:
    try:
        return SYNCED_TABLES[table_name]
    except KeyError:
        raise UnknownTableError(f"Unknown table name: {table_name}") from None


def _replay_rank(table_name: str) -> int:
    return REPLAY_ORDER.index(table_name)


class TombstoneTracker:
    @staticmethod
    async def record_deletion(db: AsyncSession, table_name: str, row_id: str) -> DeletedRow:
        """Queue a deletion for replay. The caller has checked the row was synced."""
        model_for_table(table_name)
        existing = await db.execute(
            select(DeletedRow).where(DeletedRow.table_name == table_name, DeletedRow.row_id == row_id)
        )
        tombstone = existing.scalar_one_or_none()
        if tombstone:
            return tombstone
        tombstone = DeletedRow(table_name=table_name, row_id=row_id)
        db.add(tombstone)
        logger.debug("Tombstone queued for %s/%s", table_name, row_id)
        return tombstone

    @staticmethod
    async def record_if_synced(db: AsyncSession, row) -> DeletedRow | None:
        # The server never saw a row that was created and deleted offline.
        if not row.is_synced:
            return None
        return await TombstoneTracker.record_deletion(db, row.__tablename__, row.id)

    @staticmethod
    async def record_aggregate(db: AsyncSession, parent) -> int:
        """Tombstone a loaded parent and its loaded exercises/sets, children first."""
        recorded = 0
        for exercise in parent.exercises:
            for set_row in exercise.sets:
                if await TombstoneTracker.record_if_synced(db, set_row):
                    recorded += 1
            if await TombstoneTracker.record_if_synced(db, exercise):
                recorded += 1
        if await TombstoneTracker.record_if_synced(db, parent):
            recorded += 1
        return recorded

    @staticmethod
    async def delete_row(db: AsyncSession, row) -> DeletedRow | None:
        tombstone = await TombstoneTracker.record_if_synced(db, row)
        await db.delete(row)
        return tombstone

    @staticmethod
    async def drain_deletions(db: AsyncSession) -> list[DeletedRow]:
        result = await db.execute(select(DeletedRow).order_by(DeletedRow.created_at, DeletedRow.id))
        rows = list(result.scalars().all())
        for row in rows:
            model_for_table(row.table_name)
        return sorted(rows, key=lambda row: _replay_rank(row.table_name))

    @staticmethod
    async def clear(db: AsyncSession, ids: Iterable[str]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        result = await db.execute(delete(DeletedRow).where(DeletedRow.id.in_(ids)))
        return result.rowcount or 0


async def replay_deletions(db: AsyncSession, user_id: str, rows: Sequence) -> int:
    """Apply device tombstones to the authoritative store.

    Rows already gone are skipped so a retried batch is harmless. Rows owned
    by another user are left alone. The caller commits.
    """
    for row in rows:
        model_for_table(row.table_name)

    removed = 0
    for row in sorted(rows, key=lambda r: _replay_rank(r.table_name)):
        model = SYNCED_TABLES[row.table_name]
        target = await db.get(model, row.row_id)
        if target is None:
            logger.info("Tombstone for missing %s/%s ignored", row.table_name, row.row_id)
            continue
        owner_id = await resolve_owner_id(db, target)
        if owner_id != user_id:
            logger.warning("Tombstone for %s/%s rejected: not owned by %s", row.table_name, row.row_id, user_id)
            continue
        await db.execute(delete(model).where(model.id == row.row_id))
        removed += 1
    return removed
