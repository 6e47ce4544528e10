"""Push the device's dirty rows and tombstones to the server.

One cycle reads a single outbox: pending tombstones first, then each synced
table in dependency order. A batch that fails leaves its rows dirty and
makes every batch depending on it wait for the next cycle; unrelated
batches still go out.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from liftsync.core.exceptions import InvariantViolation, LiftSyncError, NotFoundError, TransientSyncError
from liftsync.database import transaction
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
from liftsync.schemas.sessions import SessionUpdatePayload
from liftsync.schemas.sync import (
    DeletedRowSync,
    ExerciseSync,
    SessionExerciseSync,
    SessionSetSync,
    SessionSync,
    SetSync,
    UserSync,
    WorkoutExerciseSync,
    WorkoutSync,
)
from liftsync.services.session_service import SessionService
from liftsync.services.tombstone_service import TombstoneTracker
from liftsync.services.transport import SyncTransport

logger = logging.getLogger(__name__)

TOMBSTONES = "deleted_rows"


@dataclass(frozen=True)
class SyncTable:
    name: str
    model: type
    schema: type[WireModel]
    send: str
    depends_on: tuple[str, ...] = ()


SYNC_TABLES: tuple[SyncTable, ...] = (
    SyncTable("users", User, UserSync, "sync_users"),
    SyncTable("exercises", Exercise, ExerciseSync, "sync_exercises", ("users",)),
    SyncTable("workouts", Workout, WorkoutSync, "sync_workouts", ("users",)),
    SyncTable("workout_exercises", WorkoutExercise, WorkoutExerciseSync, "sync_workout_exercises", ("workouts", "exercises")),
    SyncTable("sets", WorkoutSet, SetSync, "sync_sets", ("workout_exercises",)),
    SyncTable("sessions", Session, SessionSync, "sync_sessions", ("users", "workouts")),
    SyncTable("session_exercises", SessionExercise, SessionExerciseSync, "sync_session_exercises", ("sessions", "exercises")),
    SyncTable("session_sets", SessionSet, SessionSetSync, "sync_session_sets", ("session_exercises",)),
)


@dataclass
class OutboxBatch:
    table: str
    ids: list[str]
    rows: list[dict[str, Any]]
    # sync_version of each row when it was read, parallel to ids
    versions: list[int] = field(default_factory=list)


@dataclass
class SyncReport:
    pushed: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    transport_calls: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


class SyncOrchestrator:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], transport: SyncTransport):
        self.session_factory = session_factory
        self.transport = transport
        self._lock = asyncio.Lock()

    async def collect_outbox(self) -> list[OutboxBatch]:
        """Everything waiting to be pushed, in push order. Empty batches are left out."""
        outbox: list[OutboxBatch] = []
        async with self.session_factory() as db:
            tombstones = await TombstoneTracker.drain_deletions(db)
            if tombstones:
                outbox.append(
                    OutboxBatch(
                        table=TOMBSTONES,
                        ids=[row.id for row in tombstones],
                        rows=[DeletedRowSync.model_validate(row).to_wire() for row in tombstones],
                    )
                )
            for table in SYNC_TABLES:
                result = await db.execute(
                    select(table.model).where(table.model.is_synced.is_(False)).order_by(table.model.id)
                )
                rows = list(result.scalars().all())
                if rows:
                    outbox.append(
                        OutboxBatch(
                            table=table.name,
                            ids=[row.id for row in rows],
                            rows=[table.schema.model_validate(row).to_wire() for row in rows],
                            versions=[row.sync_version for row in rows],
                        )
                    )
        return outbox

    async def _device_user(self) -> User:
        async with self.session_factory() as db:
            user = (await db.execute(select(User).order_by(User.created_at).limit(1))).scalar_one_or_none()
        if user is None:
            raise InvariantViolation("Create a profile first")
        return user

    async def _mark_pushed(self, batch: OutboxBatch) -> None:
        async with self.session_factory() as db:
            async with transaction(db):
                if batch.table == TOMBSTONES:
                    await TombstoneTracker.clear(db, batch.ids)
                    return
                model = next(table.model for table in SYNC_TABLES if table.name == batch.table)
                by_version: dict[int, list[str]] = defaultdict(list)
                for row_id, version in zip(batch.ids, batch.versions):
                    by_version[version].append(row_id)
                marked = 0
                for version, ids in by_version.items():
                    result = await db.execute(
                        update(model)
                        .where(model.id.in_(ids), model.sync_version == version)
                        .values(is_synced=True)
                    )
                    marked += result.rowcount or 0
                if marked < len(batch.ids):
                    logger.info(
                        "%s of %s %s rows changed during the push and stay dirty",
                        len(batch.ids) - marked,
                        len(batch.ids),
                        batch.table,
                    )

    async def _push_batch(self, batch: OutboxBatch, report: SyncReport) -> bool:
        report.transport_calls += 1
        try:
            if batch.table == TOMBSTONES:
                await self.transport.delete_rows(batch.rows)
            else:
                send = next(table.send for table in SYNC_TABLES if table.name == batch.table)
                await getattr(self.transport, send)(batch.rows)
        except TransientSyncError as exc:
            logger.warning("Sync of %s deferred: %s", batch.table, exc.detail)
            report.failed[batch.table] = exc.detail
            return False
        except LiftSyncError as exc:
            logger.error("Sync of %s rejected by server: %s", batch.table, exc.detail)
            report.failed[batch.table] = exc.detail
            return False
        await self._mark_pushed(batch)
        report.pushed[batch.table] = len(batch.ids)
        return True

    async def run(self) -> SyncReport:
        """Push the outbox once. Cancellation waits for the batch in flight."""
        async with self._lock:
            report = SyncReport()
            outbox = await self.collect_outbox()
            if not outbox:
                logger.debug("Nothing to sync")
                return report

            user = await self._device_user()
            try:
                await self.transport.ensure_token(UserSync.model_validate(user).to_wire())
            except LiftSyncError as exc:
                logger.warning("Sync skipped, no token: %s", exc.detail)
                report.failed["token"] = exc.detail
                report.skipped = [batch.table for batch in outbox]
                return report

            blocked: set[str] = set()
            dependencies = {table.name: table.depends_on for table in SYNC_TABLES}
            for batch in outbox:
                if blocked.intersection(dependencies.get(batch.table, ())):
                    report.skipped.append(batch.table)
                    blocked.add(batch.table)
                    continue
                task = asyncio.ensure_future(self._push_batch(batch, report))
                try:
                    pushed = await asyncio.shield(task)
                except asyncio.CancelledError:
                    await task
                    logger.info("Sync cancelled after %s", batch.table)
                    raise
                if not pushed:
                    blocked.add(batch.table)

            logger.info(
                "Sync finished: pushed=%s failed=%s skipped=%s",
                report.pushed,
                list(report.failed),
                report.skipped,
            )
            return report

    async def complete_session(self, payload: SessionUpdatePayload) -> bool:
        """Apply a completion diff locally, then send it. False when the server was not reached."""
        async with self.session_factory() as db:
            async with transaction(db):
                await SessionService.apply_completion(db, payload, track_deletions=True)
        try:
            await self.transport.ensure_token(UserSync.model_validate(await self._device_user()).to_wire())
            await self.transport.update_session(payload)
        except (TransientSyncError, NotFoundError) as exc:
            # NotFound: the session itself has not been pushed yet; the row sync carries it.
            logger.warning("Session %s saved offline: %s", payload.session_id, exc.detail)
            return False
        return True

    async def run_periodically(self, interval_seconds: float) -> None:
        while True:
            try:
                await self.run()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Sync iteration failed")
            await asyncio.sleep(interval_seconds)
