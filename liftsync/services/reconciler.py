"""Diff-based reconciliation of two-level aggregates.

A workout owns ordered exercises which own ordered sets; a session has the
same shape. ``reconcile`` turns the persisted aggregate into a caller-supplied
target shape with the fewest inserts, updates and deletes, keeps row identity
wherever a row can be matched, keeps ``order`` and ``set_number`` dense and
recomputes the parent's derived counters.

Nothing here commits. Callers wrap the call in ``liftsync.database.transaction``
(device) or commit from the router (server), so a failure anywhere leaves the
aggregate exactly as it was.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from liftsync.core.exceptions import InvariantViolation, NotFoundError
from liftsync.core.identity import new_id
from liftsync.models import Session, SessionExercise, SessionSet, Workout, WorkoutExercise, WorkoutSet
from liftsync.services.tombstone_service import TombstoneTracker

logger = logging.getLogger(__name__)

MatchBy = Literal["exercise", "row"]


@dataclass(frozen=True)
class AggregateSpec:
    name: str
    parent_model: type
    exercise_model: type
    set_model: type
    set_fields: tuple[str, ...]


WORKOUT_AGGREGATE = AggregateSpec(
    name="workout",
    parent_model=Workout,
    exercise_model=WorkoutExercise,
    set_model=WorkoutSet,
    set_fields=("target_reps", "target_weight"),
)

SESSION_AGGREGATE = AggregateSpec(
    name="session",
    parent_model=Session,
    exercise_model=SessionExercise,
    set_model=SessionSet,
    set_fields=("reps", "weight"),
)


@dataclass
class ReconcileResult:
    exercises_inserted: int = 0
    exercises_updated: int = 0
    exercises_deleted: int = 0
    sets_inserted: int = 0
    sets_updated: int = 0
    sets_deleted: int = 0
    exercise_count: int = 0
    set_count: int = 0

    @property
    def changed(self) -> bool:
        return any((
            self.exercises_inserted, self.exercises_updated, self.exercises_deleted,
            self.sets_inserted, self.sets_updated, self.sets_deleted,
        ))


async def load_aggregate(db: AsyncSession, spec: AggregateSpec, parent_id: str, *, refresh: bool = False):
    stmt = (
        select(spec.parent_model)
        .where(spec.parent_model.id == parent_id)
        .options(selectinload(spec.parent_model.exercises).selectinload(spec.exercise_model.sets))
    )
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    parent = (await db.execute(stmt)).scalar_one_or_none()
    if parent is None:
        raise NotFoundError(f"{spec.name.capitalize()} {parent_id} not found")
    return parent


def _in_target_order(shapes: Sequence, attr: str) -> list:
    # Explicit positions win; shapes without one keep their list position after them.
    indexed = list(enumerate(shapes))
    indexed.sort(key=lambda item: (getattr(item[1], attr) is None, getattr(item[1], attr) or 0, item[0]))
    return [shape for _, shape in indexed]


def _reject_duplicate_references(shapes: Sequence) -> None:
    seen: set[str] = set()
    for shape in shapes:
        if shape.exercise_id in seen:
            raise InvariantViolation(f"Exercise {shape.exercise_id} appears more than once in one aggregate")
        seen.add(shape.exercise_id)


async def _vacate_set_numbers(db: AsyncSession, rows: Sequence) -> None:
    """Park surviving sets on negative numbers so renumbering never collides."""
    if not rows:
        return
    for offset, row in enumerate(rows, start=1):
        row.set_number = -offset
    await db.flush()


async def _delete_exercise(db: AsyncSession, parent, row, result: ReconcileResult, track_deletions: bool) -> None:
    if track_deletions:
        for set_row in row.sets:
            await TombstoneTracker.record_if_synced(db, set_row)
        await TombstoneTracker.record_if_synced(db, row)
    result.sets_deleted += len(row.sets)
    result.exercises_deleted += 1
    parent.exercises.remove(row)


async def _reconcile_sets(
    db: AsyncSession,
    spec: AggregateSpec,
    exercise_row,
    target_sets: Sequence,
    result: ReconcileResult,
    track_deletions: bool,
) -> int:
    ordered = _in_target_order(target_sets, "set_number")
    persisted = {row.id: row for row in exercise_row.sets}

    plan = []
    for shape in ordered:
        row = persisted.pop(shape.id, None) if shape.id else None
        plan.append((shape, row))

    # Persisted sets absent from the target free their slots before anything moves in.
    for row in persisted.values():
        if track_deletions:
            await TombstoneTracker.record_if_synced(db, row)
        exercise_row.sets.remove(row)
        result.sets_deleted += 1
    if persisted:
        await db.flush()

    survivors = [row for _, row in plan if row is not None]
    before = {
        row.id: (row.set_number, tuple(getattr(row, field) for field in spec.set_fields))
        for row in survivors
    }
    await _vacate_set_numbers(db, survivors)

    for position, (shape, row) in enumerate(plan, start=1):
        values = {field: getattr(shape, field) for field in spec.set_fields}
        if row is None:
            exercise_row.sets.append(spec.set_model(id=new_id(), set_number=position, **values))
            result.sets_inserted += 1
            continue
        row.set_number = position
        for field, value in values.items():
            setattr(row, field, value)
        if before[row.id] != (position, tuple(values.values())):
            row.is_synced = False
            result.sets_updated += 1
    return len(plan)


async def reconcile(
    db: AsyncSession,
    spec: AggregateSpec,
    parent_id: str,
    target: Sequence,
    *,
    match_by: MatchBy = "exercise",
    track_deletions: bool = True,
) -> ReconcileResult:
    """Make the persisted aggregate equal ``target`` and return what changed.

    ``match_by="exercise"`` pairs target and persisted exercises by exercise
    reference, which is how an edited workout or session comes back from the
    UI. ``match_by="row"`` pairs them by row id, for shapes that carry ids.
    Sets are always paired by row id; a target set without one is new.
    """
    parent = await load_aggregate(db, spec, parent_id, refresh=True)
    ordered = _in_target_order(target, "order")
    _reject_duplicate_references(ordered)

    if match_by == "exercise":
        persisted = {row.exercise_id: row for row in parent.exercises}
    else:
        persisted = {row.id: row for row in parent.exercises}

    plan = []
    for shape in ordered:
        key = shape.exercise_id if match_by == "exercise" else shape.id
        row = persisted.pop(key, None) if key else None
        plan.append((shape, row))

    result = ReconcileResult()
    for row in list(persisted.values()):
        await _delete_exercise(db, parent, row, result, track_deletions)
    if persisted:
        await db.flush()

    set_count = 0
    for position, (shape, row) in enumerate(plan, start=1):
        if row is None:
            row = spec.exercise_model(id=new_id(), exercise_id=shape.exercise_id, order=position, sets=[])
            parent.exercises.append(row)
            result.exercises_inserted += 1
        elif row.order != position or row.exercise_id != shape.exercise_id:
            row.order = position
            row.exercise_id = shape.exercise_id
            row.is_synced = False
            result.exercises_updated += 1
        set_count += await _reconcile_sets(db, spec, row, shape.sets, result, track_deletions)

    result.exercise_count = len(plan)
    result.set_count = set_count
    if (parent.exercise_count, parent.set_count) != (result.exercise_count, result.set_count):
        parent.exercise_count = result.exercise_count
        parent.set_count = result.set_count
        parent.is_synced = False
    await db.flush()

    logger.info(
        "Reconciled %s %s: +%s/~%s/-%s exercises, +%s/~%s/-%s sets",
        spec.name,
        parent_id,
        result.exercises_inserted,
        result.exercises_updated,
        result.exercises_deleted,
        result.sets_inserted,
        result.sets_updated,
        result.sets_deleted,
    )
    return result


def recount(parent) -> tuple[int, int]:
    """Counters from a loaded aggregate."""
    exercise_count = len(parent.exercises)
    set_count = sum(len(exercise.sets) for exercise in parent.exercises)
    return exercise_count, set_count
