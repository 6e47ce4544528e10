import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.core.exceptions import ConflictError, UnknownTableError
from liftsync.models import DeletedRow, Exercise, Session, SessionExercise
from liftsync.schemas.sync import DeletedRowSync
from liftsync.schemas.workouts import SetShape, WorkoutExerciseShape, WorkoutUpsert
from liftsync.services.exercise_service import ExerciseInput, ExerciseService
from liftsync.services.session_service import SessionService
from liftsync.services.tombstone_service import REPLAY_ORDER, TombstoneTracker, replay_deletions
from liftsync.services.workout_service import WorkoutService


async def _tombstones(db: AsyncSession):
    return [(row.table_name, row.row_id) for row in await TombstoneTracker.drain_deletions(db)]


@pytest.mark.asyncio
async def test_deleting_offline_exercise_leaves_no_tombstone(db_session: AsyncSession):
    exercise = await ExerciseService.create_exercise(db_session, ExerciseInput(name="Lunge"))

    await ExerciseService.delete_exercise(db_session, exercise.id)

    assert await _tombstones(db_session) == []


@pytest.mark.asyncio
async def test_deleting_synced_exercise_leaves_one_tombstone(db_session: AsyncSession):
    exercise = await ExerciseService.create_exercise(db_session, ExerciseInput(name="Lunge"))
    await db_session.execute(update(Exercise).where(Exercise.id == exercise.id).values(is_synced=True))
    await db_session.commit()

    await ExerciseService.delete_exercise(db_session, exercise.id)

    assert await _tombstones(db_session) == [("exercises", exercise.id)]


@pytest.mark.asyncio
async def test_exercise_in_use_cannot_be_deleted(db_session: AsyncSession, exercises):
    await WorkoutService.create_workout(
        db_session,
        WorkoutUpsert(name="Legs", exercises=[WorkoutExerciseShape(exercise_id=exercises["Squat"], sets=[SetShape()])]),
    )

    with pytest.raises(ConflictError):
        await ExerciseService.delete_exercise(db_session, exercises["Squat"])


@pytest.mark.asyncio
async def test_unknown_table_is_rejected_immediately(db_session: AsyncSession):
    with pytest.raises(UnknownTableError):
        await TombstoneTracker.record_deletion(db_session, "workoutexercises", "abc")


@pytest.mark.asyncio
async def test_recording_twice_keeps_one_tombstone(db_session: AsyncSession):
    await TombstoneTracker.record_deletion(db_session, "sessions", "s-1")
    await db_session.flush()
    await TombstoneTracker.record_deletion(db_session, "sessions", "s-1")
    await db_session.commit()

    rows = (await db_session.execute(select(DeletedRow))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_drain_orders_children_before_parents(db_session: AsyncSession):
    for table_name in ("exercises", "workouts", "sessions", "sets", "session_sets", "workout_exercises"):
        await TombstoneTracker.record_deletion(db_session, table_name, f"{table_name}-1")
    await db_session.commit()

    drained = [table for table, _ in await _tombstones(db_session)]

    assert drained == [t for t in REPLAY_ORDER if t in drained]
    assert drained.index("session_sets") < drained.index("sessions")
    assert drained.index("sets") < drained.index("workout_exercises") < drained.index("workouts")


@pytest.mark.asyncio
async def test_clear_removes_only_acknowledged(db_session: AsyncSession):
    first = await TombstoneTracker.record_deletion(db_session, "workouts", "w-1")
    await TombstoneTracker.record_deletion(db_session, "workouts", "w-2")
    await db_session.commit()

    cleared = await TombstoneTracker.clear(db_session, [first.id])
    await db_session.commit()

    assert cleared == 1
    assert await _tombstones(db_session) == [("workouts", "w-2")]


@pytest.mark.asyncio
async def test_deleting_synced_session_tombstones_whole_aggregate(db_session: AsyncSession, exercises):
    workout = await WorkoutService.create_workout(
        db_session,
        WorkoutUpsert(
            name="Legs",
            exercises=[WorkoutExerciseShape(exercise_id=exercises["Squat"], sets=[SetShape(target_reps=5), SetShape(target_reps=5)])],
        ),
    )
    session = await SessionService.create_session(db_session, workout_id=workout.id)
    await db_session.execute(update(Session).values(is_synced=True))
    await db_session.execute(update(SessionExercise).values(is_synced=True))
    await db_session.commit()

    await SessionService.delete_session(db_session, session.id)

    tables = [table for table, _ in await _tombstones(db_session)]
    # Sets were never synced, so only the exercise row and the session are tombstoned.
    assert tables == ["session_exercises", "sessions"]


@pytest.mark.asyncio
async def test_replay_skips_missing_rows_and_other_users(db_session: AsyncSession):
    mine = Exercise(name="Mine", user_id=None)
    db_session.add(mine)
    await db_session.commit()
    mine_id = mine.id

    removed = await replay_deletions(
        db_session,
        "user-1",
        [
            DeletedRowSync(id="t1", table_name="exercises", row_id="gone"),
            DeletedRowSync(id="t2", table_name="exercises", row_id=mine_id),
        ],
    )

    assert removed == 0
    assert await db_session.get(Exercise, mine_id) is not None


@pytest.mark.asyncio
async def test_replay_fails_fast_on_unknown_table(db_session: AsyncSession):
    with pytest.raises(UnknownTableError):
        await replay_deletions(db_session, "user-1", [DeletedRowSync(id="t1", table_name="bogus", row_id="x")])
