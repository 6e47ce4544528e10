import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.core.exceptions import InvariantViolation, NotFoundError
from liftsync.models import DeletedRow, Workout, WorkoutExercise, WorkoutSet
from liftsync.schemas.workouts import SetShape, WorkoutExerciseShape, WorkoutRead, WorkoutUpsert
from liftsync.services import reconciler
from liftsync.services.reconciler import WORKOUT_AGGREGATE, reconcile
from liftsync.services.workout_service import WorkoutService


def _sets(*reps, ids=()):
    ids = list(ids) + [None] * (len(reps) - len(ids))
    return [SetShape(id=set_id, target_reps=r, target_weight=r * 10) for set_id, r in zip(ids, reps)]


def assert_dense(workout):
    assert [e.order for e in workout.exercises] == list(range(1, len(workout.exercises) + 1))
    for exercise in workout.exercises:
        assert [s.set_number for s in exercise.sets] == list(range(1, len(exercise.sets) + 1))
    assert workout.exercise_count == len(workout.exercises)
    assert workout.set_count == sum(len(e.sets) for e in workout.exercises)


async def _mark_all_synced(db: AsyncSession):
    for model in (Workout, WorkoutExercise, WorkoutSet):
        await db.execute(update(model).values(is_synced=True))
    await db.commit()


async def _tombstones(db: AsyncSession):
    rows = (await db.execute(select(DeletedRow))).scalars().all()
    return sorted((row.table_name, row.row_id) for row in rows)


async def _leg_day(db: AsyncSession, exercises):
    return await WorkoutService.create_workout(
        db,
        WorkoutUpsert(
            name="Leg Day",
            exercises=[
                WorkoutExerciseShape(exercise_id=exercises["Squat"], sets=_sets(5, 5, 5)),
                WorkoutExerciseShape(exercise_id=exercises["Deadlift"], sets=_sets(3, 3)),
            ],
        ),
    )


@pytest.mark.asyncio
async def test_create_workout_orders_by_target_position(db_session: AsyncSession, exercises):
    workout = await WorkoutService.create_workout(
        db_session,
        WorkoutUpsert(
            name="Push Day",
            exercises=[
                WorkoutExerciseShape(
                    exercise_id=exercises["Bench Press"],
                    order=2,
                    sets=[
                        SetShape(set_number=4, target_reps=6, target_weight=80),
                        SetShape(set_number=2, target_reps=8, target_weight=70),
                    ],
                ),
                WorkoutExerciseShape(exercise_id=exercises["Squat"], order=1, sets=_sets(5)),
            ],
        ),
    )

    assert_dense(workout)
    assert [e.exercise_id for e in workout.exercises] == [exercises["Squat"], exercises["Bench Press"]]
    assert [s.target_reps for s in workout.exercises[1].sets] == [8, 6]
    assert (workout.exercise_count, workout.set_count) == (2, 3)
    assert not workout.is_synced


@pytest.mark.asyncio
async def test_update_keeps_matched_rows(db_session: AsyncSession, exercises):
    workout = await _leg_day(db_session, exercises)
    squat = workout.exercises[0]
    first, second, third = [s.id for s in squat.sets]

    updated = await WorkoutService.update_workout(
        db_session,
        workout.id,
        WorkoutUpsert(
            name="Leg Day",
            exercises=[
                WorkoutExerciseShape(exercise_id=exercises["Squat"], sets=_sets(8, 5, 1, ids=[third, first])),
                WorkoutExerciseShape(exercise_id=exercises["Deadlift"], sets=_sets(3, 3, ids=[s.id for s in workout.exercises[1].sets])),
            ],
        ),
    )

    assert_dense(updated)
    squat = updated.exercises[0]
    assert squat.id == workout.exercises[0].id
    assert [s.id for s in squat.sets][:2] == [third, first]
    assert second not in {s.id for s in squat.sets}
    assert [s.target_reps for s in squat.sets] == [8, 5, 1]
    assert (updated.exercise_count, updated.set_count) == (2, 5)


@pytest.mark.asyncio
async def test_removing_synced_exercise_tombstones_it_and_its_sets(db_session: AsyncSession, exercises):
    workout = await _leg_day(db_session, exercises)
    deadlift = workout.exercises[1]
    removed = [("sets", s.id) for s in deadlift.sets] + [("workout_exercises", deadlift.id)]
    await _mark_all_synced(db_session)

    updated = await WorkoutService.update_workout(
        db_session,
        workout.id,
        WorkoutUpsert(
            name="Leg Day",
            exercises=[
                WorkoutExerciseShape(exercise_id=exercises["Squat"], sets=_sets(5, 5, 5, ids=[s.id for s in workout.exercises[0].sets])),
            ],
        ),
    )

    assert_dense(updated)
    assert (updated.exercise_count, updated.set_count) == (1, 3)
    assert await _tombstones(db_session) == sorted(removed)
    assert not updated.is_synced
    assert all(s.is_synced for s in updated.exercises[0].sets)


@pytest.mark.asyncio
async def test_removing_offline_rows_leaves_no_tombstones(db_session: AsyncSession, exercises):
    workout = await _leg_day(db_session, exercises)

    await WorkoutService.update_workout(
        db_session,
        workout.id,
        WorkoutUpsert(name="Leg Day", exercises=[WorkoutExerciseShape(exercise_id=exercises["Deadlift"], sets=_sets(1))]),
    )

    assert await _tombstones(db_session) == []


@pytest.mark.asyncio
async def test_unchanged_target_is_a_no_op(db_session: AsyncSession, exercises):
    workout = await _leg_day(db_session, exercises)
    await _mark_all_synced(db_session)
    target = [
        WorkoutExerciseShape(exercise_id=e.exercise_id, sets=_sets(*[s.target_reps for s in e.sets], ids=[s.id for s in e.sets]))
        for e in workout.exercises
    ]

    result = await reconcile(db_session, WORKOUT_AGGREGATE, workout.id, target)
    await db_session.commit()

    assert not result.changed
    reloaded = await WorkoutService.get_workout(db_session, workout.id)
    assert reloaded.is_synced
    assert all(e.is_synced for e in reloaded.exercises)


@pytest.mark.asyncio
async def test_match_by_row_reorders_in_place(db_session: AsyncSession, exercises):
    workout = await _leg_day(db_session, exercises)
    squat, deadlift = workout.exercises

    result = await reconcile(
        db_session,
        WORKOUT_AGGREGATE,
        workout.id,
        [
            WorkoutExerciseShape(id=deadlift.id, exercise_id=deadlift.exercise_id, sets=_sets(3, 3, ids=[s.id for s in deadlift.sets])),
            WorkoutExerciseShape(id=squat.id, exercise_id=squat.exercise_id, sets=_sets(5, 5, 5, ids=[s.id for s in squat.sets])),
        ],
        match_by="row",
    )
    await db_session.commit()

    reloaded = await WorkoutService.get_workout(db_session, workout.id)
    assert [e.id for e in reloaded.exercises] == [deadlift.id, squat.id]
    assert result.exercises_updated == 2
    assert result.exercises_inserted == result.exercises_deleted == 0
    assert_dense(reloaded)


@pytest.mark.asyncio
async def test_duplicate_exercise_reference_is_rejected(db_session: AsyncSession, exercises):
    workout = await _leg_day(db_session, exercises)

    with pytest.raises(InvariantViolation):
        await WorkoutService.update_workout(
            db_session,
            workout.id,
            WorkoutUpsert(
                name="Leg Day",
                exercises=[
                    WorkoutExerciseShape(exercise_id=exercises["Squat"], sets=_sets(1)),
                    WorkoutExerciseShape(exercise_id=exercises["Squat"], sets=_sets(2)),
                ],
            ),
        )

    reloaded = await WorkoutService.get_workout(db_session, workout.id)
    assert (reloaded.exercise_count, reloaded.set_count) == (2, 5)


@pytest.mark.asyncio
async def test_missing_parent_raises_not_found(db_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await reconcile(db_session, WORKOUT_AGGREGATE, "no-such-workout", [])


@pytest.mark.asyncio
async def test_failure_mid_reconcile_rolls_back_everything(db_session: AsyncSession, exercises, monkeypatch):
    workout = await _leg_day(db_session, exercises)
    before = WorkoutRead.model_validate(workout).model_dump()

    calls = {"count": 0}
    original = reconciler._reconcile_sets

    async def failing(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 2:
            raise RuntimeError("disk full")
        return await original(*args, **kwargs)

    monkeypatch.setattr(reconciler, "_reconcile_sets", failing)

    with pytest.raises(RuntimeError):
        await WorkoutService.update_workout(
            db_session,
            workout.id,
            WorkoutUpsert(
                name="Leg Day",
                exercises=[
                    WorkoutExerciseShape(exercise_id=exercises["Bench Press"], sets=_sets(10)),
                    WorkoutExerciseShape(exercise_id=exercises["Squat"], sets=_sets(1)),
                ],
            ),
        )

    monkeypatch.setattr(reconciler, "_reconcile_sets", original)
    reloaded = await WorkoutService.get_workout(db_session, workout.id)
    assert WorkoutRead.model_validate(reloaded).model_dump() == before
