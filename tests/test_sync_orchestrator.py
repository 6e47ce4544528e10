import asyncio
import json
import pytest
import httpx
from sqlalchemy import func, select

from liftsync.core.exceptions import InvariantViolation, TransientSyncError, UnauthorizedError
from liftsync.models import DeletedRow, Exercise, Session, SessionSet, Workout, WorkoutExercise, WorkoutSet
from liftsync.schemas.sync import SyncAck
from liftsync.schemas.workouts import SetShape, WorkoutExerciseShape, WorkoutUpsert
from liftsync.services.exercise_service import ExerciseService
from liftsync.services.payload_builder import build_session_update_payload, tag_session_state
from liftsync.services.session_service import SessionService
from liftsync.services.sync_service import SyncOrchestrator
from liftsync.services.transport import HttpSyncTransport, SyncTransport
from liftsync.services.workout_service import WorkoutService


class FakeTransport(SyncTransport):
    def __init__(self):
        self.calls: list[tuple[str, list]] = []
        self.failing: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.started = asyncio.Event()

    async def ensure_token(self, user):
        return "token"

    async def push(self, endpoint, rows):
        if endpoint in self.gates:
            self.started.set()
            await self.gates[endpoint].wait()
        if endpoint in self.failing:
            raise TransientSyncError("offline")
        self.calls.append((endpoint, rows))
        return SyncAck(accepted=len(rows), ids=[row["id"] for row in rows])

    async def delete_rows(self, rows):
        return await self.push("deleted-rows", rows)

    async def update_session(self, payload):
        self.calls.append(("session", [payload.to_wire()]))
        return {}


async def _dirty_count(factory, model):
    async with factory() as db:
        return (await db.execute(select(func.count()).select_from(model).where(model.is_synced.is_(False)))).scalar()


async def _legs(factory, exercises):
    async with factory() as db:
        return await WorkoutService.create_workout(
            db,
            WorkoutUpsert(
                name="Legs",
                exercises=[
                    WorkoutExerciseShape(exercise_id=exercises["Squat"], sets=[SetShape(target_reps=5, target_weight=100)] * 2),
                    WorkoutExerciseShape(exercise_id=exercises["Bench Press"], sets=[SetShape(target_reps=8, target_weight=60)]),
                ],
            ),
        )


@pytest.mark.asyncio
async def test_outbox_is_in_dependency_order(device_factory, device_user, exercises):
    await _legs(device_factory, exercises)
    async with device_factory() as db:
        exercise = await ExerciseService.get_exercise(db, exercises["Deadlift"])
        exercise.is_synced = True
        await db.commit()
        await ExerciseService.delete_exercise(db, exercises["Deadlift"])

    outbox = await SyncOrchestrator(device_factory, FakeTransport()).collect_outbox()

    assert [batch.table for batch in outbox] == [
        "deleted_rows", "users", "exercises", "workouts", "workout_exercises", "sets",
    ]
    assert outbox[0].rows == [{"id": outbox[0].ids[0], "tableName": "exercises", "rowId": exercises["Deadlift"]}]
    assert {"workoutExerciseId", "setNumber", "targetReps", "targetWeight"} <= set(outbox[-1].rows[0])


@pytest.mark.asyncio
async def test_second_run_without_changes_makes_no_calls(device_factory, device_user, exercises):
    await _legs(device_factory, exercises)
    transport = FakeTransport()
    orchestrator = SyncOrchestrator(device_factory, transport)

    first = await orchestrator.run()
    calls = len(transport.calls)
    second = await orchestrator.run()

    assert first.ok
    assert first.pushed == {"users": 1, "exercises": 3, "workouts": 1, "workout_exercises": 2, "sets": 3}
    assert second.transport_calls == 0
    assert len(transport.calls) == calls
    for model in (Workout, WorkoutExercise, WorkoutSet, Exercise):
        assert await _dirty_count(device_factory, model) == 0


@pytest.mark.asyncio
async def test_failed_batch_stays_dirty_and_blocks_its_children(device_factory, device_user, exercises):
    await _legs(device_factory, exercises)
    transport = FakeTransport()
    transport.failing.add("workouts")
    orchestrator = SyncOrchestrator(device_factory, transport)

    report = await orchestrator.run()

    assert list(report.failed) == ["workouts"]
    assert report.skipped == ["workout_exercises", "sets"]
    assert "exercises" in report.pushed
    assert [endpoint for endpoint, _ in transport.calls] == ["users", "exercises"]
    assert await _dirty_count(device_factory, Workout) == 1
    assert await _dirty_count(device_factory, WorkoutSet) == 3

    transport.failing.clear()
    retry = await orchestrator.run()

    assert retry.ok
    assert list(retry.pushed) == ["workouts", "workout_exercises", "sets"]


@pytest.mark.asyncio
async def test_tombstones_cleared_only_after_ack(device_factory, device_user, exercises):
    transport = FakeTransport()
    orchestrator = SyncOrchestrator(device_factory, transport)
    await orchestrator.run()
    async with device_factory() as db:
        await ExerciseService.delete_exercise(db, exercises["Deadlift"])

    transport.failing.add("deleted-rows")
    failed = await orchestrator.run()
    async with device_factory() as db:
        pending = (await db.execute(select(DeletedRow))).scalars().all()

    assert "deleted_rows" in failed.failed
    assert [(row.table_name, row.row_id) for row in pending] == [("exercises", exercises["Deadlift"])]

    transport.failing.clear()
    await orchestrator.run()
    async with device_factory() as db:
        assert (await db.execute(select(DeletedRow))).scalars().all() == []
    assert transport.calls[-1][0] == "deleted-rows"


@pytest.mark.asyncio
async def test_cancellation_waits_for_the_batch_in_flight(device_factory, device_user, exercises):
    await _legs(device_factory, exercises)
    transport = FakeTransport()
    transport.gates["exercises"] = asyncio.Event()
    orchestrator = SyncOrchestrator(device_factory, transport)

    task = asyncio.create_task(orchestrator.run())
    await transport.started.wait()
    task.cancel()
    transport.gates["exercises"].set()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert await _dirty_count(device_factory, Exercise) == 0
    assert await _dirty_count(device_factory, Workout) == 1
    assert "workouts" not in [endpoint for endpoint, _ in transport.calls]


@pytest.mark.asyncio
async def test_http_transport_maps_errors(client):
    unauthenticated = HttpSyncTransport("http://test/api/v1", client=client)
    with pytest.raises(UnauthorizedError):
        await unauthenticated.sync_exercises([])

    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as offline_client:
        offline = HttpSyncTransport("http://offline/api/v1", client=offline_client, token="t")
        with pytest.raises(TransientSyncError):
            await offline.sync_exercises([])


@pytest.mark.asyncio
async def test_end_to_end_sync_and_session_completion(client, device_factory, server_factory, device_user, exercises):
    workout = await _legs(device_factory, exercises)
    async with device_factory() as db:
        session = await SessionService.create_session(db, workout_id=workout.id)
    orchestrator = SyncOrchestrator(device_factory, HttpSyncTransport("http://test/api/v1", client=client))

    report = await orchestrator.run()

    assert report.ok, report.failed
    async with server_factory() as db:
        server_workout = await WorkoutService.get_workout(db, workout.id)
        assert server_workout.user_id == device_user.id
        assert server_workout.set_count == 3
        assert (await db.execute(select(func.count()).select_from(SessionSet))).scalar() == 3

    squat, bench = session.exercises
    state = tag_session_state(
        {
            "id": session.id,
            "name": session.name,
            "created_at": session.created_at,
            "workout_id": session.workout_id,
            "exercises": [
                {
                    "id": e.id,
                    "exercise_id": e.exercise_id,
                    "order": e.order,
                    "sets": [
                        {"id": s.id, "set_number": s.set_number, "reps": s.reps, "weight": s.weight, "is_completed": e is squat and s.set_number == 1}
                        for s in e.sets
                    ],
                }
                for e in (squat, bench)
            ],
        }
    )
    payload = build_session_update_payload(state, session.created_at)

    assert await orchestrator.complete_session(payload)
    follow_up = await orchestrator.run()

    assert follow_up.ok, follow_up.failed
    async with server_factory() as db:
        server_session = await SessionService.get_session(db, session.id)
        assert (server_session.exercise_count, server_session.set_count) == (1, 1)
        assert [e.id for e in server_session.exercises] == [squat.id]
    async with device_factory() as db:
        local = await SessionService.get_session(db, session.id)
        assert (local.exercise_count, local.set_count) == (1, 1)
        assert (await db.execute(select(DeletedRow))).scalars().all() == []
    assert await _dirty_count(device_factory, Session) == 0


class EditingTransport(FakeTransport):
    """Changes one pushed set on the device while the sets batch is on the wire."""

    def __init__(self, factory, set_id):
        super().__init__()
        self.factory = factory
        self.set_id = set_id

    async def push(self, endpoint, rows):
        if endpoint == "sets" and self.set_id:
            async with self.factory() as db:
                await WorkoutService.update_set(db, self.set_id, target_reps=99)
        return await super().push(endpoint, rows)


@pytest.mark.asyncio
async def test_edit_during_push_stays_dirty(device_factory, device_user, exercises):
    workout = await _legs(device_factory, exercises)
    edited = workout.exercises[0].sets[0].id
    transport = EditingTransport(device_factory, edited)
    orchestrator = SyncOrchestrator(device_factory, transport)

    report = await orchestrator.run()

    assert report.ok
    assert await _dirty_count(device_factory, WorkoutSet) == 1
    async with device_factory() as db:
        row = await db.get(WorkoutSet, edited)
        assert (row.target_reps, row.is_synced) == (99, False)

    transport.set_id = None
    transport.calls.clear()
    retry = await orchestrator.run()

    assert retry.pushed == {"sets": 1}
    [(endpoint, rows)] = transport.calls
    assert endpoint == "sets"
    assert [(row["id"], row["targetReps"]) for row in rows] == [(edited, 99)]
    assert await _dirty_count(device_factory, WorkoutSet) == 0


def _ack_handler(broken_path=None, body=None):
    def handler(request):
        path = request.url.path.removeprefix("/api/v1")
        if path == broken_path:
            if body is None:
                raise httpx.RemoteProtocolError("peer closed connection", request=request)
            return httpx.Response(200, content=body)
        if path == "/users/token":
            return httpx.Response(200, json={"data": {"accessToken": "t"}})
        if path == "/users/sync":
            return httpx.Response(200, json={"data": {}})
        rows = json.loads(request.content)
        return httpx.Response(200, json={"data": {"accepted": len(rows), "ids": [row["id"] for row in rows]}})

    return handler


@pytest.mark.asyncio
async def test_protocol_error_defers_only_the_affected_batches(device_factory, device_user, exercises):
    await _legs(device_factory, exercises)
    async with httpx.AsyncClient(transport=httpx.MockTransport(_ack_handler("/sync/exercises"))) as mock_client:
        orchestrator = SyncOrchestrator(device_factory, HttpSyncTransport("http://mock/api/v1", client=mock_client))
        report = await orchestrator.run()

    assert list(report.failed) == ["exercises"]
    assert report.pushed == {"users": 1, "workouts": 1}
    assert report.skipped == ["workout_exercises", "sets"]
    assert await _dirty_count(device_factory, Exercise) == 3
    assert await _dirty_count(device_factory, Workout) == 0


@pytest.mark.asyncio
async def test_http_transport_rejects_undecodable_bodies():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_ack_handler("/sync/sets", b"<html>captive portal</html>"))) as mock_client:
        transport = HttpSyncTransport("http://mock/api/v1", client=mock_client, token="t")
        with pytest.raises(TransientSyncError):
            await transport.sync_sets([{"id": "s1"}])

    async with httpx.AsyncClient(transport=httpx.MockTransport(_ack_handler("/sync/sets", b'{"data": {"ids": "s1"}}'))) as mock_client:
        transport = HttpSyncTransport("http://mock/api/v1", client=mock_client, token="t")
        with pytest.raises(InvariantViolation):
            await transport.sync_sets([{"id": "s1"}])


@pytest.mark.asyncio
async def test_rejected_token_is_reissued_once(client, device_factory, device_user, exercises):
    transport = HttpSyncTransport("http://test/api/v1", client=client, token="expired")
    orchestrator = SyncOrchestrator(device_factory, transport)

    report = await orchestrator.run()

    assert report.ok, report.failed
    assert transport.token not in (None, "expired")
    assert report.pushed == {"users": 1, "exercises": 3}

    def always_unauthorized(request):
        return httpx.Response(401, json={"detail": "Could not validate credentials"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(always_unauthorized)) as mock_client:
        locked_out = HttpSyncTransport("http://mock/api/v1", client=mock_client, token="expired")
        await locked_out.ensure_token({"id": "u1"})
        with pytest.raises(UnauthorizedError):
            await locked_out.sync_exercises([])
        assert locked_out.token is None
