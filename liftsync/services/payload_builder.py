"""Build the session-completion diff from in-progress session state.

Pure: no database, no network. The completion screen hands over what it
holds in memory plus any unsaved reps/weight edits, and gets back the
payload the server's session update expects.

Rows the user added mid-session only have placeholder ids (absent or a
non-positive number). ``tag_session_state`` turns the loose UI state into
explicit ``New*`` / ``Existing*`` variants once, at the boundary, so the
classification below never looks at an id's sign.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from liftsync.core.exceptions import InvariantViolation
from liftsync.schemas.sessions import (
    SessionExerciseAdd,
    SessionExerciseUpdate,
    SessionSetAdd,
    SessionSetUpdate,
    SessionUpdatePayload,
)

LocalId = Union[int, str, None]


@dataclass(frozen=True)
class SetEdit:
    reps: int | None = None
    weight: float | None = None


@dataclass(frozen=True)
class NewSessionSet:
    local_id: LocalId
    set_number: int
    reps: int | None = None
    weight: float | None = None
    is_completed: bool = False


@dataclass(frozen=True)
class ExistingSessionSet:
    id: str
    set_number: int
    reps: int | None = None
    weight: float | None = None
    is_completed: bool = False


SessionSetState = Union[NewSessionSet, ExistingSessionSet]


@dataclass(frozen=True)
class NewSessionExercise:
    local_id: LocalId
    exercise_id: str
    order: int
    sets: tuple[SessionSetState, ...] = ()


@dataclass(frozen=True)
class ExistingSessionExercise:
    id: str
    exercise_id: str
    order: int
    sets: tuple[SessionSetState, ...] = ()


SessionExerciseState = Union[NewSessionExercise, ExistingSessionExercise]


@dataclass(frozen=True)
class SessionState:
    id: str
    name: str
    created_at: datetime
    workout_id: str | None = None
    exercises: tuple[SessionExerciseState, ...] = field(default_factory=tuple)


def is_placeholder_id(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        raise InvariantViolation(f"Invalid row id {value!r}")
    return isinstance(value, int) and value <= 0


def _tag_set(raw: Mapping[str, Any]) -> SessionSetState:
    common = {
        "set_number": raw["set_number"],
        "reps": raw.get("reps"),
        "weight": raw.get("weight"),
        "is_completed": bool(raw.get("is_completed", False)),
    }
    if is_placeholder_id(raw.get("id")):
        return NewSessionSet(local_id=raw.get("id"), **common)
    return ExistingSessionSet(id=str(raw["id"]), **common)


def _tag_exercise(raw: Mapping[str, Any]) -> SessionExerciseState:
    exercise_id = raw.get("exercise_id") or (raw.get("exercise") or {}).get("id")
    if not exercise_id:
        raise InvariantViolation("Session exercise is missing its exercise reference")
    sets = tuple(_tag_set(s) for s in raw.get("sets", ()))
    if is_placeholder_id(raw.get("id")):
        return NewSessionExercise(local_id=raw.get("id"), exercise_id=str(exercise_id), order=raw["order"], sets=sets)
    return ExistingSessionExercise(id=str(raw["id"]), exercise_id=str(exercise_id), order=raw["order"], sets=sets)


def tag_session_state(raw: Mapping[str, Any]) -> SessionState:
    """Convert the completion screen's dict state into tagged variants."""
    return SessionState(
        id=str(raw["id"]),
        name=raw["name"],
        created_at=raw["created_at"],
        workout_id=str(raw["workout_id"]) if raw.get("workout_id") else None,
        exercises=tuple(_tag_exercise(e) for e in raw.get("exercises", ())),
    )


def _set_key(set_state: SessionSetState) -> LocalId:
    return set_state.id if isinstance(set_state, ExistingSessionSet) else set_state.local_id


def _by_set_number(sets: Iterable[SessionSetState]) -> list[SessionSetState]:
    return sorted(sets, key=lambda s: s.set_number)


class _Values:
    def __init__(self, edits: Mapping[LocalId, SetEdit] | None):
        self._edits = edits or {}

    def reps(self, set_state: SessionSetState) -> int:
        edit = self._edits.get(_set_key(set_state))
        if edit is not None and edit.reps is not None:
            return edit.reps
        return set_state.reps or 0

    def weight(self, set_state: SessionSetState) -> float:
        edit = self._edits.get(_set_key(set_state))
        if edit is not None and edit.weight is not None:
            return edit.weight
        return set_state.weight or 0


def build_session_update_payload(
    state: SessionState,
    completed_at: datetime,
    edits: Mapping[LocalId, SetEdit] | None = None,
    removed_exercise_ids: Iterable[str] | None = None,
) -> SessionUpdatePayload:
    """Classify every exercise and set of ``state`` into the completion diff.

    - A new exercise is added with its completed sets, or dropped when none
      are completed.
    - An existing exercise with any completed set is updated: completed
      existing sets are updated, completed new sets added, uncompleted
      existing sets removed.
    - An existing exercise with no completed set is removed along with all
      of its existing sets.

    ``removed_exercise_ids`` are existing exercises the user deleted on the
    completion screen; they are removed as well. Orders and set numbers in
    the result are dense from 1.
    """
    values = _Values(edits)
    exercises_add: list[SessionExerciseAdd] = []
    exercises_update: list[SessionExerciseUpdate] = []
    sets_remove: list[str] = []
    exercises_remove: list[str] = list(removed_exercise_ids or ())
    discarded: list[str] = []

    order = 0
    for exercise in sorted(state.exercises, key=lambda e: e.order):
        completed = [s for s in _by_set_number(exercise.sets) if s.is_completed]

        if isinstance(exercise, NewSessionExercise):
            if not completed:
                discarded.append(exercise.exercise_id)
                continue
            order += 1
            exercises_add.append(
                SessionExerciseAdd(
                    exercise_id=exercise.exercise_id,
                    order=order,
                    session_sets=[
                        SessionSetAdd(set_number=number, reps=values.reps(s), weight=values.weight(s))
                        for number, s in enumerate(completed, start=1)
                    ],
                )
            )
            continue

        if exercise.id in exercises_remove:
            sets_remove.extend(s.id for s in exercise.sets if isinstance(s, ExistingSessionSet))
            continue

        if not completed:
            exercises_remove.append(exercise.id)
            sets_remove.extend(s.id for s in exercise.sets if isinstance(s, ExistingSessionSet))
            discarded.append(exercise.exercise_id)
            continue

        sets_remove.extend(
            s.id for s in exercise.sets if isinstance(s, ExistingSessionSet) and not s.is_completed
        )
        order += 1
        sets_update: list[SessionSetUpdate] = []
        sets_add: list[SessionSetAdd] = []
        for number, s in enumerate(completed, start=1):
            if isinstance(s, ExistingSessionSet):
                sets_update.append(
                    SessionSetUpdate(session_set_id=s.id, set_number=number, reps=values.reps(s), weight=values.weight(s))
                )
            else:
                sets_add.append(SessionSetAdd(set_number=number, reps=values.reps(s), weight=values.weight(s)))
        exercises_update.append(
            SessionExerciseUpdate(exercise_id=exercise.id, order=order, sets_update=sets_update, sets_add=sets_add)
        )

    return SessionUpdatePayload(
        session_id=state.id,
        workout_id=state.workout_id,
        created_at=state.created_at,
        completed_at=completed_at,
        name=state.name,
        exercises_add=exercises_add,
        exercises_update=exercises_update,
        sets_remove=sets_remove,
        exercises_remove=exercises_remove,
        discarded_exercise_ids=discarded,
    )
