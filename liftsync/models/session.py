from datetime import datetime, timezone
from sqlalchemy import String, Integer, Float, ForeignKey, DateTime, Boolean, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from liftsync.core.identity import new_id
from liftsync.database import Base
from liftsync.models.sync_tracked import SyncTracked


class Session(SyncTracked, Base):
    __tablename__ = "sessions"
    __table_args__ = (Index("sessions_user_created_idx", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    workout_id: Mapped[str | None] = mapped_column(ForeignKey("workouts.id", ondelete="SET NULL"), nullable=True)
    # Workout created from this session; at most one.
    derived_workout_id: Mapped[str | None] = mapped_column(
        ForeignKey("workouts.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    session_time: Mapped[str | None] = mapped_column(String, nullable=True)
    exercise_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    set_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_from_default_workout: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Set once the session has written back into its source workout.
    updated_workout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    exercises = relationship(
        "SessionExercise",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SessionExercise.order",
    )


class SessionExercise(SyncTracked, Base):
    __tablename__ = "session_exercises"
    __table_args__ = (
        UniqueConstraint("session_id", "exercise_id", name="session_exercises_unique"),
        Index("session_exercises_order_idx", "session_id", "order"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False)
    exercise_id: Mapped[str] = mapped_column(ForeignKey("exercises.id"), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    session = relationship("Session", back_populates="exercises")
    exercise = relationship("Exercise")
    sets = relationship(
        "SessionSet",
        back_populates="session_exercise",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SessionSet.set_number",
    )


class SessionSet(SyncTracked, Base):
    __tablename__ = "session_sets"
    __table_args__ = (
        UniqueConstraint("set_number", "session_exercise_id", name="session_sets_unique"),
        Index("session_sets_idx", "session_exercise_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_exercise_id: Mapped[str] = mapped_column(
        ForeignKey("session_exercises.id", ondelete="CASCADE"), nullable=False
    )
    set_number: Mapped[int] = mapped_column(Integer, nullable=False)
    reps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    session_exercise = relationship("SessionExercise", back_populates="sets")
