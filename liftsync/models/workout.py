from datetime import datetime, timezone
from sqlalchemy import String, Integer, Float, ForeignKey, DateTime, Boolean, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from liftsync.core.identity import new_id
from liftsync.database import Base
from liftsync.models.sync_tracked import SyncTracked


class Workout(SyncTracked, Base):
    __tablename__ = "workouts"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="workouts_user_name_unique"),
        Index("workouts_user_created_idx", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    exercise_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    set_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_default_workout: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    exercises = relationship(
        "WorkoutExercise",
        back_populates="workout",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkoutExercise.order",
    )


class WorkoutExercise(SyncTracked, Base):
    __tablename__ = "workout_exercises"
    __table_args__ = (
        UniqueConstraint("workout_id", "exercise_id", name="workout_exercises_unique"),
        Index("workout_exercises_order_idx", "workout_id", "order"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    workout_id: Mapped[str] = mapped_column(ForeignKey("workouts.id", ondelete="CASCADE"), nullable=False)
    exercise_id: Mapped[str] = mapped_column(ForeignKey("exercises.id"), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    workout = relationship("Workout", back_populates="exercises")
    exercise = relationship("Exercise")
    sets = relationship(
        "WorkoutSet",
        back_populates="workout_exercise",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkoutSet.set_number",
    )


class WorkoutSet(SyncTracked, Base):
    __tablename__ = "sets"
    __table_args__ = (
        UniqueConstraint("set_number", "workout_exercise_id", name="sets_unique"),
        Index("sets_workout_exercise_idx", "workout_exercise_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    workout_exercise_id: Mapped[str] = mapped_column(
        ForeignKey("workout_exercises.id", ondelete="CASCADE"), nullable=False
    )
    set_number: Mapped[int] = mapped_column(Integer, nullable=False)
    target_reps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    workout_exercise = relationship("WorkoutExercise", back_populates="sets")
