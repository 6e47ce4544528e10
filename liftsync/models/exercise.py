from sqlalchemy import String, Text, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from liftsync.core.identity import new_id
from liftsync.database import Base
from liftsync.models.sync_tracked import SyncTracked


class BodyPart(Base):
    __tablename__ = "body_parts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)


class Equipment(Base):
    __tablename__ = "equipment"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)


class Exercise(SyncTracked, Base):
    __tablename__ = "exercises"
    __table_args__ = (UniqueConstraint("user_id", "name", name="exercises_user_name_unique"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    link: Mapped[str | None] = mapped_column(String, nullable=True)
    info: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON as text
    image_name: Mapped[str | None] = mapped_column(String, nullable=True)
    body_part_id: Mapped[str | None] = mapped_column(ForeignKey("body_parts.id"), nullable=True)
    equipment_id: Mapped[str | None] = mapped_column(ForeignKey("equipment.id"), nullable=True)
    user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    is_default_exercise: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    body_part = relationship("BodyPart")
    equipment = relationship("Equipment")
