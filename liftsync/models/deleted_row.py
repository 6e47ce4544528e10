from datetime import datetime, timezone
from sqlalchemy import String, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from liftsync.core.identity import new_id
from liftsync.database import Base


class DeletedRow(Base):
    """Tombstone for a synced row removed on the device."""

    __tablename__ = "deleted_rows"
    __table_args__ = (UniqueConstraint("table_name", "row_id", name="deleted_rows_unique"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    table_name: Mapped[str] = mapped_column(String, nullable=False)
    row_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
