"""add sync_version to synced tables

Revision ID: 9e3d5a7c1b24
Revises: 4c1e8a2f9b30
Create Date: 2026-10-26 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "9e3d5a7c1b24"
down_revision: Union[str, Sequence[str], None] = "4c1e8a2f9b30"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SYNCED_TABLES = (
    "users",
    "exercises",
    "workouts",
    "workout_exercises",
    "sets",
    "sessions",
    "session_exercises",
    "session_sets",
)


def upgrade() -> None:
    for table in SYNCED_TABLES:
        op.add_column(table, sa.Column("sync_version", sa.Integer(), server_default="0", nullable=False))


def downgrade() -> None:
    for table in reversed(SYNCED_TABLES):
        op.drop_column(table, "sync_version")
