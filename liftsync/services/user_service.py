from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.core.exceptions import InvariantViolation, NotFoundError
from liftsync.core.identity import new_id
from liftsync.database import transaction
from liftsync.models import User


class UserService:
    """The single profile a device syncs as."""

    @staticmethod
    async def get_user(db: AsyncSession) -> User | None:
        return (await db.execute(select(User).order_by(User.created_at).limit(1))).scalar_one_or_none()

    @staticmethod
    async def create_user(db: AsyncSession, username: str, email: str | None = None) -> User:
        async with transaction(db):
            if await UserService.get_user(db):
                raise InvariantViolation("This device already has a profile")
            user = User(id=new_id(), username=username.strip(), email=email, created_at=datetime.now(timezone.utc))
            db.add(user)
        return user

    @staticmethod
    async def update_user(db: AsyncSession, *, username: str | None = None, email: str | None = None) -> User:
        async with transaction(db):
            user = await UserService.get_user(db)
            if user is None:
                raise NotFoundError("Create a profile first")
            if username:
                user.username = username.strip()
            if email:
                user.email = email
            user.is_synced = False
        return user
