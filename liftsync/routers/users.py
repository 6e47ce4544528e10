from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.auth import dependencies, security
from liftsync.core.responses import StandardResponse
from liftsync.database import get_db
from liftsync.models import User
from liftsync.schemas.sync import SyncAck, TokenResponse, UserSync

router = APIRouter()


@router.post("/token", response_model=StandardResponse[TokenResponse])
async def create_device_token(
    data: UserSync,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Register a device profile on first contact and issue its bearer token."""
    user = await db.get(User, data.id)
    if user is None:
        user = User(id=data.id, username=data.username, email=data.email, created_at=data.created_at, is_synced=True)
        db.add(user)
        await db.commit()
    token = security.create_access_token(subject=user.id)
    return StandardResponse(data=TokenResponse(access_token=token), message="Token issued")


@router.post("/sync", response_model=StandardResponse[SyncAck])
async def sync_user(
    data: UserSync,
    current_user: dependencies.CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    if data.id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operation not permitted")
    current_user.username = data.username
    if data.email:
        current_user.email = data.email
    await db.commit()
    return StandardResponse(data=SyncAck(accepted=1, ids=[current_user.id]))
