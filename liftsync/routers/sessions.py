from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from liftsync.auth import dependencies
from liftsync.core.responses import StandardResponse
from liftsync.database import get_db
from liftsync.schemas.sessions import SessionRead, SessionUpdatePayload, StatsRead
from liftsync.services.session_service import SessionService

router = APIRouter()


@router.get("/stats", response_model=StandardResponse[StatsRead])
async def get_stats(
    current_user: dependencies.CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Favorite workout and totals for the current user."""
    return StandardResponse(data=await SessionService.get_stats(db, current_user.id))


@router.get("/{session_id}", response_model=StandardResponse[SessionRead])
async def get_session(
    session_id: str,
    current_user: dependencies.CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    session = await SessionService.get_session(db, session_id)
    if session.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return StandardResponse(data=SessionRead.model_validate(session))


@router.put("/{session_id}", response_model=StandardResponse[SessionRead])
async def update_session(
    session_id: str,
    payload: SessionUpdatePayload,
    current_user: dependencies.CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Apply the session-completion diff sent by a device."""
    if payload.session_id != session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session id mismatch")
    await SessionService.apply_completion(db, payload, user_id=current_user.id)
    await db.commit()
    session = await SessionService.get_session(db, session_id)
    return StandardResponse(data=SessionRead.model_validate(session), message="Session updated")
