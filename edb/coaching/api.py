import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth.dependencies import get_current_user
from edb.auth.models import User, UserRole
from edb.auth.permissions import require_admin, require_staff, require_coach
from edb.auth.schemas import MessageResponse
from edb.coaching import schemas
from edb.coaching.models import CoachingStatus
from edb.coaching.services import CoachingService
from edb.db.session import get_db
from edb.exceptions import ForbiddenError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["coaching"])


@router.get("", response_model=List[schemas.CoachingSessionOut])
async def list_sessions(
    user_id: Optional[int] = Query(None),
    coach_id: Optional[int] = Query(None),
    session_status: Optional[CoachingStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    # Un apprenant ne voit que ses sessions, un coach celles qu'il suit
    if current_user.role == UserRole.APPRENANT.value:
        user_id = current_user.id
    elif current_user.role == UserRole.COACH.value:
        coach_id = current_user.id

    return await CoachingService(db).find_all(
        user_id=user_id,
        coach_id=coach_id,
        status=session_status.value if session_status else None,
    )


@router.post("", response_model=schemas.CoachingSessionOut, status_code=status.HTTP_201_CREATED)
async def create_session(
    data: schemas.CoachingSessionCreate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CoachingService(db).create(data)


@router.get("/my-sessions", response_model=List[schemas.CoachingSessionOut])
async def get_my_sessions(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await CoachingService(db).find_all(user_id=current_user.id)


@router.get("/my-coaching", response_model=List[schemas.CoachingSessionOut])
async def get_my_coaching(current_user: User = Depends(require_coach), db: AsyncSession = Depends(get_db)):
    return await CoachingService(db).find_all(coach_id=current_user.id)


@router.get("/expiring", response_model=List[schemas.CoachingSessionOut])
async def get_expiring_sessions(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await CoachingService(db).check_expiring_sessions()


@router.get("/{session_id}", response_model=schemas.CoachingSessionOut)
async def get_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session = await CoachingService(db).find_one(session_id)
    if current_user.role == UserRole.APPRENANT.value and session.user_id != current_user.id:
        raise ForbiddenError("Cette session de coaching ne vous appartient pas")
    return session


@router.put("/{session_id}", response_model=schemas.CoachingSessionOut)
async def update_session(
    session_id: int,
    data: schemas.CoachingSessionUpdate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CoachingService(db).update(session_id, data)


@router.put("/{session_id}/assign-coach", response_model=schemas.CoachingSessionOut)
async def assign_coach(
    session_id: int,
    data: schemas.AssignCoach,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CoachingService(db).assign_coach(session_id, data.coach_id)


@router.put("/{session_id}/feedback", response_model=schemas.CoachingSessionOut)
async def update_feedback(
    session_id: int,
    data: schemas.FeedbackUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CoachingService(db).update_feedback(session_id, data.feedback, current_user)


@router.put("/{session_id}/status", response_model=schemas.CoachingSessionOut)
async def update_status(
    session_id: int,
    data: schemas.CoachingStatusUpdate,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await CoachingService(db).update_status(session_id, data.status, current_user)


@router.delete("/{session_id}", response_model=MessageResponse)
async def delete_session(session_id: int, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await CoachingService(db).delete(session_id)
