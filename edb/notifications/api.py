import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth.dependencies import get_current_user
from edb.auth.models import User
from edb.auth.permissions import require_admin
from edb.db.session import get_db
from edb.notifications import schemas, templates
from edb.notifications.models import NotificationStatus, NotificationType
from edb.notifications.services import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


@router.get("/my-notifications", response_model=List[schemas.NotificationOut])
async def get_my_notifications(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).get_my_notifications(current_user.id)


@router.put("/read-all")
async def mark_all_as_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).mark_all_as_read(current_user.id)


@router.put("/{notification_id}/read", response_model=schemas.NotificationOut)
async def mark_as_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).mark_as_read(notification_id, current_user.id)


# ===============================
# ADMINISTRATION
# ===============================
@router.get("", response_model=List[schemas.NotificationOut])
async def list_notifications(
    user_id: Optional[int] = Query(None),
    type: Optional[NotificationType] = Query(None),
    status: Optional[NotificationStatus] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).find_all(
        user_id=user_id,
        type=type.value if type else None,
        status=status.value if status else None,
        limit=limit,
    )


@router.post("/send", response_model=schemas.SendResult)
async def send_notifications(
    data: schemas.NotificationSend,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).send_bulk(
        data.channel,
        data.title,
        data.message,
        user_ids=data.user_ids,
        role=data.role.value if data.role else None,
    )


@router.get("/stats", response_model=schemas.NotificationStats)
async def get_stats(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await NotificationService(db).get_stats()


@router.get("/templates", response_model=List[schemas.TemplateOut])
async def get_templates(_: User = Depends(require_admin)):
    return templates.list_templates()


@router.post("/{notification_id}/retry", response_model=schemas.NotificationOut)
async def retry_notification(
    notification_id: int,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).retry(notification_id)
