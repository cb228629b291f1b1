import logging
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth.models import User, UserStatus
from edb.exceptions import BadRequestError, NotFoundError
from edb.notifications.models import Notification, NotificationStatus, NotificationType
from edb.notifications.processor import JOB_SEND_EMAIL, JOB_SEND_SMS
from edb.notifications.queue import NotificationQueue, notification_queue
from edb.utils.dates import utcnow

logger = logging.getLogger(__name__)

JOBS_BY_TYPE = {
    NotificationType.EMAIL.value: JOB_SEND_EMAIL,
    NotificationType.SMS.value: JOB_SEND_SMS,
}


class NotificationService:
    def __init__(self, db: AsyncSession, queue: Optional[NotificationQueue] = None):
        self.db = db
        self.queue = queue or notification_queue

    async def _create(self, user_id: int, type: NotificationType, title: str, message: str,
                      data: Optional[dict] = None, status: NotificationStatus = NotificationStatus.PENDING) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type.value,
            title=title,
            message=message,
            status=status.value,
            attempts=0,
        )
        notification.data = data
        if status == NotificationStatus.SENT:
            notification.sent_at = utcnow()

        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)
        return notification

    async def _enqueue(self, notification: Notification):
        await self.queue.enqueue(JOBS_BY_TYPE[notification.type], {"notification_id": notification.id})

    async def send_email(self, user_id: int, title: str, message: str, data: Optional[dict] = None) -> Notification:
        notification = await self._create(user_id, NotificationType.EMAIL, title, message, data)
        await self._enqueue(notification)
        return notification

    async def send_sms(self, user_id: int, title: str, message: str, data: Optional[dict] = None) -> Notification:
        notification = await self._create(user_id, NotificationType.SMS, title, message, data)
        await self._enqueue(notification)
        return notification

    async def send_in_app(self, user_id: int, title: str, message: str, data: Optional[dict] = None) -> Notification:
        return await self._create(user_id, NotificationType.IN_APP, title, message, data,
                                  status=NotificationStatus.SENT)

    async def send(self, channel: NotificationType, user_id: int, title: str, message: str,
                   data: Optional[dict] = None) -> Notification:
        senders = {
            NotificationType.EMAIL: self.send_email,
            NotificationType.SMS: self.send_sms,
            NotificationType.IN_APP: self.send_in_app,
        }
        return await senders[NotificationType(channel)](user_id, title, message, data)

    async def send_bulk(self, channel: NotificationType, title: str, message: str,
                        user_ids: Optional[List[int]] = None, role: Optional[str] = None) -> dict:
        query = select(User.id).where(User.status != UserStatus.SUSPENDED.value)
        if user_ids:
            query = query.where(User.id.in_(user_ids))
        if role:
            query = query.where(User.role == role)

        result = await self.db.execute(query)
        recipients = list(result.scalars().all())

        ids = []
        for user_id in recipients:
            notification = await self.send(channel, user_id, title, message)
            ids.append(notification.id)

        logger.info(f"📣 {len(ids)} notification(s) {NotificationType(channel).value} envoyée(s)")
        return {"sent": len(ids), "notification_ids": ids}

    async def get_my_notifications(self, user_id: int, limit: int = 50) -> List[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_all(self, user_id: Optional[int] = None, type: Optional[str] = None,
                       status: Optional[str] = None, limit: int = 100) -> List[Notification]:
        query = select(Notification)
        if user_id:
            query = query.where(Notification.user_id == user_id)
        if type:
            query = query.where(Notification.type == type)
        if status:
            query = query.where(Notification.status == status)

        result = await self.db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
        return list(result.scalars().all())

    async def mark_as_read(self, notification_id: int, user_id: int) -> Notification:
        result = await self.db.execute(
            select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
        )
        notification = result.scalars().first()
        if not notification:
            raise NotFoundError("Notification introuvable")

        notification.status = NotificationStatus.READ.value
        notification.read_at = utcnow()
        await self.db.commit()
        return notification

    async def mark_all_as_read(self, user_id: int) -> dict:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.status == NotificationStatus.SENT.value)
            .values(status=NotificationStatus.READ.value, read_at=utcnow())
        )
        await self.db.commit()
        return {"message": "Notifications marquées comme lues", "count": result.rowcount}

    async def retry(self, notification_id: int) -> Notification:
        notification = await self.db.get(Notification, notification_id)
        if not notification:
            raise NotFoundError("Notification introuvable")
        if notification.status != NotificationStatus.FAILED.value:
            raise BadRequestError("Seules les notifications en échec peuvent être relancées")

        notification.status = NotificationStatus.PENDING.value
        notification.error = None
        await self.db.commit()

        await self._enqueue(notification)
        logger.info(f"🔁 Notification {notification_id} relancée")
        return notification

    async def get_stats(self) -> dict:
        by_status = await self.db.execute(
            select(Notification.status, func.count(Notification.id)).group_by(Notification.status)
        )
        by_type = await self.db.execute(
            select(Notification.type, func.count(Notification.id)).group_by(Notification.type)
        )
        status_counts = {status.value: 0 for status in NotificationStatus}
        status_counts.update(dict(by_status.all()))
        type_counts = {t.value: 0 for t in NotificationType}
        type_counts.update(dict(by_type.all()))

        return {"total": sum(status_counts.values()), "by_status": status_counts, "by_type": type_counts}
