import logging

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from edb.db.session import AsyncSessionLocal
from edb.notifications.email import send_email_async, smtp_configured
from edb.notifications.models import Notification, NotificationStatus, NotificationType
from edb.notifications.queue import notification_queue
from edb.notifications.sms import send_sms_async
from edb.utils.dates import utcnow

logger = logging.getLogger(__name__)

JOB_SEND_EMAIL = "send-email"
JOB_SEND_SMS = "send-sms"


class DeliveryRefused(Exception):
    """Le destinataire ne peut pas recevoir ce canal."""


async def _deliver(notification: Notification):
    user = notification.user

    if notification.type == NotificationType.EMAIL.value:
        if not user.email_notifications:
            raise DeliveryRefused("Notifications email désactivées par l'utilisateur")
        if not smtp_configured():
            logger.info(f"📧 Email (non envoyé, SMTP non configuré) à {user.email}: {notification.title}")
            return
        await send_email_async(notification.title, user.email, notification.message)

    elif notification.type == NotificationType.SMS.value:
        if not user.sms_notifications:
            raise DeliveryRefused("Notifications SMS désactivées par l'utilisateur")
        if not user.phone:
            raise DeliveryRefused("Aucun numéro de téléphone pour cet utilisateur")
        await send_sms_async(user.phone, f"{notification.title}\n{notification.message}")


async def process_notification(payload: dict):
    notification_id = payload["notification_id"]

    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(Notification)
            .options(selectinload(Notification.user))
            .where(Notification.id == notification_id)
        )
        notification = result.scalars().first()

        if not notification:
            logger.warning(f"Notification {notification_id} introuvable, tâche ignorée")
            return
        if notification.status != NotificationStatus.PENDING.value:
            logger.info(f"Notification {notification_id} déjà traitée ({notification.status})")
            return

        notification.attempts = (notification.attempts or 0) + 1
        try:
            await _deliver(notification)
        except Exception as e:
            notification.status = NotificationStatus.FAILED.value
            notification.error = str(e)
            logger.warning(f"⚠️ Notification {notification_id} en échec : {e}")
        else:
            notification.status = NotificationStatus.SENT.value
            notification.sent_at = utcnow()
            notification.error = None
            logger.info(f"✅ Notification {notification_id} envoyée ({notification.type})")

        await db.commit()


notification_queue.handler(JOB_SEND_EMAIL)(process_notification)
notification_queue.handler(JOB_SEND_SMS)(process_notification)
