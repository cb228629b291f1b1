import logging
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from edb.audit.services import record_event
from edb.auth.models import User
from edb.auth.permissions import is_admin
from edb.config import settings
from edb.exceptions import BadRequestError, ForbiddenError, NotFoundError
from edb.notifications import templates
from edb.notifications.services import NotificationService
from edb.payments.models import Payment, PaymentMethod, PaymentStatus
from edb.payments.providers.base import PaymentProvider, ProviderError
from edb.payments.providers.cinetpay import CinetPayProvider
from edb.payments.providers.orange_money import OrangeMoneyProvider
from edb.payments.providers.wave import WaveProvider
from edb.payments.schemas import ManualPaymentCreate, PaymentUpdate
from edb.subscriptions.models import Subscription, SubscriptionStatus
from edb.utils.dates import utcnow

logger = logging.getLogger(__name__)

PROVIDERS = {
    PaymentMethod.CINETPAY.value: CinetPayProvider,
    PaymentMethod.ORANGE_MONEY.value: OrangeMoneyProvider,
    PaymentMethod.WAVE.value: WaveProvider,
}


def get_provider(method: str) -> PaymentProvider:
    provider_class = PROVIDERS.get(method)
    if provider_class is None:
        raise BadRequestError("Méthode de paiement non supportée")
    return provider_class()


class PaymentService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _query(self, *conditions) -> List[Payment]:
        result = await self.db.execute(
            select(Payment)
            .options(selectinload(Payment.user), selectinload(Payment.subscription))
            .where(*conditions)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _get(self, payment_id: int) -> Payment:
        payments = await self._query(Payment.id == payment_id)
        if not payments:
            raise NotFoundError("Paiement introuvable")
        return payments[0]

    async def _apply_status(self, payment: Payment, status: PaymentStatus, actor_id: Optional[int] = None,
                            failure_reason: Optional[str] = None):
        """Applique un nouveau statut et ses effets (date de paiement, abonnement, audit)."""
        previous = payment.status
        payment.status = status.value

        if status == PaymentStatus.COMPLETED:
            payment.paid_at = payment.paid_at or utcnow()
            payment.failure_reason = None
            if payment.subscription_id:
                subscription = await self.db.get(Subscription, payment.subscription_id)
                if subscription and subscription.status != SubscriptionStatus.ACTIVE.value:
                    subscription.status = SubscriptionStatus.ACTIVE.value
                    logger.info(f"Abonnement {subscription.id} activé suite au paiement {payment.id}")
            record_event(self.db, user_id=actor_id or payment.user_id, action="PAYMENT_COMPLETED",
                         entity="Payment", entity_id=payment.id,
                         changes={"from": previous, "amount": payment.amount, "method": payment.method})
        elif status == PaymentStatus.FAILED:
            payment.failure_reason = failure_reason or payment.failure_reason
            record_event(self.db, user_id=actor_id or payment.user_id, action="PAYMENT_FAILED",
                         entity="Payment", entity_id=payment.id,
                         changes={"from": previous, "reason": payment.failure_reason})

    async def _notify_received(self, payment: Payment):
        user = await self.db.get(User, payment.user_id)
        title, message = templates.render("payment_received", user=user, amount=payment.amount,
                                          currency=payment.currency)
        await NotificationService(self.db).send_email(payment.user_id, title, message, {"payment_id": payment.id})

    async def initiate(self, user: User, subscription_id: int, amount: Optional[float],
                       method: PaymentMethod) -> dict:
        provider = get_provider(PaymentMethod(method).value)

        subscription = await self.db.get(Subscription, subscription_id)
        if not subscription:
            raise NotFoundError("Abonnement introuvable")
        if subscription.user_id != user.id and not is_admin(user):
            raise ForbiddenError("Cet abonnement ne vous appartient pas")
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise BadRequestError("Impossible de payer un abonnement annulé")

        amount = amount or subscription.price
        payment = Payment(
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            amount=amount,
            currency=settings.PAYMENT_CURRENCY,
            method=PaymentMethod(method).value,
            status=PaymentStatus.PENDING.value,
        )
        self.db.add(payment)
        await self.db.commit()

        payment.payment_url = await provider.initiate_payment(payment.id, amount)
        await self.db.commit()

        logger.info(f"💳 Paiement {payment.id} initié ({payment.method}, {amount} {payment.currency})")
        return {
            "payment_id": payment.id,
            "payment_url": payment.payment_url,
            "amount": payment.amount,
            "method": payment.method,
            "status": payment.status,
        }

    async def handle_callback(self, provider: str, payment_id: int, provider_reference: Optional[str],
                              status: str, message: Optional[str] = None) -> dict:
        payment = await self.db.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Paiement introuvable")

        if payment.status == PaymentStatus.COMPLETED.value:
            logger.info(f"Callback {provider} ignoré : paiement {payment_id} déjà validé")
            return {"success": True}

        success = str(status).lower() == "success"
        if provider_reference:
            payment.provider_reference = provider_reference

        if success:
            await self._apply_status(payment, PaymentStatus.COMPLETED)
        else:
            await self._apply_status(payment, PaymentStatus.FAILED,
                                     failure_reason=message or f"Statut prestataire : {status}")
        await self.db.commit()

        logger.info(f"Callback {provider} : paiement {payment_id} -> {payment.status}")
        if success:
            await self._notify_received(payment)
        return {"success": success}

    async def verify(self, payment_id: int) -> dict:
        payment = await self._get(payment_id)
        provider = get_provider(payment.method)

        try:
            result = await provider.verify_payment(payment.provider_reference or str(payment.id))
        except ProviderError:
            raise BadRequestError("Vérification impossible auprès du prestataire")

        return {"payment_id": payment.id, "status": payment.status, "provider_response": result}

    async def create_manual(self, data: ManualPaymentCreate, actor: User) -> Payment:
        if not await self.db.get(User, data.user_id):
            raise NotFoundError("Utilisateur introuvable")
        if data.subscription_id:
            subscription = await self.db.get(Subscription, data.subscription_id)
            if not subscription or subscription.user_id != data.user_id:
                raise NotFoundError("Abonnement introuvable")

        payment = Payment(
            user_id=data.user_id,
            subscription_id=data.subscription_id,
            amount=data.amount,
            currency=data.currency or settings.PAYMENT_CURRENCY,
            method=data.method.value,
            status=PaymentStatus.PENDING.value,
            provider_reference=data.provider_reference,
        )
        self.db.add(payment)
        await self.db.flush()

        await self._apply_status(payment, data.status, actor_id=actor.id)
        await self.db.commit()

        logger.info(f"Paiement manuel {payment.id} enregistré ({payment.method}, {payment.status})")
        if payment.status == PaymentStatus.COMPLETED.value:
            await self._notify_received(payment)
        return await self._get(payment.id)

    async def update(self, payment_id: int, data: PaymentUpdate, actor: User) -> Payment:
        payment = await self._get(payment_id)
        updates = data.model_dump(exclude_unset=True)
        status = updates.pop("status", None)

        if updates.get("method") is not None:
            updates["method"] = updates["method"].value
        for key, value in updates.items():
            setattr(payment, key, value)

        newly_completed = False
        if status is not None and status.value != payment.status:
            newly_completed = status == PaymentStatus.COMPLETED
            await self._apply_status(payment, status, actor_id=actor.id, failure_reason=updates.get("failure_reason"))
        await self.db.commit()

        if newly_completed:
            await self._notify_received(payment)
        return await self._get(payment_id)

    async def update_status(self, payment_id: int, status: PaymentStatus, actor: User,
                            failure_reason: Optional[str] = None) -> Payment:
        return await self.update(payment_id, PaymentUpdate(status=status, failure_reason=failure_reason), actor)

    async def find_all(self, user_id: Optional[int] = None, status: Optional[str] = None,
                       method: Optional[str] = None) -> List[Payment]:
        conditions = []
        if user_id:
            conditions.append(Payment.user_id == user_id)
        if status:
            conditions.append(Payment.status == status)
        if method:
            conditions.append(Payment.method == method)
        return await self._query(*conditions)

    async def find_one(self, payment_id: int, user: User) -> Payment:
        payment = await self._get(payment_id)
        if not is_admin(user) and payment.user_id != user.id:
            raise NotFoundError("Paiement introuvable")
        return payment

    async def delete(self, payment_id: int) -> dict:
        payment = await self._get(payment_id)
        await self.db.delete(payment)
        await self.db.commit()
        logger.info(f"Paiement supprimé : id={payment_id}")
        return {"message": "Paiement supprimé avec succès"}

    async def get_stats(self) -> dict:
        result = await self.db.execute(select(Payment.status, func.count(Payment.id)).group_by(Payment.status))
        by_status = dict(result.all())
        total_revenue = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status == PaymentStatus.COMPLETED.value)
        )

        return {
            "total_revenue": float(total_revenue or 0),
            "total_payments": sum(by_status.values()),
            "completed_payments": by_status.get(PaymentStatus.COMPLETED.value, 0),
            "pending_payments": by_status.get(PaymentStatus.PENDING.value, 0),
            "failed_payments": by_status.get(PaymentStatus.FAILED.value, 0),
        }
