import logging
from datetime import timedelta
from typing import Optional, List

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from edb.auth.models import User
from edb.config import settings
from edb.exceptions import BadRequestError, ConflictError, NotFoundError
from edb.notifications import templates
from edb.notifications.services import NotificationService
from edb.subscriptions.models import (
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    SubscriptionType,
    SUBSCRIPTION_PERIOD_MONTHS,
)
from edb.subscriptions.schemas import PlanCreate, PlanUpdate
from edb.utils.dates import utcnow, add_months

logger = logging.getLogger(__name__)


class PlanService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_all(self, include_inactive: bool = False) -> List[SubscriptionPlan]:
        query = select(SubscriptionPlan)
        if not include_inactive:
            query = query.where(SubscriptionPlan.is_active.is_(True))
        result = await self.db.execute(query.order_by(SubscriptionPlan.price))
        return list(result.scalars().all())

    async def find_one(self, plan_id: int) -> SubscriptionPlan:
        plan = await self.db.get(SubscriptionPlan, plan_id)
        if not plan:
            raise NotFoundError("Plan d'abonnement introuvable")
        return plan

    async def _check_name(self, name: str, exclude_id: Optional[int] = None):
        query = select(SubscriptionPlan.id).where(SubscriptionPlan.name == name)
        if exclude_id:
            query = query.where(SubscriptionPlan.id != exclude_id)
        if await self.db.scalar(query):
            raise ConflictError("Un plan porte déjà ce nom")

    async def create(self, data: PlanCreate) -> SubscriptionPlan:
        await self._check_name(data.name)

        plan = SubscriptionPlan(
            name=data.name,
            type=data.type.value,
            description=data.description,
            price=data.price,
            currency=data.currency,
            duration_months=data.duration_months or SUBSCRIPTION_PERIOD_MONTHS[data.type.value],
            is_active=data.is_active,
        )
        plan.features = data.features
        self.db.add(plan)
        await self.db.commit()
        await self.db.refresh(plan)

        logger.info(f"Plan créé : id={plan.id}, name={plan.name}, price={plan.price}")
        return plan

    async def update(self, plan_id: int, data: PlanUpdate) -> SubscriptionPlan:
        plan = await self.find_one(plan_id)
        updates = data.model_dump(exclude_unset=True)

        if updates.get("name") and updates["name"] != plan.name:
            await self._check_name(updates["name"], exclude_id=plan.id)
        if updates.get("type") is not None:
            updates["type"] = updates["type"].value
        if "features" in updates:
            plan.features = updates.pop("features")

        for key, value in updates.items():
            setattr(plan, key, value)
        await self.db.commit()
        await self.db.refresh(plan)
        return plan

    async def delete(self, plan_id: int) -> dict:
        plan = await self.find_one(plan_id)

        in_use = await self.db.scalar(
            select(func.count(Subscription.id)).where(Subscription.plan_id == plan.id)
        )
        if in_use:
            raise ConflictError("Ce plan est utilisé par des abonnements et ne peut pas être supprimé")

        await self.db.delete(plan)
        await self.db.commit()
        logger.info(f"Plan supprimé : id={plan_id}")
        return {"message": "Plan supprimé avec succès"}

    async def toggle_active(self, plan_id: int) -> SubscriptionPlan:
        plan = await self.find_one(plan_id)
        plan.is_active = not plan.is_active
        await self.db.commit()
        await self.db.refresh(plan)
        logger.info(f"Plan {plan.id} {'activé' if plan.is_active else 'désactivé'}")
        return plan

    async def get_stats(self) -> dict:
        total_plans = await self.db.scalar(select(func.count(SubscriptionPlan.id)))
        active_plans = await self.db.scalar(
            select(func.count(SubscriptionPlan.id)).where(SubscriptionPlan.is_active.is_(True))
        )
        total_subscribers = await self.db.scalar(
            select(func.count(func.distinct(Subscription.user_id))).where(
                Subscription.status == SubscriptionStatus.ACTIVE.value
            )
        )

        # Revenu mensuel récurrent : chaque abonnement actif ramené à un mois
        result = await self.db.execute(
            select(Subscription.type, Subscription.price).where(Subscription.status == SubscriptionStatus.ACTIVE.value)
        )
        monthly_revenue = sum(price / SUBSCRIPTION_PERIOD_MONTHS[type] for type, price in result.all())

        return {
            "total_plans": total_plans or 0,
            "active_plans": active_plans or 0,
            "total_subscribers": total_subscribers or 0,
            "monthly_revenue": round(monthly_revenue, 2),
        }


class SubscriptionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _query(self, *conditions, order_by=None) -> List[Subscription]:
        result = await self.db.execute(
            select(Subscription)
            .options(selectinload(Subscription.user), selectinload(Subscription.plan))
            .where(*conditions)
            .order_by(*(order_by or (Subscription.created_at.desc(), Subscription.id.desc())))
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def create(
        self,
        user_id: int,
        type: Optional[SubscriptionType] = None,
        price: Optional[float] = None,
        admin: bool = False,
        plan_id: Optional[int] = None,
        auto_renew: bool = False,
    ) -> Subscription:
        if not await self.db.get(User, user_id):
            raise NotFoundError("Utilisateur introuvable")

        months = None
        if plan_id is not None:
            plan = await PlanService(self.db).find_one(plan_id)
            if not plan.is_active and not admin:
                raise BadRequestError("Ce plan d'abonnement n'est plus disponible")
            type = SubscriptionType(plan.type)
            # Seul un administrateur peut déroger au prix du plan
            price = price if admin and price is not None else plan.price
            months = plan.duration_months

        if type is None or price is None:
            raise BadRequestError("Type et prix de l'abonnement requis")

        start_date = utcnow()
        end_date = add_months(start_date, months or SUBSCRIPTION_PERIOD_MONTHS[type.value])

        subscription = Subscription(
            user_id=user_id,
            plan_id=plan_id,
            type=type.value,
            price=price,
            start_date=start_date,
            end_date=end_date,
            status=(SubscriptionStatus.ACTIVE if admin else SubscriptionStatus.PENDING_PAYMENT).value,
            auto_renew=auto_renew,
        )
        self.db.add(subscription)
        await self.db.commit()

        logger.info(
            f"Abonnement créé : id={subscription.id}, user_id={user_id}, type={subscription.type}, "
            f"status={subscription.status}"
        )
        return await self.find_one(subscription.id)

    async def find_all(self, user_id: Optional[int] = None, status: Optional[str] = None) -> List[Subscription]:
        conditions = []
        if user_id:
            conditions.append(Subscription.user_id == user_id)
        if status:
            conditions.append(Subscription.status == status)
        return await self._query(*conditions)

    async def find_one(self, subscription_id: int) -> Subscription:
        subscriptions = await self._query(Subscription.id == subscription_id)
        if not subscriptions:
            raise NotFoundError("Abonnement introuvable")
        return subscriptions[0]

    async def update(self, subscription_id: int, status: Optional[SubscriptionStatus] = None,
                     auto_renew: Optional[bool] = None) -> Subscription:
        subscription = await self.find_one(subscription_id)
        if status is not None:
            subscription.status = status.value
        if auto_renew is not None:
            subscription.auto_renew = auto_renew
        await self.db.commit()
        return await self.find_one(subscription_id)

    async def cancel(self, subscription_id: int, reason: Optional[str] = None) -> Subscription:
        subscription = await self.find_one(subscription_id)
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise BadRequestError("Cet abonnement est déjà annulé")

        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.cancelled_at = utcnow()
        subscription.cancellation_reason = reason
        subscription.auto_renew = False
        await self.db.commit()

        logger.info(f"Abonnement {subscription_id} annulé ({reason or 'sans motif'})")
        return await self.find_one(subscription_id)

    async def activate(self, subscription_id: int) -> Subscription:
        subscription = await self.find_one(subscription_id)
        subscription.status = SubscriptionStatus.ACTIVE.value
        await self.db.commit()
        logger.info(f"Abonnement {subscription_id} activé")
        return await self.find_one(subscription_id)

    async def renew(self, subscription_id: int, admin: bool = True) -> Subscription:
        subscription = await self.find_one(subscription_id)
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise BadRequestError("Impossible de renouveler un abonnement annulé")
        # Un abonnement en attente ne s'active que par un paiement
        if subscription.status == SubscriptionStatus.PENDING_PAYMENT.value and not admin:
            raise BadRequestError("Abonnement en attente de paiement : utilisez /api/payments/initiate")

        subscription.end_date = add_months(subscription.end_date, subscription.period_months)
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.last_reminder_at = None
        await self.db.commit()

        logger.info(f"Abonnement {subscription_id} renouvelé jusqu'au {subscription.end_date:%Y-%m-%d}")
        return await self.find_one(subscription_id)

    async def delete(self, subscription_id: int) -> dict:
        subscription = await self.find_one(subscription_id)
        await self.db.delete(subscription)
        await self.db.commit()
        logger.info(f"Abonnement supprimé : id={subscription_id}")
        return {"message": "Abonnement supprimé avec succès"}

    async def get_statistics(self) -> dict:
        result = await self.db.execute(
            select(Subscription.status, func.count(Subscription.id)).group_by(Subscription.status)
        )
        by_status = dict(result.all())

        total_revenue = await self.db.scalar(
            select(func.coalesce(func.sum(Subscription.price), 0)).where(
                Subscription.status == SubscriptionStatus.ACTIVE.value
            )
        )
        monthly_revenue = await self.db.scalar(
            select(func.coalesce(func.sum(Subscription.price), 0)).where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.type == SubscriptionType.MONTHLY.value,
            )
        )

        return {
            "total": sum(by_status.values()),
            "active": by_status.get(SubscriptionStatus.ACTIVE.value, 0),
            "expired": by_status.get(SubscriptionStatus.EXPIRED.value, 0),
            "cancelled": by_status.get(SubscriptionStatus.CANCELLED.value, 0),
            "pending_payment": by_status.get(SubscriptionStatus.PENDING_PAYMENT.value, 0),
            "total_revenue": float(total_revenue or 0),
            "monthly_revenue": float(monthly_revenue or 0),
        }

    async def check_expiring(self, days: Optional[int] = None) -> List[Subscription]:
        now = utcnow()
        days = days or settings.SUBSCRIPTION_EXPIRY_WARNING_DAYS
        return await self._query(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.end_date >= now,
            Subscription.end_date <= now + timedelta(days=days),
            order_by=(Subscription.end_date,),
        )

    async def send_expiry_warnings(self) -> int:
        """Prévient une fois par période les abonnés dont l'abonnement arrive à échéance."""
        sent = 0
        window = timedelta(days=settings.SUBSCRIPTION_EXPIRY_WARNING_DAYS)

        for subscription in await self.check_expiring():
            if subscription.last_reminder_at and subscription.last_reminder_at >= subscription.end_date - window:
                continue

            title, message = templates.render(
                "subscription_expiring", user=subscription.user, end_date=subscription.end_date
            )
            subscription.last_reminder_at = utcnow()
            await NotificationService(self.db).send_email(
                subscription.user_id, title, message, {"subscription_id": subscription.id}
            )
            sent += 1

        if sent:
            logger.info(f"⏰ {sent} avertissement(s) d'expiration d'abonnement envoyé(s)")
        return sent

    async def auto_renew_subscriptions(self) -> List[Subscription]:
        due = await self._query(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.auto_renew.is_(True),
            Subscription.end_date <= utcnow(),
        )

        # Les objets chargés expirent au rollback : on ne garde que les identifiants
        due_ids = [subscription.id for subscription in due]

        renewed_ids = []
        for subscription_id in due_ids:
            try:
                await self.renew(subscription_id)
                renewed_ids.append(subscription_id)
            except Exception:
                await self.db.rollback()
                logger.exception(f"Erreur lors du renouvellement de l'abonnement {subscription_id}")

        if not renewed_ids:
            return []
        logger.info(f"🔄 {len(renewed_ids)} abonnement(s) renouvelé(s) automatiquement")
        return await self._query(Subscription.id.in_(renewed_ids), order_by=(Subscription.id,))

    async def expire_subscriptions(self) -> int:
        result = await self.db.execute(
            update(Subscription)
            .where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.auto_renew.is_(False),
                Subscription.end_date < utcnow(),
            )
            .values(status=SubscriptionStatus.EXPIRED.value, updated_at=utcnow())
        )
        await self.db.commit()

        if result.rowcount:
            logger.info(f"{result.rowcount} abonnement(s) expiré(s)")
        return result.rowcount
