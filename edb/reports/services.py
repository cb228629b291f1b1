import logging
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from edb.auth.models import User
from edb.coaching.models import CoachingSession, CoachingStatus
from edb.cohorts.models import Cohort, CohortMember
from edb.exceptions import BadRequestError
from edb.payments.models import Payment, PaymentStatus
from edb.reports import exporters
from edb.subscriptions.models import Subscription, SubscriptionStatus
from edb.utils.dates import to_naive_utc

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = {
    "users": ["id", "email", "first_name", "last_name", "phone", "role", "status", "created_at", "last_login_at"],
    "cohorts": ["id", "name", "type", "status", "start_date", "end_date", "max_students", "price",
                "members_count", "sessions_count"],
    "subscriptions": ["id", "user_email", "user_name", "type", "price", "status", "start_date", "end_date",
                      "auto_renew"],
    "payments": ["id", "user_email", "user_name", "amount", "currency", "method", "status",
                 "provider_reference", "paid_at", "created_at"],
    "revenue": ["id", "user_email", "user_name", "amount", "currency", "method", "subscription_type", "paid_at"],
    "conversion": ["cohort_id", "cohort_name", "members", "paid_members", "conversion_rate"],
}


def _user_fields(user: Optional[User]) -> dict:
    if not user:
        return {"user_email": None, "user_name": None}
    return {"user_email": user.email, "user_name": user.full_name}


class ReportService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_overview(self) -> dict:
        total_users = await self.db.scalar(select(func.count(User.id)))
        total_cohorts = await self.db.scalar(select(func.count(Cohort.id)))
        total_subscriptions = await self.db.scalar(
            select(func.count(Subscription.id)).where(Subscription.status == SubscriptionStatus.ACTIVE.value)
        )
        total_revenue = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status == PaymentStatus.COMPLETED.value)
        )
        active_coaching = await self.db.scalar(
            select(func.count(CoachingSession.id)).where(CoachingSession.status == CoachingStatus.ACTIVE.value)
        )
        return {
            "total_users": total_users or 0,
            "total_cohorts": total_cohorts or 0,
            "total_subscriptions": total_subscriptions or 0,
            "total_revenue": float(total_revenue or 0),
            "active_coaching": active_coaching or 0,
        }

    async def get_users_report(self) -> dict:
        by_role = await self.db.execute(select(User.role, func.count(User.id)).group_by(User.role))
        by_status = await self.db.execute(select(User.status, func.count(User.id)).group_by(User.status))
        recent = await self.db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()).limit(10))

        return {
            "by_role": dict(by_role.all()),
            "by_status": dict(by_status.all()),
            "recent_users": [
                {
                    "id": u.id,
                    "first_name": u.first_name,
                    "last_name": u.last_name,
                    "email": u.email,
                    "role": u.role,
                    "created_at": u.created_at,
                }
                for u in recent.scalars().all()
            ],
        }

    async def _completed_payments(self, start_date: Optional[datetime] = None,
                                  end_date: Optional[datetime] = None) -> List[Payment]:
        query = (
            select(Payment)
            .options(selectinload(Payment.user), selectinload(Payment.subscription))
            .where(Payment.status == PaymentStatus.COMPLETED.value)
        )
        if start_date:
            query = query.where(Payment.paid_at >= to_naive_utc(start_date))
        if end_date:
            query = query.where(Payment.paid_at <= to_naive_utc(end_date))

        result = await self.db.execute(query.order_by(Payment.paid_at.desc()))
        return list(result.scalars().all())

    async def get_revenue_report(self, start_date: Optional[datetime] = None,
                                 end_date: Optional[datetime] = None) -> dict:
        start_date, end_date = to_naive_utc(start_date), to_naive_utc(end_date)
        if start_date and end_date and start_date > end_date:
            raise BadRequestError("La date de début doit précéder la date de fin")

        payments = await self._completed_payments(start_date, end_date)
        return {
            "payments": [self._revenue_row(p) for p in payments],
            "total": float(sum(p.amount for p in payments)),
            "count": len(payments),
        }

    async def get_cohorts_report(self) -> List[dict]:
        members = (
            select(func.count(CohortMember.id)).where(CohortMember.cohort_id == Cohort.id).scalar_subquery()
        )
        sessions = (
            select(func.count(CoachingSession.id)).where(CoachingSession.cohort_id == Cohort.id).scalar_subquery()
        )
        result = await self.db.execute(
            select(Cohort, members.label("members_count"), sessions.label("sessions_count"))
            .order_by(Cohort.created_at.desc(), Cohort.id.desc())
        )
        return [
            {
                "id": cohort.id,
                "name": cohort.name,
                "type": cohort.type,
                "status": cohort.status,
                "start_date": cohort.start_date,
                "end_date": cohort.end_date,
                "max_students": cohort.max_students,
                "price": cohort.price,
                "members_count": members_count,
                "sessions_count": sessions_count,
            }
            for cohort, members_count, sessions_count in result.all()
        ]

    async def get_subscriptions_report(self) -> List[dict]:
        result = await self.db.execute(
            select(Subscription)
            .options(selectinload(Subscription.user))
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        )
        return [
            {
                "id": s.id,
                **_user_fields(s.user),
                "type": s.type,
                "price": s.price,
                "status": s.status,
                "start_date": s.start_date,
                "end_date": s.end_date,
                "auto_renew": s.auto_renew,
            }
            for s in result.scalars().all()
        ]

    async def get_payments_report(self, start_date: Optional[datetime] = None,
                                  end_date: Optional[datetime] = None) -> List[dict]:
        query = select(Payment).options(selectinload(Payment.user))
        if start_date:
            query = query.where(Payment.created_at >= to_naive_utc(start_date))
        if end_date:
            query = query.where(Payment.created_at <= to_naive_utc(end_date))

        result = await self.db.execute(query.order_by(Payment.created_at.desc(), Payment.id.desc()))
        return [
            {
                "id": p.id,
                **_user_fields(p.user),
                "amount": p.amount,
                "currency": p.currency,
                "method": p.method,
                "status": p.status,
                "provider_reference": p.provider_reference,
                "paid_at": p.paid_at,
                "created_at": p.created_at,
            }
            for p in result.scalars().all()
        ]

    async def get_conversion_report(self) -> List[dict]:
        """Part des membres de chaque cohorte ayant souscrit un abonnement payé."""
        paid_users = select(Subscription.user_id).where(
            Subscription.status.in_([SubscriptionStatus.ACTIVE.value, SubscriptionStatus.EXPIRED.value])
        )
        result = await self.db.execute(
            select(
                Cohort.id,
                Cohort.name,
                func.count(CohortMember.id),
                func.count(CohortMember.id).filter(CohortMember.user_id.in_(paid_users)),
            )
            .outerjoin(CohortMember, CohortMember.cohort_id == Cohort.id)
            .group_by(Cohort.id, Cohort.name)
            .order_by(Cohort.id)
        )

        rows = []
        for cohort_id, name, members, paid in result.all():
            rows.append({
                "cohort_id": cohort_id,
                "cohort_name": name,
                "members": members,
                "paid_members": paid,
                "conversion_rate": round(paid * 100 / members, 2) if members else 0.0,
            })
        return rows

    @staticmethod
    def _revenue_row(payment: Payment) -> dict:
        return {
            "id": payment.id,
            **_user_fields(payment.user),
            "amount": payment.amount,
            "currency": payment.currency,
            "method": payment.method,
            "subscription_type": payment.subscription.type if payment.subscription else None,
            "paid_at": payment.paid_at,
        }

    async def get_export_rows(self, report_type: str, start_date: Optional[datetime] = None,
                              end_date: Optional[datetime] = None) -> List[dict]:
        if report_type == "users":
            result = await self.db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
            return [{c: getattr(u, c) for c in EXPORT_COLUMNS["users"]} for u in result.scalars().all()]
        if report_type == "cohorts":
            return await self.get_cohorts_report()
        if report_type == "subscriptions":
            return await self.get_subscriptions_report()
        if report_type == "payments":
            return await self.get_payments_report(start_date, end_date)
        if report_type == "revenue":
            return [self._revenue_row(p) for p in await self._completed_payments(start_date, end_date)]
        if report_type == "conversion":
            return await self.get_conversion_report()
        raise BadRequestError(f"Type de rapport inconnu : {report_type}")

    async def export(self, report_type: str, fmt: str = "csv", start_date: Optional[datetime] = None,
                     end_date: Optional[datetime] = None) -> Tuple[bytes, str, str]:
        """Retourne (contenu, type MIME, nom de fichier)."""
        if report_type not in EXPORT_COLUMNS:
            raise BadRequestError(f"Type de rapport inconnu : {report_type}")
        if fmt not in exporters.EXPORT_FORMATS:
            raise BadRequestError(f"Format d'export non supporté : {fmt}")

        rows = await self.get_export_rows(report_type, start_date, end_date)
        content = exporters.render(fmt, EXPORT_COLUMNS[report_type], rows, title=report_type)
        media_type, extension = exporters.EXPORT_FORMATS[fmt]
        filename = f"rapport_{report_type}_{datetime.now():%Y%m%d}.{extension}"

        logger.info(f"📊 Export {report_type} ({fmt}) : {len(rows)} ligne(s)")
        return content, media_type, filename
