import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from edb.auth.models import User, UserRole
from edb.auth.schemas import UserBrief
from edb.coaching.models import CoachingSession, CoachingStatus
from edb.cohorts.models import Cohort, CohortMember
from edb.cohorts.schemas import CohortBrief
from edb.payments.models import Payment, PaymentStatus
from edb.subscriptions.models import Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)


def _brief(user):
    return UserBrief.model_validate(user).model_dump() if user else None


def _cohort_brief(cohort):
    return CohortBrief.model_validate(cohort).model_dump() if cohort else None


class DashboardService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_admin_dashboard(self) -> dict:
        users = await self.db.execute(select(User.role, func.count(User.id)).group_by(User.role))
        cohorts = await self.db.execute(select(Cohort.status, func.count(Cohort.id)).group_by(Cohort.status))
        active_subscriptions = await self.db.scalar(
            select(func.count(Subscription.id)).where(Subscription.status == SubscriptionStatus.ACTIVE.value)
        )
        total_revenue = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status == PaymentStatus.COMPLETED.value)
        )
        recent = await self.db.execute(
            select(Payment)
            .options(selectinload(Payment.user))
            .where(Payment.status == PaymentStatus.COMPLETED.value)
            .order_by(Payment.paid_at.desc())
            .limit(5)
        )
        active_sessions = await self.db.scalar(
            select(func.count(CoachingSession.id)).where(CoachingSession.status == CoachingStatus.ACTIVE.value)
        )

        return {
            "users": dict(users.all()),
            "cohorts": dict(cohorts.all()),
            "active_subscriptions": active_subscriptions or 0,
            "total_revenue": float(total_revenue or 0),
            "recent_payments": [
                {
                    "id": p.id,
                    "amount": p.amount,
                    "currency": p.currency,
                    "method": p.method,
                    "paid_at": p.paid_at,
                    "user": _brief(p.user),
                }
                for p in recent.scalars().all()
            ],
            "active_sessions": active_sessions or 0,
        }

    async def get_coach_dashboard(self, coach_id: int) -> dict:
        sessions = await self.db.execute(
            select(CoachingSession)
            .options(selectinload(CoachingSession.user), selectinload(CoachingSession.cohort))
            .where(CoachingSession.coach_id == coach_id, CoachingSession.status == CoachingStatus.ACTIVE.value)
            .order_by(CoachingSession.end_date)
        )
        total_students = await self.db.scalar(
            select(func.count(func.distinct(CoachingSession.user_id))).where(CoachingSession.coach_id == coach_id)
        )

        members = select(func.count(CohortMember.id)).where(CohortMember.cohort_id == Cohort.id).scalar_subquery()
        cohorts = await self.db.execute(
            select(Cohort, members.label("members_count"))
            .where(Cohort.id.in_(select(CoachingSession.cohort_id).where(CoachingSession.coach_id == coach_id)))
            .order_by(Cohort.start_date.desc())
        )

        return {
            "active_sessions": [
                {
                    "id": s.id,
                    "start_date": s.start_date,
                    "end_date": s.end_date,
                    "is_free": s.is_free,
                    "user": _brief(s.user),
                    "cohort": _cohort_brief(s.cohort),
                }
                for s in sessions.scalars().all()
            ],
            "total_students": total_students or 0,
            "cohorts": [
                {**_cohort_brief(cohort), "members_count": members_count}
                for cohort, members_count in cohorts.all()
            ],
        }

    async def get_apprenant_dashboard(self, user_id: int) -> dict:
        memberships = await self.db.execute(
            select(CohortMember)
            .options(selectinload(CohortMember.cohort))
            .where(CohortMember.user_id == user_id)
            .order_by(CohortMember.joined_at.desc())
        )
        coaching = await self.db.execute(
            select(CoachingSession)
            .options(selectinload(CoachingSession.coach))
            .where(CoachingSession.user_id == user_id, CoachingSession.status == CoachingStatus.ACTIVE.value)
            .order_by(CoachingSession.end_date.desc())
            .limit(1)
        )
        subscription = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        average_progress = await self.db.scalar(
            select(func.avg(CohortMember.progress)).where(CohortMember.user_id == user_id)
        )

        session = coaching.scalars().first()
        current = subscription.scalars().first()
        return {
            "cohorts": [
                {
                    "id": m.id,
                    "progress": m.progress,
                    "joined_at": m.joined_at,
                    "cohort": _cohort_brief(m.cohort),
                }
                for m in memberships.scalars().all()
            ],
            "active_coaching": {
                "id": session.id,
                "start_date": session.start_date,
                "end_date": session.end_date,
                "is_free": session.is_free,
                "coach": _brief(session.coach),
            } if session else None,
            "current_subscription": {
                "id": current.id,
                "type": current.type,
                "price": current.price,
                "status": current.status,
                "start_date": current.start_date,
                "end_date": current.end_date,
                "auto_renew": current.auto_renew,
            } if current else None,
            "average_progress": round(float(average_progress or 0), 2),
        }

    async def get_dashboard(self, user: User) -> dict:
        if user.role == UserRole.ADMIN.value:
            return await self.get_admin_dashboard()
        if user.role == UserRole.COACH.value:
            return await self.get_coach_dashboard(user.id)
        if user.role == UserRole.APPRENANT.value:
            return await self.get_apprenant_dashboard(user.id)
        return {}
