import logging
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from edb.auth.models import User, UserRole
from edb.coaching.models import CoachingSession, CoachingStatus
from edb.cohorts.models import Cohort, CohortMember, CohortStatus
from edb.cohorts.schemas import CohortCreate, CohortUpdate
from edb.config import settings
from edb.exceptions import BadRequestError, NotFoundError
from edb.notifications.services import NotificationService
from edb.notifications import templates
from edb.utils.dates import utcnow, add_months, to_naive_utc

logger = logging.getLogger(__name__)


def _cohort_loaders():
    return (
        selectinload(Cohort.members).selectinload(CohortMember.user),
        selectinload(Cohort.sessions).selectinload(CoachingSession.coach),
    )


class CohortService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: CohortCreate) -> Cohort:
        cohort_dict = data.model_dump()
        cohort_dict["start_date"] = to_naive_utc(cohort_dict["start_date"])
        cohort_dict["end_date"] = to_naive_utc(cohort_dict.get("end_date"))
        cohort_dict["type"] = data.type.value

        cohort = Cohort(**cohort_dict, status=CohortStatus.DRAFT.value)
        self.db.add(cohort)
        await self.db.commit()

        logger.info(f"Cohorte créée : id={cohort.id}, name={cohort.name}")
        return await self.find_one(cohort.id)

    async def find_all(self, status: Optional[str] = None, type: Optional[str] = None) -> List[Cohort]:
        query = select(Cohort).options(*_cohort_loaders())
        if status:
            query = query.where(Cohort.status == status)
        if type:
            query = query.where(Cohort.type == type)
        query = query.order_by(Cohort.start_date.desc())

        result = await self.db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().unique().all())

    async def find_one(self, cohort_id: int) -> Cohort:
        result = await self.db.execute(
            select(Cohort)
            .options(*_cohort_loaders())
            .where(Cohort.id == cohort_id)
            .execution_options(populate_existing=True)
        )
        cohort = result.scalars().first()
        if not cohort:
            raise NotFoundError("Cohorte introuvable")
        return cohort

    async def find_for_user(self, user: User) -> List[Cohort]:
        """Cohortes d'un apprenant, ou cohortes suivies par un coach."""
        if user.role == UserRole.COACH.value:
            condition = Cohort.id.in_(
                select(CoachingSession.cohort_id).where(
                    CoachingSession.coach_id == user.id,
                    CoachingSession.cohort_id.is_not(None),
                )
            )
        else:
            condition = Cohort.id.in_(select(CohortMember.cohort_id).where(CohortMember.user_id == user.id))

        result = await self.db.execute(
            select(Cohort)
            .options(*_cohort_loaders())
            .where(condition)
            .order_by(Cohort.start_date.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().unique().all())

    async def update(self, cohort_id: int, data: CohortUpdate) -> Cohort:
        cohort = await self.find_one(cohort_id)
        updates = data.model_dump(exclude_unset=True)

        for key in ("start_date", "end_date"):
            if key in updates:
                updates[key] = to_naive_utc(updates[key])
        for key in ("type", "status"):
            if updates.get(key) is not None:
                updates[key] = updates[key].value

        start = updates.get("start_date", cohort.start_date)
        end = updates.get("end_date", cohort.end_date)
        if start and end and start >= end:
            raise BadRequestError("La date de fin doit être après la date de début")

        for key, value in updates.items():
            setattr(cohort, key, value)

        await self.db.commit()
        logger.info(f"Cohorte mise à jour : id={cohort_id}, champs={list(updates)}")
        return await self.find_one(cohort_id)

    async def delete(self, cohort_id: int) -> dict:
        cohort = await self.find_one(cohort_id)
        await self.db.delete(cohort)
        await self.db.commit()
        logger.info(f"Cohorte supprimée : id={cohort_id}")
        return {"message": "Cohorte supprimée avec succès"}

    async def _get_member(self, cohort_id: int, user_id: int) -> Optional[CohortMember]:
        result = await self.db.execute(
            select(CohortMember)
            .options(selectinload(CohortMember.user))
            .where(CohortMember.cohort_id == cohort_id, CohortMember.user_id == user_id)
        )
        return result.scalars().first()

    async def add_member(self, cohort_id: int, user_id: int) -> CohortMember:
        cohort = await self.find_one(cohort_id)

        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("Utilisateur introuvable")

        if await self._get_member(cohort_id, user_id):
            raise BadRequestError("L'utilisateur est déjà membre de cette cohorte")

        if cohort.max_students:
            count_result = await self.db.execute(
                select(func.count(CohortMember.id)).where(CohortMember.cohort_id == cohort_id)
            )
            if count_result.scalar_one() >= cohort.max_students:
                raise BadRequestError("La cohorte est complète")

        member = CohortMember(cohort_id=cohort_id, user_id=user_id, progress=0)
        self.db.add(member)

        # Chaque inscription ouvre droit à une période de coaching gratuit
        now = utcnow()
        self.db.add(CoachingSession(
            user_id=user_id,
            cohort_id=cohort_id,
            start_date=now,
            end_date=add_months(now, settings.FREE_COACHING_DURATION_MONTHS),
            is_free=True,
            status=CoachingStatus.ACTIVE.value,
        ))
        await self.db.commit()

        logger.info(f"Membre ajouté : cohort_id={cohort_id}, user_id={user_id} (+ coaching gratuit)")

        title, message = templates.render("welcome_cohort", user=user, cohort=cohort,
                                          months=settings.FREE_COACHING_DURATION_MONTHS)
        await NotificationService(self.db).send_email(user_id, title, message, {"cohort_id": cohort_id})

        return await self._get_member(cohort_id, user_id)

    async def remove_member(self, cohort_id: int, user_id: int) -> dict:
        await self.find_one(cohort_id)

        member = await self._get_member(cohort_id, user_id)
        if not member:
            raise NotFoundError("Membre introuvable dans cette cohorte")

        await self.db.delete(member)
        await self.db.commit()
        logger.info(f"Membre retiré : cohort_id={cohort_id}, user_id={user_id}")
        return {"message": "Membre retiré de la cohorte avec succès"}

    async def update_member_progress(self, cohort_id: int, user_id: int, progress: float) -> CohortMember:
        member = await self._get_member(cohort_id, user_id)
        if not member:
            raise NotFoundError("Membre introuvable dans cette cohorte")

        member.progress = min(max(progress, 0), 100)
        await self.db.commit()
        return member

    async def get_stats(self) -> dict:
        result = await self.db.execute(select(Cohort.status, func.count(Cohort.id)).group_by(Cohort.status))
        by_status = {status: count for status, count in result.all()}
        return {
            "total": sum(by_status.values()),
            "active": by_status.get(CohortStatus.ACTIVE.value, 0),
            "completed": by_status.get(CohortStatus.COMPLETED.value, 0),
            "draft": by_status.get(CohortStatus.DRAFT.value, 0),
        }
