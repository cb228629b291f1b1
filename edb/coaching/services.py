import logging
from datetime import timedelta
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from edb.auth.models import User, UserRole
from edb.coaching.models import CoachingSession, CoachingStatus
from edb.coaching.schemas import CoachingSessionCreate, CoachingSessionUpdate
from edb.cohorts.models import Cohort
from edb.config import settings
from edb.exceptions import BadRequestError, ForbiddenError, NotFoundError
from edb.notifications import templates
from edb.notifications.services import NotificationService
from edb.utils.dates import utcnow, to_naive_utc

logger = logging.getLogger(__name__)

EXPIRING_WINDOW_DAYS = 30


def _session_loaders():
    return (
        selectinload(CoachingSession.user),
        selectinload(CoachingSession.coach),
        selectinload(CoachingSession.cohort),
    )


class CoachingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _query(self, *conditions) -> List[CoachingSession]:
        result = await self.db.execute(
            select(CoachingSession)
            .options(*_session_loaders())
            .where(*conditions)
            .order_by(CoachingSession.created_at.desc(), CoachingSession.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_all(self, user_id: Optional[int] = None, coach_id: Optional[int] = None,
                       status: Optional[str] = None) -> List[CoachingSession]:
        conditions = []
        if user_id:
            conditions.append(CoachingSession.user_id == user_id)
        if coach_id:
            conditions.append(CoachingSession.coach_id == coach_id)
        if status:
            conditions.append(CoachingSession.status == status)
        return await self._query(*conditions)

    async def find_one(self, session_id: int) -> CoachingSession:
        sessions = await self._query(CoachingSession.id == session_id)
        if not sessions:
            raise NotFoundError("Session de coaching introuvable")
        return sessions[0]

    async def _get_coach(self, coach_id: int) -> User:
        coach = await self.db.get(User, coach_id)
        if not coach or coach.role != UserRole.COACH.value:
            raise NotFoundError("Coach introuvable")
        return coach

    async def create(self, data: CoachingSessionCreate) -> CoachingSession:
        if not await self.db.get(User, data.user_id):
            raise NotFoundError("Utilisateur introuvable")
        if data.coach_id:
            await self._get_coach(data.coach_id)
        if data.cohort_id and not await self.db.get(Cohort, data.cohort_id):
            raise NotFoundError("Cohorte introuvable")

        session = CoachingSession(
            user_id=data.user_id,
            coach_id=data.coach_id,
            cohort_id=data.cohort_id,
            start_date=to_naive_utc(data.start_date),
            end_date=to_naive_utc(data.end_date),
            is_free=data.is_free,
            notes=data.notes,
            status=CoachingStatus.ACTIVE.value,
        )
        self.db.add(session)
        await self.db.commit()

        logger.info(f"Session de coaching créée : id={session.id}, user_id={session.user_id}")
        return await self.find_one(session.id)

    async def update(self, session_id: int, data: CoachingSessionUpdate) -> CoachingSession:
        session = await self.find_one(session_id)
        updates = data.model_dump(exclude_unset=True)

        if updates.get("coach_id"):
            await self._get_coach(updates["coach_id"])
        for key in ("start_date", "end_date"):
            if key in updates:
                updates[key] = to_naive_utc(updates[key])
        if updates.get("status") is not None:
            updates["status"] = updates["status"].value

        start = updates.get("start_date") or session.start_date
        end = updates.get("end_date") or session.end_date
        if start >= end:
            raise BadRequestError("La date de fin doit être après la date de début")

        for key, value in updates.items():
            setattr(session, key, value)
        await self.db.commit()

        return await self.find_one(session_id)

    async def delete(self, session_id: int) -> dict:
        session = await self.find_one(session_id)
        await self.db.delete(session)
        await self.db.commit()
        logger.info(f"Session de coaching supprimée : id={session_id}")
        return {"message": "Session de coaching supprimée avec succès"}

    async def assign_coach(self, session_id: int, coach_id: int) -> CoachingSession:
        session = await self.find_one(session_id)
        coach = await self._get_coach(coach_id)

        session.coach_id = coach.id
        await self.db.commit()
        logger.info(f"Coach {coach.id} assigné à la session {session_id}")

        title, message = templates.render("coach_assigned", user=session.user, coach=coach)
        await NotificationService(self.db).send_email(session.user_id, title, message, {"session_id": session_id})

        return await self.find_one(session_id)

    async def update_feedback(self, session_id: int, feedback: str, user: User) -> CoachingSession:
        session = await self.find_one(session_id)

        if user.role == UserRole.COACH.value:
            if session.coach_id != user.id:
                raise ForbiddenError("Vous n'êtes pas le coach de cette session")
            session.feedback_from_coach = feedback
        else:
            if user.role != UserRole.ADMIN.value and session.user_id != user.id:
                raise ForbiddenError("Cette session de coaching ne vous appartient pas")
            session.feedback_from_user = feedback

        await self.db.commit()
        return await self.find_one(session_id)

    async def update_status(self, session_id: int, status: CoachingStatus, user: User) -> CoachingSession:
        session = await self.find_one(session_id)
        if user.role == UserRole.COACH.value and session.coach_id != user.id:
            raise ForbiddenError("Vous n'êtes pas le coach de cette session")

        session.status = status.value
        await self.db.commit()
        logger.info(f"Session {session_id} : statut {status.value}")
        return await self.find_one(session_id)

    async def check_expiring_sessions(self, days: int = EXPIRING_WINDOW_DAYS) -> List[CoachingSession]:
        """Sessions gratuites actives qui se terminent dans les ``days`` prochains jours."""
        now = utcnow()
        return await self._query(
            CoachingSession.status == CoachingStatus.ACTIVE.value,
            CoachingSession.is_free.is_(True),
            CoachingSession.end_date >= now,
            CoachingSession.end_date <= now + timedelta(days=days),
        )

    async def send_expiry_reminders(self) -> int:
        now = utcnow()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        sent = 0

        for days in settings.coaching_reminder_days:
            day_start = today + timedelta(days=days)
            sessions = await self._query(
                CoachingSession.status == CoachingStatus.ACTIVE.value,
                CoachingSession.is_free.is_(True),
                CoachingSession.end_date >= day_start,
                CoachingSession.end_date < day_start + timedelta(days=1),
            )
            for session in sessions:
                # Un seul rappel par jour et par session
                if session.last_reminder_at and session.last_reminder_at >= today:
                    continue

                title, message = templates.render(
                    "coaching_expiry_reminder", user=session.user, days=days, end_date=session.end_date
                )
                session.last_reminder_at = now
                await NotificationService(self.db).send_email(
                    session.user_id, title, message, {"session_id": session.id, "days": days}
                )
                sent += 1

        if sent:
            logger.info(f"⏰ {sent} rappel(s) d'expiration de coaching envoyé(s)")
        return sent

    async def expire_sessions(self) -> int:
        result = await self.db.execute(
            update(CoachingSession)
            .where(CoachingSession.status == CoachingStatus.ACTIVE.value, CoachingSession.end_date < utcnow())
            .values(status=CoachingStatus.EXPIRED.value, updated_at=utcnow())
        )
        await self.db.commit()

        if result.rowcount:
            logger.info(f"{result.rowcount} session(s) de coaching expirée(s)")
        return result.rowcount
