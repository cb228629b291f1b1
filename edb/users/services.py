import logging
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from edb.audit.services import record_event
from edb.auth import password
from edb.auth.models import User, UserRole, UserStatus
from edb.auth.permissions import is_admin
from edb.auth.services import get_user_by_email
from edb.coaching.models import CoachingSession, CoachingStatus
from edb.cohorts.models import CohortMember
from edb.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from edb.subscriptions.models import Subscription
from edb.users.schemas import UserCreate, UserUpdate
from edb.utils.avatar import generate_default_avatar_url

logger = logging.getLogger(__name__)

# Champs qu'un utilisateur ne peut pas modifier sur son propre compte (mot de passe : voir change_password)
ADMIN_ONLY_FIELDS = {"role", "status", "email_verified", "phone_verified", "password"}


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_all(self, role: Optional[str] = None, status: Optional[str] = None) -> List[User]:
        query = select(User)
        if role:
            query = query.where(User.role == role)
        if status:
            query = query.where(User.status == status)

        result = await self.db.execute(query.order_by(User.created_at.desc(), User.id.desc()))
        return list(result.scalars().all())

    async def find_one(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("Utilisateur introuvable")
        return user

    async def create(self, data: UserCreate, actor: Optional[User] = None) -> User:
        if await get_user_by_email(self.db, data.email):
            raise ConflictError("Cet email est déjà utilisé")

        user = User(
            email=data.email.lower(),
            hashed_password=password.hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            bio=data.bio,
            role=data.role.value,
            status=UserStatus.ACTIVE.value,
            avatar=generate_default_avatar_url(data.first_name, data.last_name),
        )
        self.db.add(user)
        await self.db.flush()

        record_event(self.db, user_id=actor.id if actor else None, action="CREATE", entity="User",
                     entity_id=user.id, changes={"role": user.role})
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Utilisateur créé par un administrateur : id={user.id}, role={user.role}")
        return user

    async def update(self, user_id: int, data: UserUpdate, actor: User) -> User:
        if not is_admin(actor) and actor.id != user_id:
            raise ForbiddenError("Vous ne pouvez modifier que votre propre profil")

        user = await self.find_one(user_id)
        updates = data.model_dump(exclude_unset=True)

        if not is_admin(actor):
            updates = {k: v for k, v in updates.items() if k not in ADMIN_ONLY_FIELDS}

        if "email" in updates and updates["email"]:
            email = updates["email"].lower()
            if email != user.email:
                existing = await get_user_by_email(self.db, email)
                if existing and existing.id != user.id:
                    raise ConflictError("Cet email est déjà utilisé")
            updates["email"] = email

        new_password = updates.pop("password", None)
        if new_password:
            user.hashed_password = password.hash_password(new_password)

        for key in ("role", "status"):
            if updates.get(key) is not None:
                updates[key] = updates[key].value

        for key, value in updates.items():
            setattr(user, key, value)

        changes = dict(updates)
        if new_password:
            changes["password"] = "***"
        record_event(self.db, user_id=actor.id, action="UPDATE", entity="User", entity_id=user.id, changes=changes)

        await self.db.commit()
        await self.db.refresh(user)
        logger.info(f"Utilisateur mis à jour : id={user.id}, champs={list(changes)}")
        return user

    async def update_status(self, user_id: int, status: UserStatus, actor: User) -> User:
        user = await self.find_one(user_id)
        previous = user.status
        user.status = status.value

        record_event(self.db, user_id=actor.id, action="STATUS_CHANGE", entity="User", entity_id=user.id,
                     changes={"from": previous, "to": user.status})
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Statut utilisateur {user.id} : {previous} -> {user.status}")
        return user

    async def delete(self, user_id: int, actor: User) -> dict:
        user = await self.find_one(user_id)
        if user.id == actor.id:
            raise BadRequestError("Vous ne pouvez pas supprimer votre propre compte")

        record_event(self.db, user_id=actor.id, action="DELETE", entity="User", entity_id=user.id,
                     changes={"email": user.email})
        await self.db.delete(user)
        await self.db.commit()

        logger.info(f"Utilisateur supprimé : id={user_id}")
        return {"message": "Utilisateur supprimé avec succès"}

    async def change_password(self, user: User, current_password: str, new_password: str) -> dict:
        if not password.verify_password(current_password, user.hashed_password):
            raise BadRequestError("Mot de passe actuel incorrect")

        user.hashed_password = password.hash_password(new_password)
        await self.db.commit()
        logger.info(f"Mot de passe modifié : user_id={user.id}")
        return {"message": "Mot de passe modifié avec succès"}

    async def update_notification_settings(self, user: User, email: Optional[bool] = None,
                                           sms: Optional[bool] = None) -> User:
        if email is not None:
            user.email_notifications = email
        if sms is not None:
            user.sms_notifications = sms
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def update_avatar(self, user: User, avatar_url: str) -> User:
        user.avatar = avatar_url
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def get_coaches(self) -> List[User]:
        result = await self.db.execute(
            select(User)
            .where(User.role == UserRole.COACH.value, User.status == UserStatus.ACTIVE.value)
            .order_by(User.last_name, User.first_name)
        )
        return list(result.scalars().all())

    async def get_my_students(self, coach: User) -> List[User]:
        result = await self.db.execute(
            select(User)
            .where(User.id.in_(select(CoachingSession.user_id).where(CoachingSession.coach_id == coach.id)))
            .order_by(User.last_name, User.first_name)
        )
        return list(result.scalars().all())

    async def update_notes(self, user_id: int, notes: Optional[str]) -> User:
        user = await self.find_one(user_id)
        user.notes = notes
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def record_attendance(self, student_id: int, present: bool, cohort_id: Optional[int] = None) -> dict:
        await self.find_one(student_id)

        query = select(CohortMember).where(CohortMember.user_id == student_id)
        if cohort_id:
            query = query.where(CohortMember.cohort_id == cohort_id)
        result = await self.db.execute(query)
        memberships = list(result.scalars().all())

        if not memberships:
            raise NotFoundError("Aucune inscription trouvée pour cet apprenant")

        for member in memberships:
            if present:
                member.attendance_count = (member.attendance_count or 0) + 1
            else:
                member.absence_count = (member.absence_count or 0) + 1
        await self.db.commit()

        return {
            "message": "Présence enregistrée" if present else "Absence enregistrée",
            "memberships": [
                {
                    "cohort_id": m.cohort_id,
                    "attendance_count": m.attendance_count,
                    "absence_count": m.absence_count,
                }
                for m in memberships
            ],
        }

    async def get_user_stats(self, user_id: int) -> dict:
        user = await self.find_one(user_id)

        if user.role == UserRole.APPRENANT.value:
            cohorts_count = await self.db.scalar(
                select(func.count(CohortMember.id)).where(CohortMember.user_id == user.id)
            )
            active_coaching = await self.db.scalar(
                select(func.count(CoachingSession.id)).where(
                    CoachingSession.user_id == user.id,
                    CoachingSession.status == CoachingStatus.ACTIVE.value,
                )
            )
            result = await self.db.execute(
                select(Subscription)
                .where(Subscription.user_id == user.id)
                .order_by(Subscription.created_at.desc(), Subscription.id.desc())
                .limit(5)
            )
            subscriptions = [
                {
                    "id": s.id,
                    "type": s.type,
                    "price": s.price,
                    "status": s.status,
                    "start_date": s.start_date,
                    "end_date": s.end_date,
                }
                for s in result.scalars().all()
            ]
            return {
                "cohorts_count": cohorts_count or 0,
                "active_coaching": active_coaching or 0,
                "subscriptions": subscriptions,
            }

        if user.role == UserRole.COACH.value:
            active_sessions = await self.db.scalar(
                select(func.count(CoachingSession.id)).where(
                    CoachingSession.coach_id == user.id,
                    CoachingSession.status == CoachingStatus.ACTIVE.value,
                )
            )
            total_students = await self.db.scalar(
                select(func.count(func.distinct(CoachingSession.user_id))).where(CoachingSession.coach_id == user.id)
            )
            return {"active_sessions": active_sessions or 0, "total_students": total_students or 0}

        return {}
