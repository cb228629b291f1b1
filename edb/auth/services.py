import logging
import math
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from edb.audit.services import record_event
from edb.auth import jwt_handler, password
from edb.auth.models import User, RefreshToken, UserRole, UserStatus
from edb.auth.schemas import UserRegister
from edb.config import settings
from edb.exceptions import ConflictError, UnauthorizedError
from edb.utils.avatar import generate_default_avatar_url
from edb.utils.dates import utcnow

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Email ou mot de passe incorrect"


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalars().first()


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, data: UserRegister, ip_address: Optional[str] = None) -> User:
        if await get_user_by_email(self.db, data.email):
            raise ConflictError("Cet email est déjà utilisé")

        # L'inscription publique ne permet pas de créer un administrateur
        role = data.role or UserRole.APPRENANT
        if role == UserRole.ADMIN:
            role = UserRole.APPRENANT

        user = User(
            email=data.email.lower(),
            hashed_password=password.hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            role=role.value,
            status=UserStatus.PENDING.value,
            avatar=generate_default_avatar_url(data.first_name, data.last_name),
        )
        self.db.add(user)
        await self.db.flush()

        record_event(self.db, user_id=user.id, action="REGISTER", entity="User", entity_id=user.id, ip_address=ip_address)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Utilisateur inscrit : id={user.id}, email={user.email}, role={user.role}")
        return user

    async def login(self, email: str, plain_password: str, ip_address: Optional[str] = None) -> dict:
        user = await get_user_by_email(self.db, email)
        if not user:
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if user.status == UserStatus.SUSPENDED.value:
            raise UnauthorizedError("Compte suspendu")
        if user.status == UserStatus.INACTIVE.value:
            raise UnauthorizedError("Compte inactif")

        now = utcnow()
        if user.is_locked(now):
            minutes_left = math.ceil((user.locked_until - now).total_seconds() / 60)
            logger.warning(f"⛔ Connexion refusée, compte verrouillé : id={user.id}")
            raise UnauthorizedError(f"Compte temporairement verrouillé. Réessayez dans {minutes_left} minute(s)")
        if user.locked_until is not None:
            # Verrou expiré : nouveau quota de tentatives
            user.login_attempts = 0
            user.locked_until = None

        if not password.verify_password(plain_password, user.hashed_password):
            await self.increment_login_attempts(user)
            raise UnauthorizedError(INVALID_CREDENTIALS)

        user.login_attempts = 0
        user.locked_until = None
        user.last_login_at = now

        tokens = await self._issue_tokens(user)
        record_event(self.db, user_id=user.id, action="LOGIN", entity="User", entity_id=user.id, ip_address=ip_address)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"✅ Connexion réussie : id={user.id}")
        return {"user": user, **tokens}

    async def increment_login_attempts(self, user: User) -> None:
        user.login_attempts = (user.login_attempts or 0) + 1

        if user.login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.locked_until = utcnow() + timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES)
            logger.warning(
                f"🔒 Compte verrouillé après {user.login_attempts} tentatives : id={user.id}, "
                f"jusqu'à {user.locked_until}"
            )

        await self.db.commit()

    async def _issue_tokens(self, user: User) -> dict:
        access_token = jwt_handler.create_access_token(user)
        refresh_token, expires_at = jwt_handler.create_refresh_token(user)
        self.db.add(RefreshToken(user_id=user.id, token=refresh_token, expires_at=expires_at))
        await self.db.flush()
        return {"access_token": access_token, "refresh_token": refresh_token, "token_type": "bearer"}

    async def refresh_tokens(self, refresh_token: str) -> dict:
        payload = jwt_handler.decode_refresh_token(refresh_token)
        if not payload:
            raise UnauthorizedError("Token invalide ou expiré")

        result = await self.db.execute(select(RefreshToken).where(RefreshToken.token == refresh_token))
        stored = result.scalars().first()
        if not stored or stored.expires_at < utcnow():
            raise UnauthorizedError("Token invalide ou expiré")

        user = await self.db.get(User, stored.user_id)
        if not user or user.status in (UserStatus.SUSPENDED.value, UserStatus.INACTIVE.value):
            raise UnauthorizedError("Token invalide ou expiré")

        # Rotation : l'ancien refresh token n'est plus utilisable
        await self.db.delete(stored)
        tokens = await self._issue_tokens(user)
        await self.db.commit()

        logger.info(f"🔄 Tokens renouvelés pour user_id={user.id}")
        return tokens

    async def logout(self, user_id: int, refresh_token: Optional[str] = None) -> dict:
        query = delete(RefreshToken).where(RefreshToken.user_id == user_id)
        if refresh_token:
            query = query.where(RefreshToken.token == refresh_token)
        await self.db.execute(query)

        record_event(self.db, user_id=user_id, action="LOGOUT", entity="User", entity_id=user_id)
        await self.db.commit()
        return {"message": "Déconnexion réussie"}
