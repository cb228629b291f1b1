from typing import Optional
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth import jwt_handler
from edb.auth.models import User, UserStatus
from edb.db.session import get_db

# Initialiser le logger
logger = logging.getLogger(__name__)

# Utilisé pour extraire le token depuis le header Authorization
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# 🔒 Récupération obligatoire de l'utilisateur
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    🔐 Récupère l'utilisateur courant à partir du token JWT d'accès.
    """
    if not token:
        logger.warning("⛔ Accès refusé : token manquant")
        raise _unauthorized("Token d'authentification manquant")

    payload = jwt_handler.decode_access_token(token)
    if not payload:
        raise _unauthorized("Token invalide ou expiré")

    try:
        user_id = int(payload["sub"])
    except (ValueError, TypeError) as e:
        logger.warning(f"⚠️ Champ 'sub' mal formé dans token : {payload.get('sub')} ({e})")
        raise _unauthorized("Token invalide : 'sub' mal formé")

    user = await db.get(User, user_id)
    if not user:
        logger.warning(f"❌ Utilisateur introuvable : id={user_id}")
        raise _unauthorized("Utilisateur non trouvé")

    if user.status in (UserStatus.SUSPENDED.value, UserStatus.INACTIVE.value):
        logger.warning(f"⛔ Compte {user.status} : id={user.id}")
        raise _unauthorized("Compte suspendu ou inactif")

    logger.debug(f"✅ Utilisateur authentifié : id={user.id}, role={user.role}")
    return user
