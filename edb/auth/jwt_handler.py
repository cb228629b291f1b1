import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from jose import jwt, JWTError

from edb.config import settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _build_claims(user, token_type: str, expire: datetime) -> dict:
    return {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "exp": expire,
    }


def create_access_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """
    Crée un token d'accès JWT signé pour l'utilisateur.

    :param user: Utilisateur (id, email, role)
    :param expires_delta: Durée de validité du token (timedelta)
    :return: Token JWT encodé
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    token = jwt.encode(_build_claims(user, ACCESS_TOKEN_TYPE, expire), settings.JWT_SECRET, algorithm=settings.ALGORITHM)
    logger.info(f"✅ Token d'accès généré pour user_id={user.id}, expire à {expire}")
    return token


def create_refresh_token(user, expires_delta: Optional[timedelta] = None) -> tuple[str, datetime]:
    """
    Crée un refresh token signé avec le secret dédié.

    Le ``jti`` aléatoire garantit qu'une rotation dans la même seconde
    produit tout de même un token différent.

    :return: (token, date d'expiration UTC naïve)
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))
    token = jwt.encode(
        _build_claims(user, REFRESH_TOKEN_TYPE, expire),
        settings.JWT_REFRESH_SECRET,
        algorithm=settings.ALGORITHM,
    )
    return token, expire.replace(tzinfo=None)


def _decode(token: str, secret: str, expected_type: str) -> Optional[dict]:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"❌ Échec de décodage du token : {e}")
        return None

    if not payload.get("sub"):
        logger.warning("⚠️ Token valide mais champ 'sub' manquant dans le payload.")
        return None

    if payload.get("type") != expected_type:
        logger.warning(f"⚠️ Type de token inattendu : {payload.get('type')} (attendu : {expected_type})")
        return None

    return payload


def decode_access_token(token: str) -> Optional[dict]:
    """Retourne le payload si le token d'accès est valide, sinon None."""
    return _decode(token, settings.JWT_SECRET, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Optional[dict]:
    """Retourne le payload si le refresh token est valide, sinon None."""
    return _decode(token, settings.JWT_REFRESH_SECRET, REFRESH_TOKEN_TYPE)
