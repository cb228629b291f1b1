import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth import schemas
from edb.auth.dependencies import get_current_user
from edb.auth.models import User
from edb.auth.services import AuthService
from edb.config import settings
from edb.db.session import get_db
from edb.utils.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.post("/register", response_model=schemas.RegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def register(request: Request, data: schemas.UserRegister, db: AsyncSession = Depends(get_db)):
    user = await AuthService(db).register(data, ip_address=_client_ip(request))
    return {"message": "Inscription réussie. Veuillez vérifier votre email.", "user": user}


@router.post("/login", response_model=schemas.LoginResponse)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def login(request: Request, data: schemas.UserLogin, db: AsyncSession = Depends(get_db)):
    return await AuthService(db).login(data.email, data.password, ip_address=_client_ip(request))


@router.post("/refresh", response_model=schemas.TokenPair)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def refresh(request: Request, data: schemas.RefreshRequest, db: AsyncSession = Depends(get_db)):
    return await AuthService(db).refresh_tokens(data.refresh_token)


@router.post("/logout", response_model=schemas.MessageResponse)
async def logout(
    data: schemas.LogoutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AuthService(db).logout(current_user.id, data.refresh_token)


@router.api_route("/me", methods=["GET", "POST"])
async def get_me(current_user: User = Depends(get_current_user)):
    return {"user": schemas.UserOut.model_validate(current_user)}
