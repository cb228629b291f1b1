import logging
import uuid
from pathlib import Path
from typing import List, Optional

import aiofiles
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth.dependencies import get_current_user
from edb.auth.models import User, UserRole, UserStatus
from edb.auth.permissions import require_admin, require_staff, require_coach, is_admin
from edb.auth.schemas import UserOut, MessageResponse
from edb.config import settings
from edb.db.session import get_db
from edb.exceptions import ForbiddenError
from edb.users import schemas
from edb.users.services import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
PROFILE_IMAGE_DIR = "profileImage"


def validate_image_file(file: UploadFile) -> None:
    """Valide le fichier image uploadé"""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Nom de fichier manquant")

    ext = file.filename.rsplit('.', 1)[-1].lower() if '.' in file.filename else ''
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Extension non autorisée. Extensions autorisées: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    if not file.content_type or not file.content_type.startswith('image/'):
        raise HTTPException(status_code=400, detail="Le fichier doit être une image")


def _create_safe_filename(user_id: int, prefix: str, extension: str) -> str:
    """Crée un nom de fichier sécurisé"""
    return f"{prefix}_{user_id}_{uuid.uuid4().hex[:8]}.{extension}"


def _remove_local_avatar(url: Optional[str]) -> None:
    if not url or not url.startswith(f"/static/upload/{PROFILE_IMAGE_DIR}/"):
        return
    filepath = Path(settings.UPLOAD_PATH) / PROFILE_IMAGE_DIR / url.rsplit('/', 1)[-1]
    try:
        filepath.unlink(missing_ok=True)
        logger.info(f"Ancien avatar supprimé: {filepath}")
    except OSError as e:
        logger.warning(f"Erreur lors de la suppression de l'ancien avatar: {e}")


# 📋 Liste des utilisateurs
@router.get("", response_model=List[schemas.UserDetail])
async def list_users(
    role: Optional[UserRole] = Query(None),
    user_status: Optional[UserStatus] = Query(None, alias="status"),
    _: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).find_all(
        role=role.value if role else None,
        status=user_status.value if user_status else None,
    )


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: schemas.UserCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).create(data, actor=current_user)


@router.get("/coaches", response_model=List[UserOut])
async def get_coaches(_: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await UserService(db).get_coaches()


@router.get("/my-students", response_model=List[schemas.UserDetail])
async def get_my_students(current_user: User = Depends(require_coach), db: AsyncSession = Depends(get_db)):
    return await UserService(db).get_my_students(current_user)


# 👤 Profil de l'utilisateur connecté
@router.get("/me", response_model=UserOut)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserOut)
async def update_me(
    data: schemas.ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updates = schemas.UserUpdate(**data.model_dump(exclude_unset=True))
    return await UserService(db).update(current_user.id, updates, actor=current_user)


@router.put("/me/password", response_model=MessageResponse)
async def change_password(
    data: schemas.PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).change_password(current_user, data.current_password, data.new_password)


@router.put("/me/notifications", response_model=UserOut)
async def update_notification_settings(
    data: schemas.NotificationSettings,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).update_notification_settings(
        current_user, email=data.email_notifications, sms=data.sms_notifications
    )


# 📸 Changer l'avatar
@router.post("/me/avatar")
async def change_avatar(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Changer la photo de profil de l'utilisateur connecté"""
    validate_image_file(file)
    content = await file.read()

    if len(content) > settings.MAX_FILE_SIZE:
        raise HTTPException(status_code=413, detail="Fichier trop volumineux")

    upload_dir = Path(settings.UPLOAD_PATH) / PROFILE_IMAGE_DIR
    upload_dir.mkdir(parents=True, exist_ok=True)

    ext = file.filename.rsplit('.', 1)[-1].lower()
    filename = _create_safe_filename(current_user.id, "avatar", ext)
    filepath = upload_dir / filename

    async with aiofiles.open(filepath, "wb") as f:
        await f.write(content)

    old_avatar = current_user.avatar
    url = f"/static/upload/{PROFILE_IMAGE_DIR}/{filename}"
    user = await UserService(db).update_avatar(current_user, url)
    _remove_local_avatar(old_avatar)

    logger.info(f"Avatar mis à jour : user_id={user.id}, fichier={filepath}")
    return {
        "message": "Avatar mis à jour avec succès ✅",
        "avatar": url,
        "user": UserOut.model_validate(user),
    }


@router.get("/me/stats")
async def get_my_stats(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await UserService(db).get_user_stats(current_user.id)


# 🔍 Gestion d'un utilisateur
@router.get("/{user_id}", response_model=schemas.UserDetail)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not is_admin(current_user) and current_user.role != UserRole.COACH.value and current_user.id != user_id:
        raise ForbiddenError()
    return await UserService(db).find_one(user_id)


@router.get("/{user_id}/stats")
async def get_user_stats(user_id: int, _: User = Depends(require_staff), db: AsyncSession = Depends(get_db)):
    return await UserService(db).get_user_stats(user_id)


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: int,
    data: schemas.UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).update(user_id, data, actor=current_user)


@router.put("/{user_id}/status", response_model=UserOut)
async def update_user_status(
    user_id: int,
    data: schemas.StatusUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).update_status(user_id, data.status, actor=current_user)


@router.put("/{user_id}/notes", response_model=schemas.UserDetail)
async def update_user_notes(
    user_id: int,
    data: schemas.NotesUpdate,
    _: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).update_notes(user_id, data.notes)


@router.post("/{user_id}/attendance")
async def record_attendance(
    user_id: int,
    data: schemas.AttendanceRecord,
    _: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).record_attendance(user_id, data.present, data.cohort_id)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await UserService(db).delete(user_id, actor=current_user)
