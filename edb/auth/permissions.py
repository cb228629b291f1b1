from fastapi import Depends

from edb.auth.dependencies import get_current_user
from edb.auth.models import User, UserRole
from edb.exceptions import ForbiddenError


def require_roles(*roles: UserRole):
    allowed = {role.value for role in roles}

    def wrapper(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise ForbiddenError("Accès interdit (rôle requis)")
        return user
    return wrapper


require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(UserRole.ADMIN, UserRole.COACH)
require_coach = require_roles(UserRole.COACH)


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN.value
