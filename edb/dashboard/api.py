from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth.dependencies import get_current_user
from edb.auth.models import User
from edb.dashboard.services import DashboardService
from edb.db.session import get_db

router = APIRouter(tags=["dashboard"])


@router.get("")
async def get_dashboard(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await DashboardService(db).get_dashboard(current_user)
