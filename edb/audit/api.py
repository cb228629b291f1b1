from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from edb.audit import schemas
from edb.audit.services import list_events
from edb.auth.models import User
from edb.auth.permissions import require_admin
from edb.db.session import get_db

router = APIRouter(tags=["audit"])


@router.get("", response_model=List[schemas.AuditLogOut])
async def get_audit_logs(
    user_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_events(db, user_id=user_id, action=action, limit=limit)
