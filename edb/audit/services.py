import json
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edb.audit.models import AuditLog

logger = logging.getLogger(__name__)


def record_event(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    action: str,
    entity: str,
    entity_id: Any = None,
    changes: Optional[dict] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Ajoute une entrée au journal d'audit.

    N'effectue pas de commit : l'entrée part avec la transaction de
    l'opération qu'elle décrit.
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        changes=json.dumps(changes, sort_keys=True, default=str) if changes else None,
        ip_address=ip_address,
    )
    db.add(entry)
    logger.debug(f"Audit {action} {entity}#{entity_id} par user_id={user_id}")
    return entry


async def list_events(
    db: AsyncSession,
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = select(AuditLog)
    if user_id:
        query = query.where(AuditLog.user_id == user_id)
    if action:
        query = query.where(AuditLog.action == action)
    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())
