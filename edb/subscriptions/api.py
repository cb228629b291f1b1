import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth.dependencies import get_current_user
from edb.auth.models import User
from edb.auth.permissions import require_admin, is_admin
from edb.auth.schemas import MessageResponse
from edb.db.session import get_db
from edb.exceptions import ForbiddenError
from edb.subscriptions import schemas
from edb.subscriptions.models import Subscription, SubscriptionStatus
from edb.subscriptions.services import PlanService, SubscriptionService

logger = logging.getLogger(__name__)

plans_router = APIRouter(tags=["subscription-plans"])
router = APIRouter(tags=["subscriptions"])


def _check_owner(subscription: Subscription, user: User):
    if not is_admin(user) and subscription.user_id != user.id:
        raise ForbiddenError("Cet abonnement ne vous appartient pas")


# ===============================
# PLANS D'ABONNEMENT
# ===============================
@plans_router.get("", response_model=List[schemas.PlanOut])
async def list_plans(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await PlanService(db).find_all(include_inactive=is_admin(current_user))


@plans_router.get("/stats", response_model=schemas.PlanStats)
async def get_plan_stats(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await PlanService(db).get_stats()


@plans_router.get("/{plan_id}", response_model=schemas.PlanOut)
async def get_plan(plan_id: int, _: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await PlanService(db).find_one(plan_id)


@plans_router.post("", response_model=schemas.PlanOut, status_code=status.HTTP_201_CREATED)
async def create_plan(data: schemas.PlanCreate, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await PlanService(db).create(data)


@plans_router.put("/{plan_id}", response_model=schemas.PlanOut)
async def update_plan(
    plan_id: int,
    data: schemas.PlanUpdate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await PlanService(db).update(plan_id, data)


@plans_router.delete("/{plan_id}", response_model=MessageResponse)
async def delete_plan(plan_id: int, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await PlanService(db).delete(plan_id)


@plans_router.patch("/{plan_id}/toggle-active", response_model=schemas.PlanOut)
async def toggle_plan(plan_id: int, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await PlanService(db).toggle_active(plan_id)


# ===============================
# ABONNEMENTS
# ===============================
@router.post("", response_model=schemas.SubscriptionOut, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    data: schemas.SubscriptionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    admin = is_admin(current_user)
    user_id = data.user_id if admin and data.user_id else current_user.id

    return await SubscriptionService(db).create(
        user_id,
        type=data.type,
        price=data.price,
        admin=admin,
        plan_id=data.plan_id,
        auto_renew=data.auto_renew,
    )


@router.get("", response_model=List[schemas.SubscriptionOut])
async def list_subscriptions(
    user_id: Optional[int] = Query(None),
    subscription_status: Optional[SubscriptionStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not is_admin(current_user):
        user_id = current_user.id
    return await SubscriptionService(db).find_all(
        user_id=user_id,
        status=subscription_status.value if subscription_status else None,
    )


@router.get("/my-subscriptions", response_model=List[schemas.SubscriptionOut])
async def get_my_subscriptions(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await SubscriptionService(db).find_all(user_id=current_user.id)


@router.get("/statistics", response_model=schemas.SubscriptionStats)
async def get_statistics(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await SubscriptionService(db).get_statistics()


@router.get("/expiring", response_model=List[schemas.SubscriptionOut])
async def get_expiring(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await SubscriptionService(db).check_expiring()


@router.post("/auto-renew", response_model=List[schemas.SubscriptionOut])
async def auto_renew(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await SubscriptionService(db).auto_renew_subscriptions()


@router.get("/{subscription_id}", response_model=schemas.SubscriptionOut)
async def get_subscription(
    subscription_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    subscription = await SubscriptionService(db).find_one(subscription_id)
    _check_owner(subscription, current_user)
    return subscription


@router.put("/{subscription_id}", response_model=schemas.SubscriptionOut)
async def update_subscription(
    subscription_id: int,
    data: schemas.SubscriptionUpdate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await SubscriptionService(db).update(subscription_id, status=data.status, auto_renew=data.auto_renew)


@router.put("/{subscription_id}/cancel", response_model=schemas.SubscriptionOut)
async def cancel_subscription(
    subscription_id: int,
    data: Optional[schemas.CancelRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = SubscriptionService(db)
    _check_owner(await service.find_one(subscription_id), current_user)
    return await service.cancel(subscription_id, data.reason if data else None)


@router.put("/{subscription_id}/activate", response_model=schemas.SubscriptionOut)
async def activate_subscription(subscription_id: int, _: User = Depends(require_admin),
                                db: AsyncSession = Depends(get_db)):
    return await SubscriptionService(db).activate(subscription_id)


@router.put("/{subscription_id}/renew", response_model=schemas.SubscriptionOut)
async def renew_subscription(
    subscription_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = SubscriptionService(db)
    _check_owner(await service.find_one(subscription_id), current_user)
    return await service.renew(subscription_id, admin=is_admin(current_user))


@router.delete("/{subscription_id}", response_model=MessageResponse)
async def delete_subscription(subscription_id: int, _: User = Depends(require_admin),
                              db: AsyncSession = Depends(get_db)):
    return await SubscriptionService(db).delete(subscription_id)
