import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth.dependencies import get_current_user
from edb.auth.models import User
from edb.auth.permissions import require_admin
from edb.auth.schemas import MessageResponse
from edb.db.session import get_db
from edb.payments import schemas
from edb.payments.models import PaymentMethod, PaymentStatus
from edb.payments.services import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.post("/initiate", response_model=schemas.InitiateResponse)
async def initiate_payment(
    data: schemas.PaymentInitiate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService(db).initiate(current_user, data.subscription_id, data.amount, data.method)


# 🔔 Webhook public appelé par les prestataires
@router.post("/callback/{provider}")
async def payment_callback(provider: str, payload: schemas.CallbackPayload, db: AsyncSession = Depends(get_db)):
    logger.info(f"Callback reçu de {provider} : {payload.model_dump()}")
    return await PaymentService(db).handle_callback(
        provider,
        payload.payment_id,
        payload.provider_reference,
        payload.status,
        payload.message,
    )


@router.get("", response_model=List[schemas.PaymentOut])
async def list_payments(
    user_id: Optional[int] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    method: Optional[PaymentMethod] = Query(None),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService(db).find_all(
        user_id=user_id,
        status=payment_status.value if payment_status else None,
        method=method.value if method else None,
    )


@router.get("/my-payments", response_model=List[schemas.PaymentOut])
async def get_my_payments(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await PaymentService(db).find_all(user_id=current_user.id)


@router.get("/stats", response_model=schemas.PaymentStats)
async def get_payment_stats(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await PaymentService(db).get_stats()


@router.post("/manual", response_model=schemas.PaymentOut, status_code=status.HTTP_201_CREATED)
async def create_manual_payment(
    data: schemas.ManualPaymentCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService(db).create_manual(data, current_user)


@router.get("/{payment_id}", response_model=schemas.PaymentOut)
async def get_payment(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService(db).find_one(payment_id, current_user)


@router.post("/{payment_id}/verify")
async def verify_payment(payment_id: int, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await PaymentService(db).verify(payment_id)


@router.put("/{payment_id}", response_model=schemas.PaymentOut)
async def update_payment(
    payment_id: int,
    data: schemas.PaymentUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService(db).update(payment_id, data, current_user)


@router.put("/{payment_id}/status", response_model=schemas.PaymentOut)
async def update_payment_status(
    payment_id: int,
    data: schemas.PaymentStatusUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService(db).update_status(payment_id, data.status, current_user, data.failure_reason)


@router.delete("/{payment_id}", response_model=MessageResponse)
async def delete_payment(payment_id: int, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await PaymentService(db).delete(payment_id)
