import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth.dependencies import get_current_user
from edb.auth.models import User
from edb.auth.permissions import require_admin, require_staff
from edb.auth.schemas import MessageResponse
from edb.cohorts import schemas
from edb.cohorts.models import CohortStatus, FormationType
from edb.cohorts.services import CohortService
from edb.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cohorts"])


# ===============================
# COHORTES
# ===============================
@router.post("", response_model=schemas.CohortOut, status_code=status.HTTP_201_CREATED)
async def create_cohort(
    data: schemas.CohortCreate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CohortService(db).create(data)


@router.get("", response_model=List[schemas.CohortOut])
async def list_cohorts(
    cohort_status: Optional[CohortStatus] = Query(None, alias="status"),
    type: Optional[FormationType] = Query(None),
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CohortService(db).find_all(
        status=cohort_status.value if cohort_status else None,
        type=type.value if type else None,
    )


@router.get("/my-cohorts", response_model=List[schemas.CohortOut])
async def get_my_cohorts(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await CohortService(db).find_for_user(current_user)


@router.get("/stats", response_model=schemas.CohortStats)
async def get_cohort_stats(_: User = Depends(require_staff), db: AsyncSession = Depends(get_db)):
    return await CohortService(db).get_stats()


@router.get("/{cohort_id}", response_model=schemas.CohortDetail)
async def get_cohort(cohort_id: int, _: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await CohortService(db).find_one(cohort_id)


@router.put("/{cohort_id}", response_model=schemas.CohortOut)
async def update_cohort(
    cohort_id: int,
    data: schemas.CohortUpdate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CohortService(db).update(cohort_id, data)


@router.delete("/{cohort_id}", response_model=MessageResponse)
async def delete_cohort(cohort_id: int, _: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await CohortService(db).delete(cohort_id)


# ===============================
# MEMBRES
# ===============================
@router.post("/{cohort_id}/members", response_model=schemas.CohortMemberOut, status_code=status.HTTP_201_CREATED)
async def add_member(
    cohort_id: int,
    data: schemas.MemberAdd,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CohortService(db).add_member(cohort_id, data.user_id)


@router.delete("/{cohort_id}/members/{user_id}", response_model=MessageResponse)
async def remove_member(
    cohort_id: int,
    user_id: int,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CohortService(db).remove_member(cohort_id, user_id)


@router.put("/{cohort_id}/members/{user_id}/progress", response_model=schemas.CohortMemberOut)
async def update_member_progress(
    cohort_id: int,
    user_id: int,
    data: schemas.ProgressUpdate,
    _: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await CohortService(db).update_member_progress(cohort_id, user_id, data.progress)
