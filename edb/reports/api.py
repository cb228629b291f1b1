import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from edb.auth.permissions import require_admin
from edb.db.session import get_db
from edb.reports.services import ReportService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reports"], dependencies=[Depends(require_admin)])


@router.get("/overview")
async def get_overview(db: AsyncSession = Depends(get_db)):
    return await ReportService(db).get_overview()


@router.get("/users")
async def get_users_report(db: AsyncSession = Depends(get_db)):
    return await ReportService(db).get_users_report()


@router.get("/revenue")
async def get_revenue_report(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
):
    return await ReportService(db).get_revenue_report(start_date, end_date)


@router.get("/cohorts")
async def get_cohorts_report(db: AsyncSession = Depends(get_db)):
    return await ReportService(db).get_cohorts_report()


@router.get("/subscriptions")
async def get_subscriptions_report(db: AsyncSession = Depends(get_db)):
    return await ReportService(db).get_subscriptions_report()


@router.get("/payments")
async def get_payments_report(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
):
    return await ReportService(db).get_payments_report(start_date, end_date)


@router.get("/conversion")
async def get_conversion_report(db: AsyncSession = Depends(get_db)):
    return await ReportService(db).get_conversion_report()


# 📥 Export téléchargeable
@router.get("/export/{report_type}")
async def export_report(
    report_type: str,
    export_format: str = Query("csv", alias="format"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
):
    content, media_type, filename = await ReportService(db).export(
        report_type, export_format.lower(), start_date, end_date
    )
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
