"""Сводка для главной страницы."""
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.config import settings
from dispatch.models import (
    ACTIVE_SCHEDULE_STATUSES,
    Loading,
    LoadingStatus,
    Release,
    ReleaseStatus,
    Schedule,
    StockBalance,
)
from dispatch.schemas.dashboard import DashboardSummary
from dispatch.services.reconciliation import pending_reconciliation_ids


async def _count(db: AsyncSession, q) -> int:
    return int((await db.execute(q)).scalar_one() or 0)


async def get_summary(db: AsyncSession, today: Optional[date] = None) -> DashboardSummary:
    today = today or date.today()
    day_start = datetime.combine(today, time.min)
    day_end = datetime.combine(today, time.max)

    products_in_stock = await _count(
        db,
        select(func.count(func.distinct(StockBalance.product_id))).where(StockBalance.current_quantity > 0),
    )
    active_releases = await _count(
        db,
        select(func.count(Release.id)).where(
            Release.status.in_([ReleaseStatus.PENDING, ReleaseStatus.PARTIAL])
        ),
    )
    schedules_today = await _count(
        db,
        select(func.count(Schedule.id)).where(
            Schedule.pickup_at >= day_start,
            Schedule.pickup_at <= day_end,
            Schedule.status.in_(ACTIVE_SCHEDULE_STATUSES),
        ),
    )
    completed_loadings = await _count(
        db, select(func.count(Loading.id)).where(Loading.status == LoadingStatus.COMPLETED)
    )
    low_stock = await _count(
        db,
        select(func.count(StockBalance.id)).where(
            StockBalance.current_quantity <= settings.low_stock_threshold
        ),
    )
    pending = await pending_reconciliation_ids(db)
    return DashboardSummary(
        products_in_stock=products_in_stock,
        active_releases=active_releases,
        schedules_today=schedules_today,
        completed_loadings=completed_loadings,
        low_stock_balances=low_stock,
        pending_reconciliations=len(pending),
    )
