"""
Сверка после завершения погрузки: вывезенное по liberação и списание со склада.
Две части независимы, выполняются обе; сбой любой из них не откатывает статус погрузки,
а возвращается предупреждением. Отметки release_reconciled_at / stock_reconciled_at
делают повторный запуск безопасным: уже применённая часть не повторяется.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.core.errors import (
    DispatchError,
    ForbiddenError,
    NotFoundError,
    ReconciliationWarning,
    TransitionError,
)
from dispatch.core.locks import release_lock, stock_lock
from dispatch.core.logging_config import get_logger
from dispatch.core.permissions import Actor, Resource, can
from dispatch.models import ACTIVE_SCHEDULE_STATUSES, Loading, LoadingStatus, Schedule, ScheduleStatus
from dispatch.services import stock_ledger
from dispatch.services.release_ledger import apply_withdrawal, lock_release_row

logger = get_logger(__name__)


async def _fresh_loading(db: AsyncSession, loading_id: int) -> Loading:
    r = await db.execute(
        select(Loading).where(Loading.id == loading_id).execution_options(populate_existing=True)
    )
    loading = r.scalar_one_or_none()
    if not loading:
        raise NotFoundError("Погрузка не найдена")
    return loading


async def _reconcile_release(db: AsyncSession, loading_id: int) -> Optional[ReconciliationWarning]:
    loading = await _fresh_loading(db, loading_id)
    async with release_lock(loading.release_id):
        loading = await _fresh_loading(db, loading_id)
        if loading.release_reconciled_at is not None:
            return None
        release = await lock_release_row(db, loading.release_id)
        warning = apply_withdrawal(release, loading.planned_quantity, loading.id)
        if loading.schedule_id is not None:
            schedule = await db.get(Schedule, loading.schedule_id, populate_existing=True)
            if schedule is not None and schedule.status in ACTIVE_SCHEDULE_STATUSES:
                schedule.status = ScheduleStatus.COMPLETED
                schedule.updated_by = loading.updated_by
                db.add(schedule)
        loading.release_reconciled_at = datetime.utcnow()
        db.add(release)
        db.add(loading)
        await db.commit()
    logger.info(
        "Сверка liberação id=%s по погрузке id=%s: вывезено %s",
        release.id, loading_id, release.withdrawn_quantity,
    )
    return warning


async def _reconcile_stock(db: AsyncSession, loading_id: int) -> None:
    loading = await _fresh_loading(db, loading_id)
    async with stock_lock(loading.product_id, loading.warehouse_id):
        loading = await _fresh_loading(db, loading_id)
        if loading.stock_reconciled_at is not None:
            return
        balance = await stock_ledger.decrement(
            db, loading.product_id, loading.warehouse_id, loading.planned_quantity, loading.updated_by
        )
        loading.stock_reconciled_at = datetime.utcnow()
        db.add(loading)
        await db.commit()
    logger.info(
        "Списание со склада по погрузке id=%s: продукт=%s склад=%s остаток=%s",
        loading_id, balance.product_id, balance.warehouse_id, balance.current_quantity,
    )


async def reconcile_loading(db: AsyncSession, loading_id: int) -> List[ReconciliationWarning]:
    """Применить недостающие части сверки. Повторный вызов ничего не меняет."""
    loading = await _fresh_loading(db, loading_id)
    if loading.status != LoadingStatus.COMPLETED:
        raise TransitionError(
            "Сверка возможна только для завершённой погрузки",
            current=loading.status.value,
        )
    warnings: List[ReconciliationWarning] = []
    try:
        warning = await _reconcile_release(db, loading_id)
        if warning:
            warnings.append(warning)
    except (SQLAlchemyError, DispatchError) as e:
        await db.rollback()
        logger.exception("Сверка liberação по погрузке id=%s не выполнена: %s", loading_id, e)
        warnings.append(ReconciliationWarning(
            code="ReleaseUpdateFailed",
            loading_id=loading_id,
            message=f"Не удалось обновить liberação: {e}",
        ))
    try:
        await _reconcile_stock(db, loading_id)
    except (SQLAlchemyError, DispatchError) as e:
        await db.rollback()
        logger.exception("Списание со склада по погрузке id=%s не выполнено: %s", loading_id, e)
        warnings.append(ReconciliationWarning(
            code="StockUpdateFailed",
            loading_id=loading_id,
            message=f"Не удалось списать со склада: {e}",
        ))
    for w in warnings:
        logger.warning("Сверка погрузки id=%s: %s (%s)", loading_id, w.code, w.message)
    return warnings


async def repair_loading(db: AsyncSession, loading_id: int, actor: Actor) -> List[ReconciliationWarning]:
    if not can(actor, Resource.RECONCILIATION):
        raise ForbiddenError("Нет прав на повторную сверку")
    return await reconcile_loading(db, loading_id)


def _is_failure(warning: ReconciliationWarning) -> bool:
    return warning.code in ("ReleaseUpdateFailed", "StockUpdateFailed")


async def pending_reconciliation_ids(db: AsyncSession) -> List[int]:
    r = await db.execute(
        select(Loading.id)
        .where(
            Loading.status == LoadingStatus.COMPLETED,
            or_(Loading.release_reconciled_at.is_(None), Loading.stock_reconciled_at.is_(None)),
        )
        .order_by(Loading.id)
    )
    return list(r.scalars().all())


async def reconcile_pending(
    db: AsyncSession, actor: Actor
) -> Tuple[List[int], List[ReconciliationWarning]]:
    """Повторная сверка всех завершённых погрузок с незавершённой сверкой."""
    if not can(actor, Resource.RECONCILIATION):
        raise ForbiddenError("Нет прав на повторную сверку")
    repaired: List[int] = []
    warnings: List[ReconciliationWarning] = []
    for loading_id in await pending_reconciliation_ids(db):
        result = await reconcile_loading(db, loading_id)
        warnings.extend(result)
        if not any(_is_failure(w) for w in result):
            repaired.append(loading_id)
    if repaired:
        logger.info("Повторная сверка выполнена для погрузок: %s", repaired)
    return repaired, warnings
