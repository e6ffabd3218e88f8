"""
Liberações: сколько разрешено вывезти, сколько уже вывезено, сколько осталось.
quantidade_retirada меняется только сверкой после погрузки и никогда не превышает quantidade.
"""
import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.core.errors import (
    ForbiddenError,
    NotFoundError,
    ReconciliationWarning,
    TransitionError,
    ValidationError,
)
from dispatch.core.locks import release_lock
from dispatch.core.logging_config import get_logger
from dispatch.core.permissions import Actor, Resource, can
from dispatch.models import Release, ReleaseStatus
from dispatch.services import stock_ledger

logger = get_logger(__name__)

ZERO = Decimal("0")
ORDER_REFERENCE = re.compile(r"^PED-\d{4}-\d{4}$")
CANCELLABLE_STATUSES = (ReleaseStatus.PENDING, ReleaseStatus.PARTIAL)


def remaining(release: Release) -> Decimal:
    """Разрешено минус вывезено, не меньше нуля."""
    withdrawn = release.withdrawn_quantity or ZERO
    return max(ZERO, release.authorized_quantity - withdrawn)


def derive_status(authorized: Decimal, withdrawn: Decimal) -> ReleaseStatus:
    if withdrawn <= 0:
        return ReleaseStatus.PENDING
    if withdrawn < authorized:
        return ReleaseStatus.PARTIAL
    return ReleaseStatus.COMPLETED


async def get_release(db: AsyncSession, release_id: int) -> Release:
    r = await db.execute(
        select(Release).where(Release.id == release_id).execution_options(populate_existing=True)
    )
    release = r.scalar_one_or_none()
    if not release:
        raise NotFoundError("Liberação не найдена")
    return release


async def lock_release_row(db: AsyncSession, release_id: int) -> Release:
    """Свежее чтение строки liberação; на PostgreSQL строка блокируется до commit."""
    r = await db.execute(
        select(Release)
        .where(Release.id == release_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    release = r.scalar_one_or_none()
    if not release:
        raise NotFoundError("Liberação не найдена")
    return release


async def _stock_below(db: AsyncSession, product_id: int, warehouse_id: int, quantity: Decimal) -> bool:
    # Проверка рекомендательная: если остаток прочитать не удалось, liberação не блокируется
    try:
        current = await stock_ledger.available(db, product_id, warehouse_id)
    except SQLAlchemyError as e:
        logger.warning("Не удалось проверить остаток (продукт=%s склад=%s): %s", product_id, warehouse_id, e)
        await db.rollback()
        return False
    return current is not None and current < quantity


async def create_release(
    db: AsyncSession,
    client: str,
    product_id: int,
    warehouse_id: int,
    authorized_quantity: Decimal,
    order_reference: str,
    actor: Actor,
    skip_stock_check: bool = False,
) -> Release:
    if not can(actor, Resource.RELEASE_CREATE):
        raise ForbiddenError("Нет прав на выдачу liberação")
    client = (client or "").strip()
    if not client:
        raise ValidationError("Укажите клиента", code="MissingField")
    if authorized_quantity is None or authorized_quantity <= 0:
        raise ValidationError("Количество должно быть больше нуля", code="InvalidQuantity")
    order_reference = (order_reference or "").strip().upper()
    if not ORDER_REFERENCE.match(order_reference):
        raise ValidationError("Номер заказа должен быть в формате PED-AAAA-NNNN", code="InvalidReference")
    if not skip_stock_check and await _stock_below(db, product_id, warehouse_id, authorized_quantity):
        raise ValidationError("Недостаточно продукта на складе", code="InsufficientStock")

    release = Release(
        client=client,
        product_id=product_id,
        warehouse_id=warehouse_id,
        authorized_quantity=authorized_quantity,
        withdrawn_quantity=ZERO,
        order_reference=order_reference,
        status=ReleaseStatus.PENDING,
        created_by=actor.id,
    )
    db.add(release)
    await db.flush()
    await db.refresh(release)
    logger.info(
        "Создана liberação id=%s pedido=%s клиент=%s количество=%s",
        release.id, release.order_reference, release.client, release.authorized_quantity,
    )
    return release


async def cancel_release(db: AsyncSession, release_id: int, actor: Actor) -> Release:
    async with release_lock(release_id):
        release = await lock_release_row(db, release_id)
        if release.status not in CANCELLABLE_STATUSES:
            raise TransitionError(
                f"Нельзя отменить liberação со статусом {release.status.value}",
                current=release.status.value,
                target=ReleaseStatus.CANCELLED.value,
            )
        if not can(actor, Resource.RELEASE_CANCEL):
            raise ForbiddenError("Отменять liberação может только администратор или логистика")
        release.status = ReleaseStatus.CANCELLED
        release.cancelled_at = datetime.utcnow()
        release.cancelled_by = actor.id
        db.add(release)
        await db.commit()
    logger.info("Liberação id=%s отменена (%s)", release.id, actor.id)
    return release


def apply_withdrawal(
    release: Release, quantity: Decimal, loading_id: Optional[int] = None
) -> Optional[ReconciliationWarning]:
    """
    Увеличить вывезенное без commit. Сверх разрешённого не записывается:
    излишек обрезается и возвращается предупреждение OverWithdrawal.
    """
    withdrawn = release.withdrawn_quantity or ZERO
    target = withdrawn + quantity
    warning = None
    if target > release.authorized_quantity:
        warning = ReconciliationWarning(
            code="OverWithdrawal",
            loading_id=loading_id,
            message=(
                f"Liberação {release.id}: вывезено бы {target} при разрешённых "
                f"{release.authorized_quantity}, записано {release.authorized_quantity}"
            ),
        )
        logger.warning(warning.message)
        target = release.authorized_quantity
    release.withdrawn_quantity = target
    # Отменённая liberação остаётся отменённой, но вывезенное всё равно учитывается
    if release.status != ReleaseStatus.CANCELLED:
        release.status = derive_status(release.authorized_quantity, target)
    return warning


async def record_withdrawal(
    db: AsyncSession, release_id: int, quantity: Decimal
) -> Tuple[Release, Optional[ReconciliationWarning]]:
    async with release_lock(release_id):
        release = await lock_release_row(db, release_id)
        warning = apply_withdrawal(release, quantity)
        db.add(release)
        await db.commit()
    logger.info("Liberação id=%s: вывезено %s (статус %s)", release.id, release.withdrawn_quantity, release.status.value)
    return release, warning


async def list_releases(
    db: AsyncSession,
    status: Optional[ReleaseStatus] = None,
    client: Optional[str] = None,
    limit: int = 100,
) -> List[Release]:
    q = select(Release).order_by(Release.created_at.desc()).limit(limit)
    if status is not None:
        q = q.where(Release.status == status)
    if client:
        q = q.where(Release.client == client)
    r = await db.execute(q)
    return list(r.scalars().all())
