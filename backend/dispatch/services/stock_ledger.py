"""
Остатки по складам. Баланс никогда не уходит в минус: при погрузке больше остатка
списывается только то, что есть (нехватка не блокирует уже состоявшуюся погрузку).
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.config import settings
from dispatch.core.errors import ForbiddenError, ValidationError
from dispatch.core.locks import stock_lock
from dispatch.core.logging_config import get_logger
from dispatch.core.permissions import Actor, Resource, can
from dispatch.models import StockBalance

logger = get_logger(__name__)

ZERO = Decimal("0")


async def get_balance(db: AsyncSession, product_id: int, warehouse_id: int) -> Optional[StockBalance]:
    r = await db.execute(
        select(StockBalance)
        .where(StockBalance.product_id == product_id, StockBalance.warehouse_id == warehouse_id)
        .execution_options(populate_existing=True)
    )
    return r.scalar_one_or_none()


async def _get_or_create_balance(db: AsyncSession, product_id: int, warehouse_id: int) -> StockBalance:
    row = await get_balance(db, product_id, warehouse_id)
    if not row:
        row = StockBalance(product_id=product_id, warehouse_id=warehouse_id, current_quantity=ZERO)
        db.add(row)
        await db.flush()
    return row


async def available(db: AsyncSession, product_id: int, warehouse_id: int) -> Optional[Decimal]:
    """Текущий остаток пары или None, если по паре остаток ещё не заводили."""
    row = await get_balance(db, product_id, warehouse_id)
    return row.current_quantity if row else None


async def decrement(
    db: AsyncSession,
    product_id: int,
    warehouse_id: int,
    quantity: Decimal,
    updated_by: Optional[str] = None,
) -> StockBalance:
    """
    Списание без commit (вызывающий держит stock_lock и фиксирует вместе со своей записью).
    Пишет max(0, остаток − quantity).
    """
    row = await _get_or_create_balance(db, product_id, warehouse_id)
    current = row.current_quantity or ZERO
    if quantity > current:
        logger.warning(
            "Нехватка на складе: продукт=%s склад=%s остаток=%s списание=%s, остаток обнулён",
            product_id, warehouse_id, current, quantity,
        )
    row.current_quantity = max(ZERO, current - quantity)
    row.updated_by = updated_by
    db.add(row)
    await db.flush()
    return row


def _check_access(actor: Actor) -> None:
    if not can(actor, Resource.STOCK_MANAGE):
        raise ForbiddenError("Нет прав на изменение остатков")


async def replenish(
    db: AsyncSession, product_id: int, warehouse_id: int, amount: Decimal, actor: Actor
) -> StockBalance:
    """Приход на склад."""
    _check_access(actor)
    if amount <= 0:
        raise ValidationError("Количество должно быть больше нуля", code="InvalidQuantity")
    async with stock_lock(product_id, warehouse_id):
        row = await _get_or_create_balance(db, product_id, warehouse_id)
        row.current_quantity = (row.current_quantity or ZERO) + amount
        row.updated_by = actor.id
        db.add(row)
        await db.commit()
    logger.info("Приход: продукт=%s склад=%s +%s, остаток=%s", product_id, warehouse_id, amount, row.current_quantity)
    return row


async def set_balance(
    db: AsyncSession, product_id: int, warehouse_id: int, quantity: Decimal, actor: Actor
) -> StockBalance:
    """Корректировка остатка по инвентаризации."""
    _check_access(actor)
    if quantity < 0:
        raise ValidationError("Остаток не может быть отрицательным", code="InvalidQuantity")
    async with stock_lock(product_id, warehouse_id):
        row = await _get_or_create_balance(db, product_id, warehouse_id)
        row.current_quantity = quantity
        row.updated_by = actor.id
        db.add(row)
        await db.commit()
    logger.info("Корректировка остатка: продукт=%s склад=%s остаток=%s", product_id, warehouse_id, quantity)
    return row


def is_low(balance: StockBalance) -> bool:
    return (balance.current_quantity or ZERO) <= settings.low_stock_threshold


async def list_balances(
    db: AsyncSession,
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
) -> List[StockBalance]:
    q = select(StockBalance).order_by(StockBalance.product_id, StockBalance.warehouse_id)
    if product_id is not None:
        q = q.where(StockBalance.product_id == product_id)
    if warehouse_id is not None:
        q = q.where(StockBalance.warehouse_id == warehouse_id)
    r = await db.execute(q)
    return list(r.scalars().all())
