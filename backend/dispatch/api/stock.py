"""Остатки продуктов по складам: просмотр, приход, корректировка."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.api.auth import RequireAnyAuth
from dispatch.core.database import get_db
from dispatch.core.permissions import Actor
from dispatch.models import StockBalance
from dispatch.schemas.stock import AddStockBody, SetStockBody, StockBalanceResponse
from dispatch.services import stock_ledger

router = APIRouter(prefix="/stock", tags=["stock"])


def _balance_to_response(b: StockBalance) -> StockBalanceResponse:
    return StockBalanceResponse(
        product_id=b.product_id,
        warehouse_id=b.warehouse_id,
        current_quantity=b.current_quantity,
        low=stock_ledger.is_low(b),
        updated_by=b.updated_by,
        updated_at=b.updated_at,
    )


@router.get("", response_model=list[StockBalanceResponse])
async def list_stock(
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    """Остатки; low=true, если остаток не выше LOW_STOCK_THRESHOLD."""
    balances = await stock_ledger.list_balances(db, product_id=product_id, warehouse_id=warehouse_id)
    return [_balance_to_response(b) for b in balances]


@router.post("/add", response_model=StockBalanceResponse)
async def add_stock(
    body: AddStockBody,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    balance = await stock_ledger.replenish(db, body.product_id, body.warehouse_id, body.amount, actor)
    return _balance_to_response(balance)


@router.post("/set", response_model=StockBalanceResponse)
async def set_stock(
    body: SetStockBody,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    balance = await stock_ledger.set_balance(db, body.product_id, body.warehouse_id, body.quantity, actor)
    return _balance_to_response(balance)
