from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class StockBalanceResponse(BaseModel):
    product_id: int
    warehouse_id: int
    current_quantity: Decimal
    low: bool
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class AddStockBody(BaseModel):
    product_id: int
    warehouse_id: int
    amount: Decimal


class SetStockBody(BaseModel):
    product_id: int
    warehouse_id: int
    quantity: Decimal
