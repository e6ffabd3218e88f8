from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class ReleaseCreate(BaseModel):
    client: str
    product_id: int
    warehouse_id: int
    authorized_quantity: Decimal
    order_reference: str
    # True: не сверять с остатком на складе (например, продукт ещё в пути)
    skip_stock_check: bool = False


class ReleaseResponse(BaseModel):
    id: int
    client: str
    product_id: int
    warehouse_id: int
    authorized_quantity: Decimal
    withdrawn_quantity: Decimal
    remaining: Decimal
    available_to_schedule: Optional[Decimal] = None
    order_reference: str
    status: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
