import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Enum, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from dispatch.core.database import Base


class ReleaseStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Release(Base):
    """Liberação: разрешение клиенту вывезти quantidade продукта со склада по заказу (pedido)."""
    __tablename__ = "releases"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client: Mapped[str] = mapped_column(String(255), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id"), nullable=False)
    authorized_quantity: Mapped[Decimal] = mapped_column("quantidade", Numeric(12, 3), nullable=False)
    withdrawn_quantity: Mapped[Decimal] = mapped_column(
        "quantidade_retirada", Numeric(12, 3), default=Decimal("0"), nullable=False
    )
    order_reference: Mapped[str] = mapped_column("pedido", String(32), nullable=False, index=True)
    status: Mapped[ReleaseStatus] = mapped_column(
        Enum(ReleaseStatus), default=ReleaseStatus.PENDING, nullable=False
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
