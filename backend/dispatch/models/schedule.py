"""Agendamento: резерв части liberação под конкретный вывоз (дата, водитель, машина)."""
import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Enum, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from dispatch.core.database import Base


class ScheduleStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Записи в этих статусах держат резерв по liberação
ACTIVE_SCHEDULE_STATUSES = (ScheduleStatus.CONFIRMED, ScheduleStatus.PENDING)


class Schedule(Base):
    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    release_id: Mapped[int] = mapped_column(ForeignKey("releases.id"), nullable=False, index=True)
    pickup_at: Mapped[datetime] = mapped_column("data_hora", DateTime, nullable=False)
    requested_quantity: Mapped[Decimal] = mapped_column("quantidade", Numeric(12, 3), nullable=False)
    driver_name: Mapped[str] = mapped_column("motorista_nome", String(255), nullable=False)
    driver_document: Mapped[str] = mapped_column("motorista_documento", String(11), nullable=False)
    vehicle_plate: Mapped[str] = mapped_column("placa", String(8), nullable=False)
    vehicle_type: Mapped[Optional[str]] = mapped_column("tipo_veiculo", String(64), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column("observacoes", Text, nullable=True)
    status: Mapped[ScheduleStatus] = mapped_column(
        Enum(ScheduleStatus), default=ScheduleStatus.CONFIRMED, nullable=False
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
