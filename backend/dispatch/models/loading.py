import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Enum, Numeric, Date, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from dispatch.core.database import Base


class LoadingStatus(str, enum.Enum):
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Погрузки в этих статусах ещё не списаны с liberação
ACTIVE_LOADING_STATUSES = (LoadingStatus.WAITING, LoadingStatus.IN_PROGRESS)


class EvidenceType(str, enum.Enum):
    BEFORE = "before"
    DURING = "during"
    AFTER = "after"
    INVOICE = "invoice"
    SEAL = "seal"


class Loading(Base):
    """Carregamento: физическая погрузка на складе по liberação (опционально по agendamento)."""
    __tablename__ = "loadings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    release_id: Mapped[int] = mapped_column(ForeignKey("releases.id"), nullable=False, index=True)
    schedule_id: Mapped[Optional[int]] = mapped_column(ForeignKey("schedules.id"), nullable=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    warehouse_id: Mapped[int] = mapped_column(ForeignKey("warehouses.id"), nullable=False)
    planned_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    status: Mapped[LoadingStatus] = mapped_column(
        Enum(LoadingStatus), default=LoadingStatus.WAITING, nullable=False
    )
    invoice_number: Mapped[Optional[str]] = mapped_column("numero_nf", String(64), nullable=True)
    invoice_date: Mapped[Optional[date]] = mapped_column("data_emissao_nf", Date, nullable=True)
    invoice_file_ref: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    status_observation: Mapped[Optional[str]] = mapped_column("observacao_status", Text, nullable=True)
    # Сверка после завершения: отметки ставятся в той же записи, что и изменение liberação/остатка
    release_reconciled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    stock_reconciled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class LoadingPhoto(Base):
    """Фото-доказательство погрузки (только добавление)."""
    __tablename__ = "loading_photos"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    loading_id: Mapped[int] = mapped_column(ForeignKey("loadings.id"), nullable=False, index=True)
    evidence_type: Mapped[EvidenceType] = mapped_column("tipo", Enum(EvidenceType), nullable=False)
    url: Mapped[str] = mapped_column(String(512), nullable=False)
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
