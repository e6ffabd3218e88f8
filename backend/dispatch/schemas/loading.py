from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from dispatch.models import LoadingStatus


class LoadingCreate(BaseModel):
    release_id: int
    schedule_id: Optional[int] = None
    # Не задано: берётся количество из agendamento
    planned_quantity: Optional[Decimal] = None


class LoadingStatusUpdate(BaseModel):
    status: LoadingStatus
    observation: Optional[str] = None


class InvoiceRegister(BaseModel):
    number: str
    issue_date: date
    file_ref: Optional[str] = None


class PhotoResponse(BaseModel):
    id: int
    loading_id: int
    evidence_type: str
    url: str
    uploaded_by: Optional[str] = None
    created_at: Optional[datetime] = None


class LoadingResponse(BaseModel):
    id: int
    release_id: int
    schedule_id: Optional[int] = None
    product_id: int
    warehouse_id: int
    planned_quantity: Decimal
    status: str
    photo_counts: Dict[str, int]
    missing_evidence: List[str]
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    invoice_file_ref: Optional[str] = None
    status_observation: Optional[str] = None
    release_reconciled: bool
    stock_reconciled: bool
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class WarningItem(BaseModel):
    code: str
    loading_id: Optional[int] = None
    message: str


class LoadingTransitionResponse(BaseModel):
    loading: LoadingResponse
    warnings: List[WarningItem]


class ReconcileResponse(BaseModel):
    repaired: List[int]
    warnings: List[WarningItem]
