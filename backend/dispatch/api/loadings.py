"""Погрузка на складе: статусы, фото, НФ, повторная сверка."""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.api.auth import RequireAnyAuth
from dispatch.core.database import get_db
from dispatch.core.errors import ReconciliationWarning
from dispatch.core.permissions import Actor
from dispatch.models import EvidenceType, Loading, LoadingStatus
from dispatch.schemas.loading import (
    InvoiceRegister,
    LoadingCreate,
    LoadingResponse,
    LoadingStatusUpdate,
    LoadingTransitionResponse,
    PhotoResponse,
    ReconcileResponse,
    WarningItem,
)
from dispatch.services import loading_service, reconciliation
from dispatch.services.loading_status import missing_evidence

router = APIRouter(prefix="/loadings", tags=["loadings"])


async def _loading_to_response(db: AsyncSession, loading: Loading) -> LoadingResponse:
    counts = await loading_service.photo_counts(db, loading.id)
    return LoadingResponse(
        id=loading.id,
        release_id=loading.release_id,
        schedule_id=loading.schedule_id,
        product_id=loading.product_id,
        warehouse_id=loading.warehouse_id,
        planned_quantity=loading.planned_quantity,
        status=loading.status.value,
        photo_counts=counts,
        missing_evidence=[t.value for t in missing_evidence(counts)],
        invoice_number=loading.invoice_number,
        invoice_date=loading.invoice_date,
        invoice_file_ref=loading.invoice_file_ref,
        status_observation=loading.status_observation,
        release_reconciled=loading.release_reconciled_at is not None,
        stock_reconciled=loading.stock_reconciled_at is not None,
        updated_by=loading.updated_by,
        created_at=loading.created_at,
        completed_at=loading.completed_at,
    )


def _warnings(items: List[ReconciliationWarning]) -> List[WarningItem]:
    return [WarningItem(**w.as_dict()) for w in items]


@router.post("", response_model=LoadingResponse)
async def post_loading(
    data: LoadingCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    loading = await loading_service.create_loading(db, data, actor)
    return await _loading_to_response(db, loading)


@router.get("", response_model=list[LoadingResponse])
async def list_loadings(
    status: Optional[LoadingStatus] = None,
    release_id: Optional[int] = None,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    loadings = await loading_service.list_loadings(db, status=status, release_id=release_id, limit=limit)
    return [await _loading_to_response(db, x) for x in loadings]


@router.post("/reconcile-pending", response_model=ReconcileResponse)
async def reconcile_pending(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    """Повторить сверку по всем завершённым погрузкам, где она не прошла."""
    repaired, warnings = await reconciliation.reconcile_pending(db, actor)
    return ReconcileResponse(repaired=repaired, warnings=_warnings(warnings))


@router.get("/{loading_id}", response_model=LoadingResponse)
async def get_loading(
    loading_id: int,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    return await _loading_to_response(db, await loading_service.get_loading(db, loading_id))


@router.patch("/{loading_id}/status", response_model=LoadingTransitionResponse)
async def update_loading_status(
    loading_id: int,
    body: LoadingStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    loading, warnings = await loading_service.transition(db, loading_id, body.status, body.observation, actor)
    return LoadingTransitionResponse(
        loading=await _loading_to_response(db, loading),
        warnings=_warnings(warnings),
    )


@router.post("/{loading_id}/photos", response_model=PhotoResponse)
async def upload_photo(
    loading_id: int,
    evidence_type: EvidenceType = Form(...),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    content = await file.read()
    photo = await loading_service.record_photo(
        db, loading_id, evidence_type, file.filename or "", content, actor
    )
    return PhotoResponse(
        id=photo.id,
        loading_id=photo.loading_id,
        evidence_type=photo.evidence_type.value,
        url=photo.url,
        uploaded_by=photo.uploaded_by,
        created_at=photo.created_at,
    )


@router.post("/{loading_id}/invoice", response_model=LoadingResponse)
async def register_invoice(
    loading_id: int,
    body: InvoiceRegister,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    loading = await loading_service.register_invoice(db, loading_id, body, actor)
    return await _loading_to_response(db, loading)


@router.post("/{loading_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_loading(
    loading_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    warnings = await reconciliation.repair_loading(db, loading_id, actor)
    failed = any(w.code in ("ReleaseUpdateFailed", "StockUpdateFailed") for w in warnings)
    return ReconcileResponse(repaired=[] if failed else [loading_id], warnings=_warnings(warnings))
