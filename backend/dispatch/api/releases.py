from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.api.auth import RequireAnyAuth
from dispatch.core.database import get_db
from dispatch.core.permissions import Actor
from dispatch.models import Release, ReleaseStatus
from dispatch.schemas.release import ReleaseCreate, ReleaseResponse
from dispatch.services import release_ledger
from dispatch.services.schedule_allocator import capacity

router = APIRouter(prefix="/releases", tags=["releases"])


def _release_to_response(release: Release, available=None) -> ReleaseResponse:
    return ReleaseResponse(
        id=release.id,
        client=release.client,
        product_id=release.product_id,
        warehouse_id=release.warehouse_id,
        authorized_quantity=release.authorized_quantity,
        withdrawn_quantity=release.withdrawn_quantity,
        remaining=release_ledger.remaining(release),
        available_to_schedule=available,
        order_reference=release.order_reference,
        status=release.status.value,
        created_by=release.created_by,
        created_at=release.created_at,
        cancelled_at=release.cancelled_at,
        cancelled_by=release.cancelled_by,
    )


@router.post("", response_model=ReleaseResponse)
async def post_release(
    data: ReleaseCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    release = await release_ledger.create_release(
        db,
        client=data.client,
        product_id=data.product_id,
        warehouse_id=data.warehouse_id,
        authorized_quantity=data.authorized_quantity,
        order_reference=data.order_reference,
        actor=actor,
        skip_stock_check=data.skip_stock_check,
    )
    return _release_to_response(release, available=release_ledger.remaining(release))


@router.get("", response_model=list[ReleaseResponse])
async def list_releases(
    status: Optional[ReleaseStatus] = None,
    client: Optional[str] = None,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    releases = await release_ledger.list_releases(db, status=status, client=client, limit=limit)
    return [_release_to_response(r) for r in releases]


@router.get("/{release_id}", response_model=ReleaseResponse)
async def get_release(
    release_id: int,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    """Liberação и сколько ещё можно записать на вывоз (с учётом активных agendamentos)."""
    release = await release_ledger.get_release(db, release_id)
    return _release_to_response(release, available=await capacity(db, release))


@router.post("/{release_id}/cancel", response_model=ReleaseResponse)
async def cancel_release(
    release_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    release = await release_ledger.cancel_release(db, release_id, actor)
    return _release_to_response(release)
