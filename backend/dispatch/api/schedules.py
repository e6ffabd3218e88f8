from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.api.auth import RequireAnyAuth
from dispatch.core.database import get_db
from dispatch.core.permissions import Actor
from dispatch.models import Schedule, ScheduleStatus
from dispatch.schemas.schedule import ScheduleCancel, ScheduleCreate, ScheduleResponse, ScheduleUpdate
from dispatch.services import schedule_allocator

router = APIRouter(prefix="/schedules", tags=["schedules"])


def _schedule_to_response(s: Schedule) -> ScheduleResponse:
    return ScheduleResponse(
        id=s.id,
        release_id=s.release_id,
        requested_quantity=s.requested_quantity,
        pickup_at=s.pickup_at,
        driver_name=s.driver_name,
        driver_document=s.driver_document,
        vehicle_plate=s.vehicle_plate,
        vehicle_type=s.vehicle_type,
        notes=s.notes,
        status=s.status.value,
        cancellation_reason=s.cancellation_reason,
        created_by=s.created_by,
        updated_by=s.updated_by,
    )


@router.post("", response_model=ScheduleResponse)
async def post_schedule(
    data: ScheduleCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    schedule = await schedule_allocator.create_schedule(db, data, actor)
    return _schedule_to_response(schedule)


@router.get("", response_model=list[ScheduleResponse])
async def list_schedules(
    release_id: Optional[int] = None,
    day: Optional[date] = None,
    status: Optional[ScheduleStatus] = None,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    """Записи на вывоз: по liberação, на конкретный день, по статусу."""
    schedules = await schedule_allocator.list_schedules(
        db, release_id=release_id, day=day, status=status, limit=limit
    )
    return [_schedule_to_response(s) for s in schedules]


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: int,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    return _schedule_to_response(await schedule_allocator.get_schedule(db, schedule_id))


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
async def patch_schedule(
    schedule_id: int,
    changes: ScheduleUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    schedule = await schedule_allocator.edit_schedule(db, schedule_id, changes, actor)
    return _schedule_to_response(schedule)


@router.post("/{schedule_id}/cancel", response_model=ScheduleResponse)
async def cancel_schedule(
    schedule_id: int,
    body: ScheduleCancel,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    schedule = await schedule_allocator.cancel_schedule(db, schedule_id, body.reason, actor)
    return _schedule_to_response(schedule)
