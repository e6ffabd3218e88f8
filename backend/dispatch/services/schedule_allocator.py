"""
Agendamentos: резерв части liberação под вывоз.
Свободный остаток = разрешено − (вывезено + сумма активных записей + незавершённые
погрузки без записи). Проверка и вставка идут под замком liberação и фиксируются
до его снятия, поэтому параллельные записи не могут вместе превысить разрешённое количество.
"""
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.core.errors import (
    CapacityExceeded,
    ForbiddenError,
    NotFoundError,
    TransitionError,
    ValidationError,
)
from dispatch.core.locks import release_lock
from dispatch.core.logging_config import get_logger
from dispatch.core.permissions import Actor, Resource, can
from dispatch.models import (
    ACTIVE_LOADING_STATUSES,
    ACTIVE_SCHEDULE_STATUSES,
    Loading,
    Release,
    ReleaseStatus,
    Schedule,
    ScheduleStatus,
)
from dispatch.schemas.schedule import ScheduleCreate, ScheduleUpdate
from dispatch.services.release_ledger import lock_release_row, remaining
from dispatch.services.validators import (
    is_valid_document,
    is_valid_plate,
    normalize_document,
    normalize_plate,
)

logger = get_logger(__name__)

ZERO = Decimal("0")
EDITABLE_STATUSES = (ScheduleStatus.CONFIRMED, ScheduleStatus.PENDING)


async def reserved_quantity(
    db: AsyncSession, release_id: int, exclude_schedule_id: Optional[int] = None
) -> Decimal:
    """
    Занято по liberação: активные записи (без указанной) и незавершённые погрузки без записи.
    Погрузка по записи держит резерв самой записи и отдельно не считается.
    """
    q = select(func.coalesce(func.sum(Schedule.requested_quantity), 0)).where(
        Schedule.release_id == release_id,
        Schedule.status.in_(ACTIVE_SCHEDULE_STATUSES),
    )
    if exclude_schedule_id is not None:
        q = q.where(Schedule.id != exclude_schedule_id)
    total = (await db.execute(q)).scalar_one()
    loadings = (await db.execute(
        select(func.coalesce(func.sum(Loading.planned_quantity), 0)).where(
            Loading.release_id == release_id,
            Loading.schedule_id.is_(None),
            Loading.status.in_(ACTIVE_LOADING_STATUSES),
        )
    )).scalar_one()
    return Decimal(str(total or 0)) + Decimal(str(loadings or 0))


async def active_loading_id(db: AsyncSession, schedule_id: int) -> Optional[int]:
    """Id незавершённой погрузки по записи, если она есть."""
    r = await db.execute(
        select(Loading.id).where(
            Loading.schedule_id == schedule_id,
            Loading.status.in_(ACTIVE_LOADING_STATUSES),
        )
    )
    return r.scalars().first()


async def capacity(
    db: AsyncSession, release: Release, exclude_schedule_id: Optional[int] = None
) -> Decimal:
    reserved = await reserved_quantity(db, release.id, exclude_schedule_id)
    return max(ZERO, remaining(release) - reserved)


def _check_pickup_date(pickup_date: date) -> None:
    if pickup_date < date.today():
        raise ValidationError("Дата вывоза не может быть в прошлом", code="InvalidDate")


def _check_document(raw: str) -> str:
    document = normalize_document(raw)
    if not is_valid_document(raw):
        raise ValidationError("Неверный CPF водителя", code="InvalidDocument")
    return document


def _check_plate(raw: str) -> str:
    if not is_valid_plate(raw):
        raise ValidationError("Неверный номер машины", code="InvalidPlate")
    return normalize_plate(raw)


def _check_quantity(quantity: Decimal) -> None:
    if quantity is None or quantity <= 0:
        raise ValidationError("Количество должно быть больше нуля", code="InvalidQuantity")


def _check_release_open(release: Release) -> None:
    if release.status == ReleaseStatus.CANCELLED:
        raise TransitionError(
            "Liberação отменена, записи на вывоз по ней невозможны",
            current=release.status.value,
        )


def _can_manage(schedule: Schedule, actor: Actor) -> bool:
    return schedule.created_by == actor.id or can(actor, Resource.SCHEDULE_MANAGE)


async def get_schedule(db: AsyncSession, schedule_id: int) -> Schedule:
    r = await db.execute(
        select(Schedule).where(Schedule.id == schedule_id).execution_options(populate_existing=True)
    )
    schedule = r.scalar_one_or_none()
    if not schedule:
        raise NotFoundError("Agendamento не найден")
    return schedule


async def create_schedule(db: AsyncSession, data: ScheduleCreate, actor: Actor) -> Schedule:
    if not can(actor, Resource.SCHEDULE_CREATE):
        raise ForbiddenError("Нет прав на запись на вывоз")
    _check_pickup_date(data.pickup_date)
    _check_quantity(data.requested_quantity)
    document = _check_document(data.driver_document)
    plate = _check_plate(data.vehicle_plate)
    driver_name = (data.driver_name or "").strip()
    if not driver_name:
        raise ValidationError("Укажите имя водителя", code="MissingField")

    async with release_lock(data.release_id):
        release = await lock_release_row(db, data.release_id)
        _check_release_open(release)
        free = await capacity(db, release)
        if data.requested_quantity > free:
            raise CapacityExceeded(data.requested_quantity, free)
        schedule = Schedule(
            release_id=release.id,
            pickup_at=datetime.combine(data.pickup_date, data.pickup_time),
            requested_quantity=data.requested_quantity,
            driver_name=driver_name,
            driver_document=document,
            vehicle_plate=plate,
            vehicle_type=data.vehicle_type,
            notes=data.notes,
            status=ScheduleStatus.CONFIRMED,
            created_by=actor.id,
        )
        db.add(schedule)
        await db.commit()
    logger.info(
        "Запись на вывоз id=%s: liberação=%s количество=%s дата=%s placa=%s",
        schedule.id, release.id, schedule.requested_quantity, schedule.pickup_at, schedule.vehicle_plate,
    )
    return schedule


async def edit_schedule(
    db: AsyncSession, schedule_id: int, changes: ScheduleUpdate, actor: Actor
) -> Schedule:
    schedule = await get_schedule(db, schedule_id)
    if schedule.status not in EDITABLE_STATUSES:
        raise TransitionError(
            f"Нельзя изменить запись со статусом {schedule.status.value}",
            current=schedule.status.value,
        )
    if not _can_manage(schedule, actor):
        raise ForbiddenError("Изменять запись может только её автор, администратор или логистика")

    fields = changes.model_dump(exclude_unset=True)
    # Проверяем всё до записи
    if "pickup_date" in fields or "pickup_time" in fields:
        new_date = fields.get("pickup_date") or schedule.pickup_at.date()
        new_time = fields.get("pickup_time") or schedule.pickup_at.time()
        _check_pickup_date(new_date)
        fields["pickup_at"] = datetime.combine(new_date, new_time)
    if "requested_quantity" in fields:
        _check_quantity(fields["requested_quantity"])
    if "driver_document" in fields:
        fields["driver_document"] = _check_document(fields["driver_document"])
    if "vehicle_plate" in fields:
        fields["vehicle_plate"] = _check_plate(fields["vehicle_plate"])
    if "driver_name" in fields:
        fields["driver_name"] = (fields["driver_name"] or "").strip()
        if not fields["driver_name"]:
            raise ValidationError("Укажите имя водителя", code="MissingField")

    async with release_lock(schedule.release_id):
        release = await lock_release_row(db, schedule.release_id)
        _check_release_open(release)
        schedule = await get_schedule(db, schedule_id)
        if schedule.status not in EDITABLE_STATUSES:
            raise TransitionError(
                f"Нельзя изменить запись со статусом {schedule.status.value}",
                current=schedule.status.value,
            )
        if "requested_quantity" in fields:
            loading_id = await active_loading_id(db, schedule.id)
            if loading_id is not None:
                raise TransitionError(
                    f"По записи идёт погрузка id={loading_id}, количество менять нельзя",
                    current=schedule.status.value,
                )
            # Собственный резерв записи не считается занятым
            free = await capacity(db, release, exclude_schedule_id=schedule.id)
            if fields["requested_quantity"] > free:
                raise CapacityExceeded(fields["requested_quantity"], free)
        for name in (
            "pickup_at", "requested_quantity", "driver_name", "driver_document",
            "vehicle_plate", "vehicle_type", "notes",
        ):
            if name in fields:
                setattr(schedule, name, fields[name])
        schedule.updated_by = actor.id
        db.add(schedule)
        await db.commit()
    logger.info("Запись на вывоз id=%s изменена (%s)", schedule.id, actor.id)
    return schedule


async def cancel_schedule(db: AsyncSession, schedule_id: int, reason: str, actor: Actor) -> Schedule:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Укажите причину отмены", code="MissingReason")
    schedule = await get_schedule(db, schedule_id)
    if schedule.status != ScheduleStatus.CONFIRMED:
        raise TransitionError(
            f"Отменить можно только подтверждённую запись (сейчас {schedule.status.value})",
            current=schedule.status.value,
            target=ScheduleStatus.CANCELLED.value,
        )
    if not _can_manage(schedule, actor):
        raise ForbiddenError("Отменить запись может только её автор, администратор или логистика")
    async with release_lock(schedule.release_id):
        schedule = await get_schedule(db, schedule_id)
        if schedule.status != ScheduleStatus.CONFIRMED:
            raise TransitionError(
                f"Запись уже в статусе {schedule.status.value}",
                current=schedule.status.value,
                target=ScheduleStatus.CANCELLED.value,
            )
        loading_id = await active_loading_id(db, schedule.id)
        if loading_id is not None:
            raise TransitionError(
                f"По записи идёт погрузка id={loading_id}, сначала отмените погрузку",
                current=schedule.status.value,
                target=ScheduleStatus.CANCELLED.value,
            )
        schedule.status = ScheduleStatus.CANCELLED
        schedule.cancellation_reason = reason
        schedule.updated_by = actor.id
        db.add(schedule)
        await db.commit()
    logger.info("Запись на вывоз id=%s отменена: %s", schedule.id, reason)
    return schedule


async def list_schedules(
    db: AsyncSession,
    release_id: Optional[int] = None,
    day: Optional[date] = None,
    status: Optional[ScheduleStatus] = None,
    limit: int = 100,
) -> List[Schedule]:
    q = select(Schedule).order_by(Schedule.pickup_at).limit(limit)
    if release_id is not None:
        q = q.where(Schedule.release_id == release_id)
    if day is not None:
        start = datetime.combine(day, time.min)
        end = datetime.combine(day, time.max)
        q = q.where(Schedule.pickup_at >= start, Schedule.pickup_at <= end)
    if status is not None:
        q = q.where(Schedule.status == status)
    r = await db.execute(q)
    return list(r.scalars().all())
