"""Agendamentos: проверки, резерв по liberação и параллельные записи."""
import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import schedule_data
from dispatch.core.errors import CapacityExceeded, ForbiddenError, TransitionError, ValidationError
from dispatch.models import LoadingStatus, ScheduleStatus
from dispatch.schemas.loading import LoadingCreate
from dispatch.schemas.schedule import ScheduleUpdate
from dispatch.services import loading_service, release_ledger, schedule_allocator


async def test_create_schedule_reserves_capacity(db, make_release, customer):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(db, schedule_data(release.id, 4), customer)
    assert schedule.status == ScheduleStatus.CONFIRMED
    assert schedule.vehicle_plate == "ABC-1234"
    assert schedule.driver_document == "52998224725"
    assert schedule.created_by == customer.id

    release = await release_ledger.get_release(db, release.id)
    assert await schedule_allocator.capacity(db, release) == Decimal("6")


async def test_warehouse_cannot_book(db, make_release, warehouse_operator):
    release = await make_release()
    with pytest.raises(ForbiddenError):
        await schedule_allocator.create_schedule(db, schedule_data(release.id, 4), warehouse_operator)


@pytest.mark.parametrize(
    "quantity, overrides, code",
    [
        (4, {"pickup_date": date.today() - timedelta(days=1)}, "InvalidDate"),
        (0, {}, "InvalidQuantity"),
        (4, {"driver_document": "52998224726"}, "InvalidDocument"),
        (4, {"vehicle_plate": "ABC12"}, "InvalidPlate"),
        (4, {"driver_name": " "}, "MissingField"),
    ],
)
async def test_create_schedule_validation(db, make_release, customer, quantity, overrides, code):
    release = await make_release()
    with pytest.raises(ValidationError) as exc:
        await schedule_allocator.create_schedule(db, schedule_data(release.id, quantity, **overrides), customer)
    assert exc.value.code == code


async def test_today_is_a_valid_pickup_date(db, make_release, customer):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(
        db, schedule_data(release.id, 1, pickup_date=date.today()), customer
    )
    assert schedule.pickup_at.date() == date.today()


async def test_capacity_exceeded(db, make_release, customer):
    release = await make_release()
    await schedule_allocator.create_schedule(db, schedule_data(release.id, 7), customer)
    with pytest.raises(CapacityExceeded) as exc:
        await schedule_allocator.create_schedule(db, schedule_data(release.id, 4), customer)
    assert exc.value.code == "InvalidQuantity"
    assert exc.value.available == Decimal("3")


async def test_cancelled_release_rejects_schedules(db, make_release, admin, customer):
    release = await make_release()
    await release_ledger.cancel_release(db, release.id, admin)
    with pytest.raises(TransitionError):
        await schedule_allocator.create_schedule(db, schedule_data(release.id, 1), customer)


async def test_cancel_then_reallocate(db, make_release, customer):
    release = await make_release()
    first = await schedule_allocator.create_schedule(db, schedule_data(release.id, 10), customer)
    with pytest.raises(CapacityExceeded):
        await schedule_allocator.create_schedule(db, schedule_data(release.id, 10), customer)

    cancelled = await schedule_allocator.cancel_schedule(db, first.id, "Caminhão quebrado", customer)
    assert cancelled.status == ScheduleStatus.CANCELLED
    assert cancelled.cancellation_reason == "Caminhão quebrado"

    second = await schedule_allocator.create_schedule(db, schedule_data(release.id, 10), customer)
    assert second.status == ScheduleStatus.CONFIRMED


async def test_cancel_requires_reason(db, make_release, customer):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(db, schedule_data(release.id, 2), customer)
    with pytest.raises(ValidationError) as exc:
        await schedule_allocator.cancel_schedule(db, schedule.id, "  ", customer)
    assert exc.value.code == "MissingReason"


async def test_cancel_twice_is_invalid(db, make_release, customer):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(db, schedule_data(release.id, 2), customer)
    await schedule_allocator.cancel_schedule(db, schedule.id, "Cliente desistiu", customer)
    with pytest.raises(TransitionError):
        await schedule_allocator.cancel_schedule(db, schedule.id, "De novo", customer)


async def test_only_owner_or_logistics_cancels(db, make_release, customer, other_customer, logistics):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(db, schedule_data(release.id, 2), customer)
    with pytest.raises(ForbiddenError):
        await schedule_allocator.cancel_schedule(db, schedule.id, "Não é meu", other_customer)
    cancelled = await schedule_allocator.cancel_schedule(db, schedule.id, "Reprogramado", logistics)
    assert cancelled.updated_by == logistics.id


async def test_edit_excludes_own_reservation(db, make_release, customer):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(db, schedule_data(release.id, 6), customer)
    await schedule_allocator.create_schedule(db, schedule_data(release.id, 2), customer)

    edited = await schedule_allocator.edit_schedule(
        db, schedule.id, ScheduleUpdate(requested_quantity=Decimal("8")), customer
    )
    assert edited.requested_quantity == Decimal("8")

    with pytest.raises(CapacityExceeded):
        await schedule_allocator.edit_schedule(
            db, schedule.id, ScheduleUpdate(requested_quantity=Decimal("9")), customer
        )


async def test_edit_validates_only_given_fields(db, make_release, customer):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(db, schedule_data(release.id, 2), customer)

    edited = await schedule_allocator.edit_schedule(
        db, schedule.id, ScheduleUpdate(vehicle_plate="def4g56", notes="Bitrem"), customer
    )
    assert edited.vehicle_plate == "DEF4G56"
    assert edited.notes == "Bitrem"
    assert edited.requested_quantity == Decimal("2")

    with pytest.raises(ValidationError) as exc:
        await schedule_allocator.edit_schedule(
            db, schedule.id, ScheduleUpdate(pickup_date=date.today() - timedelta(days=2)), customer
        )
    assert exc.value.code == "InvalidDate"


async def test_cancelled_schedule_cannot_be_edited(db, make_release, customer):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(db, schedule_data(release.id, 2), customer)
    await schedule_allocator.cancel_schedule(db, schedule.id, "Chuva", customer)
    with pytest.raises(TransitionError):
        await schedule_allocator.edit_schedule(db, schedule.id, ScheduleUpdate(notes="x"), customer)


async def test_list_schedules_by_day(db, make_release, customer):
    release = await make_release()
    tomorrow = date.today() + timedelta(days=1)
    await schedule_allocator.create_schedule(db, schedule_data(release.id, 1), customer)
    await schedule_allocator.create_schedule(
        db, schedule_data(release.id, 1, pickup_date=tomorrow + timedelta(days=1)), customer
    )
    found = await schedule_allocator.list_schedules(db, release_id=release.id, day=tomorrow)
    assert len(found) == 1


async def test_concurrent_bookings_do_not_overbook(session_maker, make_release, customer):
    release = await make_release()

    async def book():
        async with session_maker() as session:
            try:
                return await schedule_allocator.create_schedule(session, schedule_data(release.id, 7), customer)
            except CapacityExceeded as e:
                return e

    results = await asyncio.gather(book(), book())
    failures = [r for r in results if isinstance(r, CapacityExceeded)]
    assert len(failures) == 1

    async with session_maker() as session:
        fresh = await release_ledger.get_release(session, release.id)
        assert await schedule_allocator.reserved_quantity(session, release.id) == Decimal("7")
        assert await schedule_allocator.capacity(session, fresh) == Decimal("3")


async def test_schedule_with_active_loading_is_locked(db, make_release, customer, logistics, warehouse_operator):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(db, schedule_data(release.id, 10), customer)
    schedule_id = schedule.id
    loading = await loading_service.create_loading(
        db, LoadingCreate(release_id=release.id, schedule_id=schedule_id), warehouse_operator
    )
    loading_id = loading.id

    with pytest.raises(TransitionError) as exc:
        await schedule_allocator.cancel_schedule(db, schedule_id, "Cliente desistiu", logistics)
    assert exc.value.target == "cancelled"
    with pytest.raises(TransitionError):
        await schedule_allocator.edit_schedule(
            db, schedule_id, ScheduleUpdate(requested_quantity=Decimal("3")), customer
        )
    fresh = await schedule_allocator.get_schedule(db, schedule_id)
    assert fresh.status == ScheduleStatus.CONFIRMED
    assert fresh.requested_quantity == Decimal("10")

    await loading_service.transition(db, loading_id, LoadingStatus.CANCELLED, "Motorista ausente", warehouse_operator)
    cancelled = await schedule_allocator.cancel_schedule(db, schedule_id, "Cliente desistiu", logistics)
    assert cancelled.status == ScheduleStatus.CANCELLED
