"""Погрузка: переходы статусов, фото-доказательства, НФ."""
import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import BrokenStorage, schedule_data
from dispatch.core.errors import (
    CapacityExceeded,
    ForbiddenError,
    PreconditionError,
    StorageError,
    TransitionError,
    ValidationError,
)
from dispatch.models import EvidenceType, LoadingStatus
from dispatch.schemas.loading import InvoiceRegister, LoadingCreate
from dispatch.services import loading_service, release_ledger, schedule_allocator
from dispatch.services.loading_status import can_transition, is_terminal, missing_evidence


@pytest.fixture
def make_loading(db, make_release, warehouse_operator):
    async def _make(quantity="4"):
        release = await make_release()
        return await loading_service.create_loading(
            db, LoadingCreate(release_id=release.id, planned_quantity=Decimal(quantity)), warehouse_operator
        )
    return _make


def test_transition_graph():
    assert can_transition(LoadingStatus.WAITING, LoadingStatus.IN_PROGRESS)
    assert can_transition(LoadingStatus.IN_PROGRESS, LoadingStatus.COMPLETED)
    assert can_transition(LoadingStatus.WAITING, LoadingStatus.CANCELLED)
    assert not can_transition(LoadingStatus.WAITING, LoadingStatus.COMPLETED)
    assert not can_transition(LoadingStatus.COMPLETED, LoadingStatus.IN_PROGRESS)
    assert not can_transition(LoadingStatus.CANCELLED, LoadingStatus.WAITING)
    assert is_terminal(LoadingStatus.COMPLETED)
    assert is_terminal(LoadingStatus.CANCELLED)


def test_missing_evidence():
    assert missing_evidence({}) == [EvidenceType.BEFORE, EvidenceType.AFTER, EvidenceType.INVOICE]
    assert missing_evidence({"before": 2, "after": 1, "invoice": 1}) == []
    assert missing_evidence({"before": 1, "during": 3, "after": 1}) == [EvidenceType.INVOICE]


async def test_create_loading_from_schedule(db, make_release, customer, warehouse_operator):
    release = await make_release()
    schedule = await schedule_allocator.create_schedule(db, schedule_data(release.id, 4), customer)
    loading = await loading_service.create_loading(
        db, LoadingCreate(release_id=release.id, schedule_id=schedule.id), warehouse_operator
    )
    assert loading.status == LoadingStatus.WAITING
    assert loading.planned_quantity == Decimal("4")
    assert loading.product_id == release.product_id

    with pytest.raises(ValidationError) as exc:
        await loading_service.create_loading(
            db, LoadingCreate(release_id=release.id, schedule_id=schedule.id), warehouse_operator
        )
    assert exc.value.code == "DuplicateLoading"


async def test_create_loading_checks(db, make_release, customer, warehouse_operator):
    release = await make_release()
    other = await make_release(reference="PED-2024-0002")
    schedule = await schedule_allocator.create_schedule(db, schedule_data(other.id, 1), customer)

    with pytest.raises(ForbiddenError):
        await loading_service.create_loading(
            db, LoadingCreate(release_id=release.id, planned_quantity=Decimal("1")), customer
        )
    with pytest.raises(ValidationError) as exc:
        await loading_service.create_loading(
            db, LoadingCreate(release_id=release.id, schedule_id=schedule.id), warehouse_operator
        )
    assert exc.value.code == "InvalidSchedule"
    with pytest.raises(ValidationError) as exc:
        await loading_service.create_loading(db, LoadingCreate(release_id=release.id), warehouse_operator)
    assert exc.value.code == "MissingField"
    with pytest.raises(CapacityExceeded):
        await loading_service.create_loading(
            db, LoadingCreate(release_id=release.id, planned_quantity=Decimal("11")), warehouse_operator
        )


async def test_completion_requires_evidence(db, make_loading, warehouse_operator, storage):
    loading = await make_loading()
    await loading_service.transition(db, loading.id, LoadingStatus.IN_PROGRESS, None, warehouse_operator)
    await loading_service.record_photo(
        db, loading.id, EvidenceType.BEFORE, "antes.jpg", b"jpg", warehouse_operator, storage=storage
    )
    await loading_service.record_photo(
        db, loading.id, EvidenceType.AFTER, "depois.png", b"png", warehouse_operator, storage=storage
    )

    with pytest.raises(PreconditionError) as exc:
        await loading_service.transition(db, loading.id, LoadingStatus.COMPLETED, None, warehouse_operator)
    assert exc.value.code == "MissingEvidence"
    assert "invoice" in exc.value.message

    fresh = await loading_service.get_loading(db, loading.id)
    assert fresh.status == LoadingStatus.IN_PROGRESS
    assert fresh.completed_at is None


async def test_waiting_cannot_complete_directly(db, make_loading, warehouse_operator):
    loading = await make_loading()
    with pytest.raises(TransitionError) as exc:
        await loading_service.transition(db, loading.id, LoadingStatus.COMPLETED, None, warehouse_operator)
    assert exc.value.current == "waiting"
    assert exc.value.target == "completed"


async def test_cancel_requires_reason(db, make_loading, warehouse_operator):
    loading = await make_loading()
    with pytest.raises(ValidationError) as exc:
        await loading_service.transition(db, loading.id, LoadingStatus.CANCELLED, "  ", warehouse_operator)
    assert exc.value.code == "MissingReason"

    cancelled, warnings = await loading_service.transition(
        db, loading.id, LoadingStatus.CANCELLED, "Veículo não compareceu", warehouse_operator
    )
    assert cancelled.status == LoadingStatus.CANCELLED
    assert cancelled.status_observation == "Veículo não compareceu"
    assert warnings == []

    with pytest.raises(TransitionError):
        await loading_service.transition(db, loading.id, LoadingStatus.IN_PROGRESS, None, warehouse_operator)


async def test_customer_cannot_operate_loading(db, make_loading, customer):
    loading = await make_loading()
    with pytest.raises(ForbiddenError):
        await loading_service.transition(db, loading.id, LoadingStatus.IN_PROGRESS, None, customer)


async def test_photo_format(db, make_loading, warehouse_operator, storage):
    loading = await make_loading()
    with pytest.raises(ValidationError) as exc:
        await loading_service.record_photo(
            db, loading.id, EvidenceType.BEFORE, "antes.gif", b"gif", warehouse_operator, storage=storage
        )
    assert exc.value.code == "UnsupportedFormat"
    with pytest.raises(ValidationError):
        await loading_service.record_photo(
            db, loading.id, EvidenceType.AFTER, "depois.pdf", b"pdf", warehouse_operator, storage=storage
        )

    photo = await loading_service.record_photo(
        db, loading.id, EvidenceType.INVOICE, "nf.PDF", b"pdf", warehouse_operator, storage=storage
    )
    assert photo.url.startswith("mem://loadings/")
    assert photo.url.endswith(".pdf")
    counts = await loading_service.photo_counts(db, loading.id)
    assert counts["invoice"] == 1
    assert counts["before"] == 0


async def test_storage_failure_keeps_count(db, make_loading, warehouse_operator):
    loading = await make_loading()
    with pytest.raises(StorageError):
        await loading_service.record_photo(
            db, loading.id, EvidenceType.BEFORE, "antes.jpg", b"jpg", warehouse_operator, storage=BrokenStorage()
        )
    counts = await loading_service.photo_counts(db, loading.id)
    assert counts["before"] == 0


async def test_register_invoice_starts_loading(db, make_loading, warehouse_operator):
    loading = await make_loading()
    updated = await loading_service.register_invoice(
        db, loading.id, InvoiceRegister(number="000123", issue_date=date.today()), warehouse_operator
    )
    assert updated.status == LoadingStatus.IN_PROGRESS
    assert updated.invoice_number == "000123"
    counts = await loading_service.photo_counts(db, loading.id)
    assert counts["invoice"] == 1


async def test_register_invoice_validation(db, make_loading, warehouse_operator):
    loading = await make_loading()
    with pytest.raises(ValidationError) as exc:
        await loading_service.register_invoice(
            db, loading.id,
            InvoiceRegister(number="1", issue_date=date.today() + timedelta(days=1)),
            warehouse_operator,
        )
    assert exc.value.code == "InvalidDate"
    with pytest.raises(ValidationError) as exc:
        await loading_service.register_invoice(
            db, loading.id, InvoiceRegister(number=" ", issue_date=date.today()), warehouse_operator
        )
    assert exc.value.code == "MissingField"


async def test_terminal_loading_rejects_photos(db, make_loading, warehouse_operator, storage):
    loading = await make_loading()
    await loading_service.transition(db, loading.id, LoadingStatus.CANCELLED, "Cancelado", warehouse_operator)
    with pytest.raises(TransitionError):
        await loading_service.record_photo(
            db, loading.id, EvidenceType.BEFORE, "antes.jpg", b"jpg", warehouse_operator, storage=storage
        )


async def test_scheduled_loading_is_bounded_by_schedule(db, make_release, customer, warehouse_operator):
    release = await make_release()
    first = await schedule_allocator.create_schedule(db, schedule_data(release.id, 4), customer)
    await schedule_allocator.create_schedule(db, schedule_data(release.id, 6), customer)

    with pytest.raises(CapacityExceeded) as exc:
        await loading_service.create_loading(
            db,
            LoadingCreate(release_id=release.id, schedule_id=first.id, planned_quantity=Decimal("10")),
            warehouse_operator,
        )
    assert exc.value.code == "InvalidQuantity"
    # Всё количество уже зарезервировано записями
    with pytest.raises(CapacityExceeded):
        await loading_service.create_loading(
            db, LoadingCreate(release_id=release.id, planned_quantity=Decimal("10")), warehouse_operator
        )

    loading = await loading_service.create_loading(
        db, LoadingCreate(release_id=release.id, schedule_id=first.id), warehouse_operator
    )
    assert loading.planned_quantity == Decimal("4")


async def test_unscheduled_loading_holds_reservation(db, make_release, customer, warehouse_operator):
    release = await make_release()
    release_id = release.id
    loading = await loading_service.create_loading(
        db, LoadingCreate(release_id=release_id, planned_quantity=Decimal("6")), warehouse_operator
    )
    loading_id = loading.id

    release = await release_ledger.get_release(db, release_id)
    assert await schedule_allocator.capacity(db, release) == Decimal("4")
    with pytest.raises(CapacityExceeded):
        await schedule_allocator.create_schedule(db, schedule_data(release_id, 5), customer)
    with pytest.raises(CapacityExceeded):
        await loading_service.create_loading(
            db, LoadingCreate(release_id=release_id, planned_quantity=Decimal("5")), warehouse_operator
        )

    await loading_service.transition(db, loading_id, LoadingStatus.CANCELLED, "Carga desmarcada", warehouse_operator)
    release = await release_ledger.get_release(db, release_id)
    assert await schedule_allocator.capacity(db, release) == Decimal("10")


class SlowStorage:
    async def upload(self, path, content):
        await asyncio.sleep(0.05)
        return f"mem://{path}"


async def test_photo_upload_and_completion_do_not_interleave(
    session_maker, make_loading, warehouse_operator, storage
):
    loading = await make_loading()
    loading_id = loading.id
    async with session_maker() as session:
        await loading_service.register_invoice(
            session, loading_id, InvoiceRegister(number="3301", issue_date=date.today()), warehouse_operator
        )
        for evidence_type, filename in ((EvidenceType.BEFORE, "antes.jpg"), (EvidenceType.AFTER, "depois.jpg")):
            await loading_service.record_photo(
                session, loading_id, evidence_type, filename, b"jpg", warehouse_operator, storage=storage
            )

    async def add_photo():
        async with session_maker() as session:
            return await loading_service.record_photo(
                session, loading_id, EvidenceType.DURING, "durante.jpg", b"jpg", warehouse_operator,
                storage=SlowStorage(),
            )

    async def complete():
        async with session_maker() as session:
            completed, _ = await loading_service.transition(
                session, loading_id, LoadingStatus.COMPLETED, None, warehouse_operator
            )
            return completed

    photo, completed = await asyncio.gather(add_photo(), complete())
    assert completed.status == LoadingStatus.COMPLETED
    assert photo.created_at <= completed.completed_at

    async with session_maker() as session:
        counts = await loading_service.photo_counts(session, loading_id)
        assert counts["during"] == 1
