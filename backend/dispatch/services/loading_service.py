"""
Carregamentos: создание, фото, НФ и смена статуса.
Завершить погрузку можно только с фото «до», «после» и НФ; после завершения
запускается сверка liberação и остатка (см. reconciliation).
"""
from datetime import date, datetime
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.core.errors import (
    CapacityExceeded,
    ForbiddenError,
    NotFoundError,
    PreconditionError,
    ReconciliationWarning,
    TransitionError,
    ValidationError,
)
from dispatch.core.locks import loading_lock, release_lock
from dispatch.core.logging_config import get_logger
from dispatch.core.permissions import Actor, Resource, can
from dispatch.models import (
    ACTIVE_SCHEDULE_STATUSES,
    EvidenceType,
    Loading,
    LoadingPhoto,
    LoadingStatus,
    ReleaseStatus,
)
from dispatch.schemas.loading import InvoiceRegister, LoadingCreate
from dispatch.services.loading_status import (
    allowed_extensions,
    can_transition,
    is_terminal,
    missing_evidence,
)
from dispatch.services.reconciliation import reconcile_loading
from dispatch.services.release_ledger import lock_release_row
from dispatch.services.schedule_allocator import capacity, get_schedule
from dispatch.services.storage import PhotoStorage, get_storage

logger = get_logger(__name__)


def _check_operator(actor: Actor) -> None:
    if not can(actor, Resource.LOADING_OPERATE):
        raise ForbiddenError("Работать с погрузкой может администратор, склад или логистика")


async def get_loading(db: AsyncSession, loading_id: int) -> Loading:
    r = await db.execute(
        select(Loading).where(Loading.id == loading_id).execution_options(populate_existing=True)
    )
    loading = r.scalar_one_or_none()
    if not loading:
        raise NotFoundError("Погрузка не найдена")
    return loading


async def photo_counts(db: AsyncSession, loading_id: int) -> Dict[str, int]:
    """Количество фото по типам (все типы, включая нулевые)."""
    r = await db.execute(
        select(LoadingPhoto.evidence_type, func.count(LoadingPhoto.id))
        .where(LoadingPhoto.loading_id == loading_id)
        .group_by(LoadingPhoto.evidence_type)
    )
    counts = {t.value: 0 for t in EvidenceType}
    for evidence_type, count in r.all():
        counts[evidence_type.value] = int(count)
    return counts


async def create_loading(db: AsyncSession, data: LoadingCreate, actor: Actor) -> Loading:
    """
    Погрузка по записи берёт не больше количества записи (резерв уже держит запись).
    Погрузка без записи берёт не больше свободного остатка liberação и сама держит резерв
    до завершения или отмены.
    """
    _check_operator(actor)
    planned = data.planned_quantity
    if planned is not None and planned <= 0:
        raise ValidationError("Количество должно быть больше нуля", code="InvalidQuantity")

    async with release_lock(data.release_id):
        release = await lock_release_row(db, data.release_id)
        if release.status == ReleaseStatus.CANCELLED:
            raise TransitionError("Liberação отменена, погрузка по ней невозможна", current=release.status.value)

        if data.schedule_id is not None:
            schedule = await get_schedule(db, data.schedule_id)
            if schedule.release_id != release.id:
                raise ValidationError("Agendamento относится к другой liberação", code="InvalidSchedule")
            if schedule.status not in ACTIVE_SCHEDULE_STATUSES:
                raise TransitionError(
                    f"Agendamento в статусе {schedule.status.value}, погрузка невозможна",
                    current=schedule.status.value,
                )
            existing = await db.execute(
                select(Loading.id).where(
                    Loading.schedule_id == schedule.id,
                    Loading.status != LoadingStatus.CANCELLED,
                )
            )
            if existing.first() is not None:
                raise ValidationError("По этому agendamento погрузка уже создана", code="DuplicateLoading")
            if planned is None:
                planned = schedule.requested_quantity
            if planned > schedule.requested_quantity:
                raise CapacityExceeded(planned, schedule.requested_quantity)
        else:
            if planned is None:
                raise ValidationError("Укажите количество для погрузки", code="MissingField")
            free = await capacity(db, release)
            if planned > free:
                raise CapacityExceeded(planned, free)

        loading = Loading(
            release_id=release.id,
            schedule_id=data.schedule_id,
            product_id=release.product_id,
            warehouse_id=release.warehouse_id,
            planned_quantity=planned,
            status=LoadingStatus.WAITING,
            created_by=actor.id,
            updated_by=actor.id,
        )
        db.add(loading)
        await db.commit()
    logger.info(
        "Создана погрузка id=%s: liberação=%s agendamento=%s количество=%s",
        loading.id, release.id, loading.schedule_id, loading.planned_quantity,
    )
    return loading


async def transition(
    db: AsyncSession,
    loading_id: int,
    target: LoadingStatus,
    observation: Optional[str],
    actor: Actor,
) -> Tuple[Loading, List[ReconciliationWarning]]:
    """
    Смена статуса погрузки. Завершение фиксируется сразу, сверка идёт после:
    её сбой возвращается в списке предупреждений и статус не откатывает.
    """
    _check_operator(actor)
    observation = (observation or "").strip() or None
    async with loading_lock(loading_id):
        loading = await get_loading(db, loading_id)
        if not can_transition(loading.status, target):
            raise TransitionError(
                f"Переход из {loading.status.value} в {target.value} невозможен",
                current=loading.status.value,
                target=target.value,
            )
        if target == LoadingStatus.CANCELLED and not observation:
            raise ValidationError("Укажите причину отмены погрузки", code="MissingReason")
        if target == LoadingStatus.COMPLETED:
            missing = missing_evidence(await photo_counts(db, loading.id))
            if missing:
                raise PreconditionError(
                    "Не хватает фото: " + ", ".join(t.value for t in missing),
                    code="MissingEvidence",
                )
        loading.status = target
        if observation:
            loading.status_observation = observation
        loading.updated_by = actor.id
        if target == LoadingStatus.COMPLETED:
            loading.completed_at = datetime.utcnow()
        db.add(loading)
        await db.commit()
    logger.info("Погрузка id=%s: статус %s (%s)", loading.id, target.value, actor.id)

    warnings: List[ReconciliationWarning] = []
    if target == LoadingStatus.COMPLETED:
        warnings = await reconcile_loading(db, loading_id)
        # после отката неудачной части сверки объекты сессии устаревают
        loading = await get_loading(db, loading_id)
    return loading, warnings


async def record_photo(
    db: AsyncSession,
    loading_id: int,
    evidence_type: EvidenceType,
    filename: str,
    content: bytes,
    actor: Actor,
    storage: Optional[PhotoStorage] = None,
) -> LoadingPhoto:
    """Загрузить фото. Запись о фото появляется только после успешной записи файла."""
    _check_operator(actor)
    extension = PurePosixPath(filename or "").suffix.lower().lstrip(".")
    if extension not in allowed_extensions(evidence_type):
        raise ValidationError(
            f"Формат .{extension or '?'} не поддерживается для фото типа {evidence_type.value}",
            code="UnsupportedFormat",
        )
    storage = storage or get_storage()
    async with loading_lock(loading_id):
        loading = await get_loading(db, loading_id)
        if is_terminal(loading.status):
            raise TransitionError(
                f"Погрузка в статусе {loading.status.value}, фото не принимаются",
                current=loading.status.value,
            )
        path = f"loadings/{loading.id}/{evidence_type.value}/{uuid4().hex}.{extension}"
        url = await storage.upload(path, content)
        photo = LoadingPhoto(
            loading_id=loading.id,
            evidence_type=evidence_type,
            url=url,
            uploaded_by=actor.id,
        )
        db.add(photo)
        await db.commit()
    logger.info("Фото %s добавлено к погрузке id=%s", evidence_type.value, loading.id)
    return photo


async def register_invoice(
    db: AsyncSession, loading_id: int, data: InvoiceRegister, actor: Actor
) -> Loading:
    """Нота фискальная: реквизиты, одно фото типа invoice, ожидающая погрузка переходит в работу."""
    _check_operator(actor)
    number = (data.number or "").strip()
    if not number:
        raise ValidationError("Укажите номер НФ", code="MissingField")
    if data.issue_date > date.today():
        raise ValidationError("Дата НФ не может быть в будущем", code="InvalidDate")
    async with loading_lock(loading_id):
        loading = await get_loading(db, loading_id)
        if is_terminal(loading.status):
            raise TransitionError(
                f"Погрузка в статусе {loading.status.value}, НФ не принимается",
                current=loading.status.value,
            )
        loading.invoice_number = number
        loading.invoice_date = data.issue_date
        loading.invoice_file_ref = data.file_ref
        loading.updated_by = actor.id
        if loading.status == LoadingStatus.WAITING:
            loading.status = LoadingStatus.IN_PROGRESS
        db.add(LoadingPhoto(
            loading_id=loading.id,
            evidence_type=EvidenceType.INVOICE,
            url=data.file_ref or f"nf:{number}",
            uploaded_by=actor.id,
        ))
        db.add(loading)
        await db.commit()
    logger.info("НФ %s зарегистрирована по погрузке id=%s", number, loading.id)
    return loading


async def list_loadings(
    db: AsyncSession,
    status: Optional[LoadingStatus] = None,
    release_id: Optional[int] = None,
    limit: int = 100,
) -> List[Loading]:
    q = select(Loading).order_by(Loading.created_at.desc()).limit(limit)
    if status is not None:
        q = q.where(Loading.status == status)
    if release_id is not None:
        q = q.where(Loading.release_id == release_id)
    r = await db.execute(q)
    return list(r.scalars().all())
