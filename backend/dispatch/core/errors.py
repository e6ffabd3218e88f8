"""
Ошибки доменного слоя. У каждой есть машинный code, HTTP-слой переводит класс в статус.

    DispatchError
    +-- ValidationError      InvalidQuantity, InvalidReference, InsufficientStock, InvalidDate,
    |                        InvalidDocument, InvalidPlate, MissingField, MissingReason, UnsupportedFormat
    +-- ForbiddenError       Forbidden
    +-- TransitionError      InvalidTransition
    +-- PreconditionError    MissingEvidence
    +-- CapacityExceeded     InvalidQuantity (запрос больше остатка liberação)
    +-- NotFoundError        NotFound
    +-- StorageError         StorageUnavailable

ReconciliationWarning не исключение: сверка после погрузки не откатывает статус,
предупреждение возвращается вызывающему и пишется в лог.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


class DispatchError(Exception):
    code = "DispatchError"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(DispatchError):
    code = "ValidationError"


class ForbiddenError(DispatchError):
    code = "Forbidden"

    def __init__(self, message: str = "Недостаточно прав"):
        super().__init__(message)


class TransitionError(DispatchError):
    code = "InvalidTransition"

    def __init__(self, message: str, current: Optional[str] = None, target: Optional[str] = None):
        super().__init__(message)
        self.current = current
        self.target = target


class PreconditionError(DispatchError):
    code = "PreconditionFailed"


class CapacityExceeded(DispatchError):
    code = "InvalidQuantity"

    def __init__(self, requested: Decimal, available: Decimal):
        super().__init__(
            f"Недостаточно остатка по liberação. Доступно: {available}, запрошено: {requested}"
        )
        self.requested = requested
        self.available = available


class NotFoundError(DispatchError):
    code = "NotFound"


class StorageError(DispatchError):
    """Хранилище файлов не приняло фото; счётчик фото не меняется."""
    code = "StorageUnavailable"


@dataclass
class ReconciliationWarning:
    """Сверка после завершения погрузки прошла не полностью (повторяется через repair)."""
    code: str  # OverWithdrawal | ReleaseUpdateFailed | StockUpdateFailed
    loading_id: Optional[int]
    message: str

    def as_dict(self) -> dict:
        return {"code": self.code, "loading_id": self.loading_id, "message": self.message}
