from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class ScheduleCreate(BaseModel):
    """Запись на вывоз. Количество, CPF и placa проверяет доменный слой."""
    release_id: int
    requested_quantity: Decimal
    pickup_date: date
    pickup_time: time
    driver_name: str
    driver_document: str
    vehicle_plate: str
    vehicle_type: Optional[str] = None
    notes: Optional[str] = None


class ScheduleUpdate(BaseModel):
    requested_quantity: Optional[Decimal] = None
    pickup_date: Optional[date] = None
    pickup_time: Optional[time] = None
    driver_name: Optional[str] = None
    driver_document: Optional[str] = None
    vehicle_plate: Optional[str] = None
    vehicle_type: Optional[str] = None
    notes: Optional[str] = None


class ScheduleCancel(BaseModel):
    reason: str


class ScheduleResponse(BaseModel):
    id: int
    release_id: int
    requested_quantity: Decimal
    pickup_at: datetime
    driver_name: str
    driver_document: str
    vehicle_plate: str
    vehicle_type: Optional[str] = None
    notes: Optional[str] = None
    status: str
    cancellation_reason: Optional[str] = None
    created_by: str
    updated_by: Optional[str] = None

    class Config:
        from_attributes = True
