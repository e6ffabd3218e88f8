from dispatch.core.database import Base
from dispatch.models.catalog import Product, Warehouse
from dispatch.models.release import Release, ReleaseStatus
from dispatch.models.schedule import Schedule, ScheduleStatus, ACTIVE_SCHEDULE_STATUSES
from dispatch.models.loading import Loading, LoadingPhoto, LoadingStatus, EvidenceType, ACTIVE_LOADING_STATUSES
from dispatch.models.stock_balance import StockBalance

__all__ = [
    "Base",
    "ACTIVE_LOADING_STATUSES",
    "ACTIVE_SCHEDULE_STATUSES",
    "EvidenceType",
    "Loading",
    "LoadingPhoto",
    "LoadingStatus",
    "Product",
    "Release",
    "ReleaseStatus",
    "Schedule",
    "ScheduleStatus",
    "StockBalance",
    "Warehouse",
]
