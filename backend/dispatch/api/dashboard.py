from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.api.auth import RequireAnyAuth
from dispatch.core.database import get_db
from dispatch.core.permissions import Actor
from dispatch.schemas.dashboard import DashboardSummary
from dispatch.services.dashboard import get_summary

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardSummary)
async def dashboard(
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    return await get_summary(db)
