"""Текущий пользователь из Bearer-токена внешнего сервиса авторизации."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from dispatch.core.logging_config import get_logger
from dispatch.core.permissions import Actor, UserRole
from dispatch.services.auth_service import decode_token

router = APIRouter(prefix="/auth", tags=["auth"])
security = HTTPBearer(auto_error=False)
logger = get_logger(__name__)


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Actor]:
    has_header = credentials is not None and credentials.scheme.lower() == "bearer"
    if not has_header:
        return None
    payload = decode_token(credentials.credentials)
    if not payload or "sub" not in payload:
        logger.warning("auth: токен не прошёл проверку (неверный или истёк)")
        return None
    roles = payload.get("roles")
    if roles is None:
        roles = [payload["role"]] if payload.get("role") else []
    return Actor(id=str(payload["sub"]), name=payload.get("name", ""), roles=list(roles))


def require_roles(allowed_roles: List[UserRole]):
    async def _check(actor: Optional[Actor] = Depends(get_current_actor)) -> Actor:
        if not actor:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Требуется авторизация",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not any(actor.has_role(r) for r in allowed_roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Недостаточно прав")
        return actor
    return _check


# Права на конкретные операции проверяет доменный слой, здесь только вход в систему
RequireAnyAuth = require_roles(list(UserRole))


class MeResponse(BaseModel):
    id: str
    name: str
    roles: List[str]


@router.get("/me", response_model=MeResponse)
async def me(actor: Actor = Depends(RequireAnyAuth)):
    return MeResponse(id=actor.id, name=actor.name, roles=actor.roles)
