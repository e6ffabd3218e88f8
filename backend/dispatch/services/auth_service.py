"""JWT от внешнего сервиса авторизации: проверка и (для служебных скриптов и тестов) выпуск."""
from datetime import datetime, timedelta
from typing import List, Optional

import jwt

from dispatch.config import settings


def create_access_token(
    subject: str,
    roles: List[str],
    name: str = "",
) -> str:
    now = datetime.utcnow()
    expire = now + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        "sub": subject,
        "roles": roles,
        "name": name,
        "exp": expire,
        "iat": now,
    }
    return jwt.encode(
        payload,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.PyJWTError:
        return None
