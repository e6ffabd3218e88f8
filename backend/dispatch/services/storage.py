"""
Хранилище фото и файлов НФ. По умолчанию локальная папка (settings.storage_dir),
при заданном STORAGE_URL файлы отправляются PUT-запросом во внешнее объектное хранилище.
"""
import asyncio
from pathlib import Path
from typing import Optional, Protocol

import httpx

from dispatch.config import settings
from dispatch.core.errors import StorageError
from dispatch.core.logging_config import get_logger

logger = get_logger(__name__)


class PhotoStorage(Protocol):
    async def upload(self, path: str, content: bytes) -> str:
        ...


class LocalStorage:
    def __init__(self, root: str):
        self.root = Path(root)

    async def upload(self, path: str, content: bytes) -> str:
        target = self.root / path
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_bytes, content)
        except OSError as e:
            logger.exception("Не удалось сохранить файл %s: %s", target, e)
            raise StorageError("Не удалось сохранить файл") from e
        return target.as_posix()


class HttpStorage:
    def __init__(self, base_url: str, timeout: float):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def upload(self, path: str, content: bytes) -> str:
        url = f"{self.base_url}/{path}"
        try:
            async with httpx.AsyncClient() as client:
                r = await client.put(url, content=content, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.exception("Хранилище недоступно (%s): %s", url, e)
            raise StorageError("Хранилище файлов недоступно") from e
        if r.status_code >= 300:
            logger.warning("Хранилище ответило %s на %s: %s", r.status_code, url, r.text)
            raise StorageError(f"Хранилище файлов вернуло ошибку {r.status_code}")
        return url


_storage: Optional[PhotoStorage] = None


def get_storage() -> PhotoStorage:
    global _storage
    if _storage is None:
        if settings.storage_url:
            _storage = HttpStorage(settings.storage_url, settings.storage_timeout)
        else:
            _storage = LocalStorage(settings.storage_dir)
    return _storage
