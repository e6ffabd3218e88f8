"""
Блокировки внутри процесса: проверка остатка и запись идут под одним замком,
пока commit не завершён. Ключ: id liberação или пара (продукт, склад).
"""
import asyncio
import weakref
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Hashable

# asyncio.Lock привязывается к event loop, поэтому реестр замков свой на каждый loop
_locks_by_loop: "weakref.WeakKeyDictionary" = weakref.WeakKeyDictionary()


def _get_lock(key: Hashable) -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    locks = _locks_by_loop.get(loop)
    if locks is None:
        locks = defaultdict(asyncio.Lock)
        _locks_by_loop[loop] = locks
    return locks[key]


@asynccontextmanager
async def entity_lock(*key: Hashable):
    async with _get_lock(key):
        yield


def release_lock(release_id: int):
    return entity_lock("release", release_id)


def stock_lock(product_id: int, warehouse_id: int):
    return entity_lock("stock", product_id, warehouse_id)


def loading_lock(loading_id: int):
    return entity_lock("loading", loading_id)
