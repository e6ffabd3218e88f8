"""Фикстуры: временная SQLite-база, справочники, пользователи с разными ролями."""
from datetime import date, time, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dispatch.core.errors import StorageError
from dispatch.core.permissions import Actor
from dispatch.models import Base, Product, Warehouse
from dispatch.schemas.schedule import ScheduleCreate
from dispatch.services import release_ledger

VALID_CPF = "52998224725"


@pytest.fixture
def client():
    """Тестовый клиент приложения."""
    from dispatch.main import app
    return TestClient(app)


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def product(db):
    p = Product(name="Ureia granulada", unit="t")
    db.add(p)
    await db.commit()
    return p


@pytest.fixture
async def warehouse(db):
    w = Warehouse(name="Armazém Paranaguá", city="Paranaguá")
    db.add(w)
    await db.commit()
    return w


@pytest.fixture
def admin():
    return Actor(id="u-admin", name="Admin", roles=["admin"])


@pytest.fixture
def logistics():
    return Actor(id="u-log", name="Logística", roles=["logistica"])


@pytest.fixture
def warehouse_operator():
    return Actor(id="u-arm", name="Armazém", roles=["armazem"])


@pytest.fixture
def customer():
    return Actor(id="u-cli", name="Cliente", roles=["cliente"])


@pytest.fixture
def other_customer():
    return Actor(id="u-cli-2", name="Outro cliente", roles=["cliente"])


@pytest.fixture
def sales():
    return Actor(id="u-com", name="Comercial", roles=["comercial"])


@pytest.fixture
def make_release(db, product, warehouse, admin):
    """Создать liberação без проверки склада (остатки в тестах задаются отдельно)."""
    async def _make(quantity="10", reference="PED-2024-0001"):
        release = await release_ledger.create_release(
            db,
            client="Agro Sul Ltda",
            product_id=product.id,
            warehouse_id=warehouse.id,
            authorized_quantity=Decimal(quantity),
            order_reference=reference,
            actor=admin,
            skip_stock_check=True,
        )
        await db.commit()
        return release
    return _make


def schedule_data(release_id, quantity, **overrides):
    fields = dict(
        release_id=release_id,
        requested_quantity=Decimal(str(quantity)),
        pickup_date=date.today() + timedelta(days=1),
        pickup_time=time(8, 30),
        driver_name="João da Silva",
        driver_document=VALID_CPF,
        vehicle_plate="ABC1234",
    )
    fields.update(overrides)
    return ScheduleCreate(**fields)


class MemoryStorage:
    """Хранилище в памяти: запоминает загруженные пути."""

    def __init__(self):
        self.uploads = {}

    async def upload(self, path, content):
        self.uploads[path] = content
        return f"mem://{path}"


class BrokenStorage:
    async def upload(self, path, content):
        raise StorageError("Хранилище файлов недоступно")


@pytest.fixture
def storage():
    return MemoryStorage()
