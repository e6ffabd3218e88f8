"""Справочники: продукты и склады."""
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.api.auth import RequireAnyAuth
from dispatch.core.database import get_db
from dispatch.core.errors import ForbiddenError, ValidationError
from dispatch.core.permissions import Actor, Resource, can
from dispatch.models import Product, Warehouse
from dispatch.schemas.catalog import ProductCreate, ProductResponse, WarehouseCreate, WarehouseResponse

router = APIRouter(tags=["catalog"])


def _check_catalog(actor: Actor) -> None:
    if not can(actor, Resource.CATALOG):
        raise ForbiddenError("Справочники меняет только администратор")


@router.get("/products", response_model=list[ProductResponse])
async def list_products(
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    r = await db.execute(select(Product).where(Product.is_active == True).order_by(Product.name))
    return r.scalars().all()


@router.post("/products", response_model=ProductResponse)
async def create_product(
    data: ProductCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    _check_catalog(actor)
    name = data.name.strip()
    if not name:
        raise ValidationError("Укажите название продукта", code="MissingField")
    product = Product(name=name, unit=(data.unit or "t").strip())
    db.add(product)
    await db.commit()
    await db.refresh(product)
    return product


@router.get("/warehouses", response_model=list[WarehouseResponse])
async def list_warehouses(
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(RequireAnyAuth),
):
    r = await db.execute(select(Warehouse).where(Warehouse.is_active == True).order_by(Warehouse.name))
    return r.scalars().all()


@router.post("/warehouses", response_model=WarehouseResponse)
async def create_warehouse(
    data: WarehouseCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(RequireAnyAuth),
):
    _check_catalog(actor)
    name = data.name.strip()
    if not name:
        raise ValidationError("Укажите название склада", code="MissingField")
    warehouse = Warehouse(name=name, city=data.city)
    db.add(warehouse)
    await db.commit()
    await db.refresh(warehouse)
    return warehouse
