from typing import Optional

from pydantic import BaseModel


class ProductCreate(BaseModel):
    name: str
    unit: str = "t"


class ProductResponse(BaseModel):
    id: int
    name: str
    unit: str
    is_active: bool

    class Config:
        from_attributes = True


class WarehouseCreate(BaseModel):
    name: str
    city: Optional[str] = None


class WarehouseResponse(BaseModel):
    id: int
    name: str
    city: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True
