import uuid
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class MaterialCreate(BaseModel):
    item_code: str
    name: str
    type: str = "material"
    unit: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)

    @field_validator("item_code", "name", mode="before")
    @classmethod
    def required_text(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, v):
        v = str(v or "material").strip().lower()
        if v not in ("material", "service"):
            raise ValueError("type must be 'material' or 'service'")
        return v


class MaterialResponse(BaseModel):
    id: uuid.UUID
    item_code: str
    name: str
    type: str
    unit: Optional[str] = None
    price: Optional[float] = None

    @field_validator("price", mode="before")
    @classmethod
    def decimal_to_float(cls, v):
        return float(v) if v is not None else None

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    product_code: str
    model_name: str
    unit: Optional[str] = None
    opening_qty: int = Field(default=0, ge=0)
    in_qty: int = Field(default=0, ge=0)
    out_qty: int = Field(default=0, ge=0)

    @field_validator("product_code", "model_name", mode="before")
    @classmethod
    def required_text(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v


class ProductAdjust(BaseModel):
    """Desired month totals; the difference to what is recorded is posted today."""

    model_name: Optional[str] = None
    unit: Optional[str] = None
    opening_qty: Optional[int] = Field(default=None, ge=0)
    total_in: int = Field(ge=0)
    total_out: int = Field(ge=0)


class ProductStock(BaseModel):
    product_id: uuid.UUID
    product_code: str
    model_name: str
    unit: Optional[str] = None
    year: int
    month: int
    opening_qty: int
    total_in: int
    total_out: int
    current_stock: int


class AdjustmentResponse(ProductStock):
    delta_in: int
    delta_out: int


class MovementResponse(BaseModel):
    id: uuid.UUID
    year: int
    month: int
    day: int
    in_qty: int
    out_qty: int
    note: Optional[str] = None

    class Config:
        from_attributes = True


class MovementList(BaseModel):
    data: List[MovementResponse]
