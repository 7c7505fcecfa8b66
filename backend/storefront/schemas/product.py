"""
# `storefront/schemas/product.py` - Product schemas

Products belong to a category (`category_id`) and carry up to three images
stored in Firebase Storage.

| Field               | Type        | Notes |
|---------------------|-------------|-------|
| name                | `str`       | required, ≤255 |
| description         | `str`       | optional |
| category_id         | `str`       | required |
| character_count     | `int`       | max letters that fit on the cake (optional) |
| price               | `float`     | ≥0 |
| discount_percentage | `float`     | 0–100 |
| status              | `ProductStatus` | `deactive` / `in_stock` / `out_of_stock` |
| daily_deals         | `bool`      | shown on the daily deals strip |
| images              | `list[str]` | storage URLs |

`discounted_price` is always derived: `round(price * (1 - discount/100), 2)`.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional

from fastapi import Form
from pydantic import BaseModel, Field


class ProductStatus(str, Enum):
    unavailable = "deactive"
    in_stock = "in_stock"
    out_of_stock = "out_of_stock"


def discounted_price(price: float, discount_percentage: float) -> float:
    value = Decimal(str(price)) * (Decimal(100) - Decimal(str(discount_percentage or 0))) / Decimal(100)
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class ProductCreate(BaseModel):
    name: str
    description: str = ""
    category_id: str
    character_count: Optional[int] = None
    price: float
    discount_percentage: Optional[float] = None
    discounted_price: Optional[float] = None
    status: ProductStatus
    daily_deals: bool = False

    # Form-data support
    @classmethod
    def as_form(
        cls,
        name: str = Form(..., min_length=1, max_length=255),
        description: str = Form(""),
        category_id: str = Form(...),
        character_count: Optional[int] = Form(None, ge=0),
        price: float = Form(..., ge=0),
        discount_percentage: Optional[float] = Form(None, ge=0, le=100),
        discounted_price: Optional[float] = Form(None, ge=0),
        status: ProductStatus = Form(...),
        daily_deals: bool = Form(False),
    ):
        return cls(
            name=name,
            description=description,
            category_id=category_id,
            character_count=character_count,
            price=price,
            discount_percentage=discount_percentage,
            discounted_price=discounted_price,
            status=status,
            daily_deals=daily_deals,
        )


class ProductUpdate(BaseModel):
    """Partial update; only the fields that were sent are applied."""
    name: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    character_count: Optional[int] = None
    price: Optional[float] = None
    discount_percentage: Optional[float] = None
    discounted_price: Optional[float] = None
    status: Optional[ProductStatus] = None
    daily_deals: Optional[bool] = None

    @classmethod
    def as_form(
        cls,
        name: Optional[str] = Form(None, min_length=1, max_length=255),
        description: Optional[str] = Form(None),
        category_id: Optional[str] = Form(None),
        character_count: Optional[int] = Form(None, ge=0),
        price: Optional[float] = Form(None, ge=0),
        discount_percentage: Optional[float] = Form(None, ge=0, le=100),
        discounted_price: Optional[float] = Form(None, ge=0),
        status: Optional[ProductStatus] = Form(None),
        daily_deals: Optional[bool] = Form(None),
    ):
        return cls(
            name=name,
            description=description,
            category_id=category_id,
            character_count=character_count,
            price=price,
            discount_percentage=discount_percentage,
            discounted_price=discounted_price,
            status=status,
            daily_deals=daily_deals,
        )


class ProductOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = ""
    category_id: Optional[str] = None
    character_count: Optional[int] = None
    price: float
    discount_percentage: float = 0
    discounted_price: float
    status: ProductStatus
    daily_deals: bool = False
    images: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
