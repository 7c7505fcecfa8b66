"""
storefront/schemas/delivery.py - delivery locations and the cash-on-delivery limit.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class DeliveryLocationIn(BaseModel):
    city: str = Field(..., min_length=1, max_length=255)
    shipping_charge: float = Field(..., ge=0)
    is_active: bool = True

    @field_validator("city")
    @classmethod
    def _strip_city(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("city cannot be empty")
        return v


class DeliveryLocationOut(BaseModel):
    id: str
    city: str
    shipping_charge: float
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CodLimitUpdate(BaseModel):
    limit_amount: float = Field(..., ge=0)
    is_active: Optional[bool] = None


class CodLimitOut(BaseModel):
    id: str
    limit_amount: float
    is_active: bool
    updated_at: Optional[datetime] = None
