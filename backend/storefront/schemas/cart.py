"""
storefront/schemas/cart.py - Pydantic models for Cart.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CartItemAdd(BaseModel):
    product_id: str = Field(..., description="Product ID (the same 'id' you see in /products).")
    quantity: int = Field(..., ge=1, description="Quantity (>=1).")
    wish: Optional[str] = Field(None, max_length=255, description="Message to write on the cake")
    cart_id: Optional[str] = Field(None, description="Guest cart id returned by a previous cart call")

    @field_validator("product_id")
    @classmethod
    def _clean_pid(cls, v: str) -> str:
        v = (v or "").strip()
        for ch in ("\u200b", "\u200c", "\u200d", "\ufeff", "\xa0"):
            v = v.replace(ch, "")
        if not v:
            raise ValueError("product_id cannot be empty")
        return v


class CartItemUpdate(BaseModel):
    quantity: Optional[int] = Field(None, ge=1)
    wish: Optional[str] = Field(None, max_length=255)
    cart_id: Optional[str] = None


class CartProduct(BaseModel):
    id: str
    name: str
    price: float
    discount_percentage: float = 0
    discounted_price: float
    status: str
    image: Optional[str] = None


class CartItemOut(BaseModel):
    id: str
    product_id: str
    quantity: int
    wish: Optional[str] = None
    subtotal: float
    product: Optional[CartProduct] = None


class CartOut(BaseModel):
    cart_id: str
    user_id: Optional[str] = None
    items: List[CartItemOut] = Field(default_factory=list)
    total: float = 0
    updated_at: Optional[datetime] = None
