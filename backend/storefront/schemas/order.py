# storefront/schemas/order.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class PaymentStatus(str, Enum):
    pending = "pending"
    success = "success"
    failed = "failed"


class PaymentType(str, Enum):
    cash_on_delivery = "cash_on_delivery"
    card_payment = "card_payment"


# (Input) checkout payload, shared by /orders/cod and /orders/online
class OrderCreate(BaseModel):
    cart_id: str = Field(..., min_length=1, description="ID of the cart containing items to order")
    customer_name: str = Field(..., min_length=1, max_length=255)
    contact_number: str = Field(..., min_length=1, max_length=20)
    city: str = Field(..., min_length=1, description="Must be an active delivery location")
    address: str = Field(..., min_length=1, max_length=255)
    req_datetime: Optional[datetime] = Field(None, description="Requested delivery time")
    shipping_charge: Optional[float] = Field(None, ge=0, description="Overrides the location charge")


# (Output) immutable line snapshot
class OrderItemOut(BaseModel):
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    unit_price: float
    total_price: float
    wish: Optional[str] = None


class OrderOut(BaseModel):
    id: str
    customer_name: str
    contact_number: str
    city: Optional[str] = None
    delivery_location_id: Optional[str] = None
    address: str
    user_id: Optional[str] = None
    status: OrderStatus
    payment_type: PaymentType
    payment_status: PaymentStatus = PaymentStatus.pending
    total_amount: float
    shipping_charge: float = 0
    cart_id: Optional[str] = None
    req_datetime: Optional[datetime] = None
    order_datetime: Optional[datetime] = None
    items: List[OrderItemOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentData(BaseModel):
    merchant_id: str
    order_id: str
    amount: str
    currency: str
    hash: str


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus
