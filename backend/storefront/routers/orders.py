"""
# `storefront/routers/orders.py` - Orders

## Public
| Method | Path                         | Notes |
|--------|------------------------------|-------|
| POST   | `/orders/cod`                | cash on delivery; cart is emptied, SMS sent in background |
| POST   | `/orders/online`             | card payment; returns `payment_data` for the PayHere checkout |
| GET    | `/orders/my`                 | orders of the signed-in customer, newest first |
| GET    | `/orders/{order_id}`         | single order with its line snapshots |
| POST   | `/orders/{order_id}/cancel`  | refused once the order is shipped or delivered |

## Admin (prefix `/admin`)
| Method | Path                                  | Roles |
|--------|---------------------------------------|-------|
| GET    | `/admin/orders`                       | admin |
| GET    | `/admin/orders/search`                | admin |
| PUT    | `/admin/orders/{order_id}/status`     | admin, staff, cashier |
| PUT    | `/admin/orders/{order_id}/payment-status` | admin |

Totals are computed server-side from live product prices; the client never
sends amounts. Amounts in the online response are two-decimal strings.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from google.api_core.exceptions import FailedPrecondition
from google.cloud import firestore as gcf
from google.cloud.firestore_v1.base_query import FieldFilter

from storefront.config import get_db
from storefront.core.auth import get_optional_principal
from storefront.core.errors import AppException, server_error
from storefront.core.security import get_current_admin, require_non_guest, require_roles
from storefront.integrations.payhere import PayHereConfig, format_amount, get_payhere_config, payment_data
from storefront.integrations.sms import SmsNotifier, get_sms_notifier
from storefront.schemas.order import (
    OrderCreate,
    OrderOut,
    OrderStatus,
    OrderStatusUpdate,
    PaymentStatusUpdate,
    PaymentType,
)
from storefront.schemas.principal import Principal, Role
from storefront.services.orders import ORDERS, cancel_order, get_order, place_order, update_order

logger = logging.getLogger("storefront.orders")

router = APIRouter(prefix="/orders", tags=["Orders"])

_STAFF_ROLES = (Role.admin, Role.staff, Role.cashier)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _owner_id(principal: Optional[Principal]) -> Optional[str]:
    if principal is None or principal.is_guest:
        return None
    return principal.uid


def _newest_first(query, limit: int) -> List[Dict[str, Any]]:
    """Streams `query` ordered by created_at DESC; sorts in memory when the composite index is missing."""
    try:
        docs = list(query.order_by("created_at", direction=gcf.Query.DESCENDING).limit(limit).stream())
    except FailedPrecondition:
        logger.warning("Missing Firestore index for orders ordering; sorting in memory")
        docs = sorted(query.stream(), key=lambda d: (d.to_dict() or {}).get("created_at") or _EPOCH, reverse=True)
        docs = docs[:limit]
    out = []
    for d in docs:
        data = d.to_dict() or {}
        data["id"] = d.id
        out.append(data)
    return out


# ---------- Public ----------
@router.post("/cod", status_code=status.HTTP_201_CREATED)
def create_cod_order(
    payload: OrderCreate,
    background: BackgroundTasks,
    db=Depends(get_db),
    principal: Optional[Principal] = Depends(get_optional_principal),
    sms: SmsNotifier = Depends(get_sms_notifier),
):
    order = place_order(db, payload, PaymentType.cash_on_delivery, user_id=_owner_id(principal))
    background.add_task(sms.cod_order_placed, order["id"], order["contact_number"])
    return {
        "message": "Order placed successfully",
        "order_id": order["id"],
        "status": order["status"],
        "total_amount": order["total_amount"],
        "shipping_charge": order["shipping_charge"],
    }


@router.post("/online", status_code=status.HTTP_201_CREATED)
def create_online_order(
    payload: OrderCreate,
    db=Depends(get_db),
    principal: Optional[Principal] = Depends(get_optional_principal),
    payhere: PayHereConfig = Depends(get_payhere_config),
):
    order = place_order(db, payload, PaymentType.card_payment, user_id=_owner_id(principal))
    total_with_shipping = format_amount(
        Decimal(str(order["total_amount"])) + Decimal(str(order["shipping_charge"]))
    )
    return {
        "message": "Order created successfully",
        "order_id": order["id"],
        "status": order["status"],
        "payment_status": order["payment_status"],
        "total_amount": format_amount(order["total_amount"]),
        "shipping_charge": format_amount(order["shipping_charge"]),
        "total_with_shipping": total_with_shipping,
        "items": order["items"],
        "payment_data": payment_data(payhere, order["id"], total_with_shipping),
    }


@router.get("/my", response_model=List[OrderOut])
def my_orders(
    limit: int = Query(50, ge=1, le=200),
    db=Depends(get_db),
    principal: Principal = Depends(require_non_guest),
):
    q = db.collection(ORDERS).where(filter=FieldFilter("user_id", "==", principal.uid))
    return _newest_first(q, limit)


@router.get("/{order_id}", response_model=OrderOut)
def read_order(order_id: str, db=Depends(get_db)):
    return get_order(db, order_id)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel(
    order_id: str,
    db=Depends(get_db),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    order = get_order(db, order_id)
    owner = order.get("user_id")
    if owner:
        allowed = principal is not None and (principal.uid == owner or principal.has_any(*_STAFF_ROLES))
        if not allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to cancel this order.")
    cancelled = cancel_order(db, order_id)
    logger.info("Order #%s cancelled", order_id, extra={"order_id": order_id})
    return cancelled


# ---------- Admin ----------
admin_router = APIRouter(prefix="/orders", tags=["Admin Orders"])


def _filtered_query(db, status_: Optional[OrderStatus], payment_type: Optional[PaymentType], user_id: Optional[str]):
    q = db.collection(ORDERS)
    if status_ is not None:
        q = q.where(filter=FieldFilter("status", "==", status_.value))
    if payment_type is not None:
        q = q.where(filter=FieldFilter("payment_type", "==", payment_type.value))
    if user_id:
        q = q.where(filter=FieldFilter("user_id", "==", user_id))
    return q


@admin_router.get("", response_model=List[OrderOut], dependencies=[Depends(get_current_admin)])
def list_orders(
    status_: Optional[OrderStatus] = Query(None, alias="status"),
    payment_type: Optional[PaymentType] = Query(None),
    user_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db=Depends(get_db),
):
    return _newest_first(_filtered_query(db, status_, payment_type, user_id), limit)


def _matches(order: Dict[str, Any], needle: str) -> bool:
    haystack = (
        order.get("id"),
        order.get("customer_name"),
        order.get("contact_number"),
        order.get("address"),
        order.get("city"),
    )
    return any(needle in str(v).lower() for v in haystack if v)


@admin_router.get("/search", response_model=List[OrderOut], dependencies=[Depends(get_current_admin)])
def search_orders(
    query: str = Query(..., min_length=2),
    status_: Optional[OrderStatus] = Query(None, alias="status"),
    payment_type: Optional[PaymentType] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db=Depends(get_db),
):
    # Firestore has no substring match; equality filters run server side, the rest here.
    needle = query.strip().lower()
    results = []
    for order in _newest_first(_filtered_query(db, status_, payment_type, None), 1000):
        created = order.get("created_at")
        day = created.date() if created is not None else None
        if from_date and (day is None or day < from_date):
            continue
        if to_date and (day is None or day > to_date):
            continue
        if _matches(order, needle):
            results.append(order)
            if len(results) >= limit:
                break
    return results


@admin_router.put(
    "/{order_id}/status",
    response_model=OrderOut,
    dependencies=[Depends(require_roles(*_STAFF_ROLES))],
)
def update_status(order_id: str, body: OrderStatusUpdate, db=Depends(get_db)):
    try:
        order = update_order(db, order_id, {"status": body.status.value})
    except (AppException, HTTPException):
        raise
    except Exception as e:
        return server_error("Error updating order status", e)
    logger.info("Order #%s status -> %s", order_id, body.status.value, extra={"order_id": order_id})
    return order


@admin_router.put(
    "/{order_id}/payment-status",
    response_model=OrderOut,
    dependencies=[Depends(get_current_admin)],
)
def update_payment_status(order_id: str, body: PaymentStatusUpdate, db=Depends(get_db)):
    try:
        order = update_order(db, order_id, {"payment_status": body.payment_status.value})
    except (AppException, HTTPException):
        raise
    except Exception as e:
        return server_error("Error updating payment status", e)
    logger.info(
        "Order #%s payment status -> %s", order_id, body.payment_status.value, extra={"order_id": order_id}
    )
    return order
