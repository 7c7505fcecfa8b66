# storefront/services/orders.py
"""
Order assembly: turns a cart into an immutable order snapshot.

    location  = active delivery location named by `city`      (else 422 on city)
    cart      = carts/{cart_id} with at least one line          (else 404)
    total     = sum(quantity * price * (1 - discount/100))      (live products)
    shipping  = payload.shipping_charge or location.shipping_charge

The order document, its embedded line snapshots and the cart mutation are
committed in a single Firestore write batch.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from storefront.core.errors import AppException, FieldValidationError, NotFoundException
from storefront.schemas.order import OrderCreate, OrderStatus, PaymentStatus, PaymentType
from storefront.services.carts import CARTS, load_cart, money, price_lines, unit_price, utcnow

logger = logging.getLogger("storefront.orders")

ORDERS = "orders"
LOCATIONS = "delivery_locations"
COD_LIMITS = "cod_limits"
COD_LIMIT_DOC = "current"

_CLOSED_FOR_CANCEL = {OrderStatus.shipped.value, OrderStatus.delivered.value}


def city_key(city: str) -> str:
    return " ".join(city.split()).lower()


def active_location(db, city: str) -> Dict[str, Any]:
    # `city_key` is the normalised name; rows written before it existed match on `city`
    for field, value in (("city_key", city_key(city)), ("city", city.strip())):
        docs = list(
            db.collection(LOCATIONS)
              .where(filter=FieldFilter(field, "==", value))
              .where(filter=FieldFilter("is_active", "==", True))
              .limit(1)
              .stream()
        )
        if docs:
            data = docs[0].to_dict() or {}
            data["id"] = docs[0].id
            return data
    raise FieldValidationError.single("city", "The selected city is not an active delivery location.")


def cod_limit_ref(db):
    return db.collection(COD_LIMITS).document(COD_LIMIT_DOC)


def active_cod_limit(db) -> Optional[Dict[str, Any]]:
    snap = cod_limit_ref(db).get()
    if not snap.exists:
        return None
    data = snap.to_dict() or {}
    if not data.get("is_active"):
        return None
    data["id"] = snap.id
    return data


def snapshot_lines(lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    items = []
    for line in lines:
        it, product = line["item"], line["product"]
        items.append({
            "product_id": product["id"],
            "product_name": product.get("name", ""),
            "quantity": int(it["quantity"]),
            "unit_price": float(money(unit_price(product))),
            "total_price": float(money(line["subtotal"])),
            "wish": it.get("wish"),
        })
    return items


def place_order(db, payload: OrderCreate, payment_type: PaymentType, user_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Creates the order and returns it (with `id`).
    Cash on delivery empties the cart in the same batch; card orders keep the
    cart until the gateway confirms payment.
    """
    location = active_location(db, payload.city)

    cart = load_cart(db, payload.cart_id)
    if not cart or not cart["items"]:
        raise NotFoundException("Cart not found or empty")

    lines, total = price_lines(db, cart)
    missing = [line["item"]["product_id"] for line in lines if line["product"] is None]
    if missing:
        raise FieldValidationError.single(
            "cart_id", f"Products no longer available: {', '.join(map(str, missing))}"
        )

    if payload.shipping_charge is not None:
        shipping = money(Decimal(str(payload.shipping_charge)))
    else:
        shipping = money(Decimal(str(location.get("shipping_charge", 0) or 0)))

    if payment_type == PaymentType.cash_on_delivery:
        limit = active_cod_limit(db)
        if limit is not None:
            ceiling = Decimal(str(limit.get("limit_amount", 0) or 0))
            if total + shipping > ceiling:
                raise FieldValidationError.single(
                    "payment_type", f"Cash on delivery is only available for orders up to {ceiling:.2f}"
                )

    now = utcnow()
    order_ref = db.collection(ORDERS).document()
    order = {
        "id": order_ref.id,
        "customer_name": payload.customer_name,
        "contact_number": payload.contact_number,
        "city": location.get("city"),
        "delivery_location_id": location["id"],
        "address": payload.address,
        "user_id": user_id,
        "status": OrderStatus.pending.value,
        "payment_type": payment_type.value,
        "payment_status": PaymentStatus.pending.value,
        "total_amount": float(total),
        "shipping_charge": float(shipping),
        "cart_id": cart["id"] if payment_type == PaymentType.card_payment else None,
        "req_datetime": payload.req_datetime or now,
        "order_datetime": now,
        "items": snapshot_lines(lines),
        "created_at": now,
        "updated_at": now,
    }

    batch = db.batch()
    batch.set(order_ref, order)
    if payment_type == PaymentType.cash_on_delivery:
        batch.update(db.collection(CARTS).document(cart["id"]), {"items": [], "updated_at": now})
    batch.commit()

    logger.info(
        "Order %s placed (%s) total=%s shipping=%s", order["id"], payment_type.value, total, shipping,
        extra={"order_id": order["id"], "cart_id": cart["id"]},
    )
    return order


def get_order(db, order_id: str) -> Dict[str, Any]:
    if not order_id or "/" in order_id:
        raise NotFoundException("Order not found")
    snap = db.collection(ORDERS).document(order_id).get()
    if not snap.exists:
        raise NotFoundException("Order not found")
    data = snap.to_dict() or {}
    data["id"] = snap.id
    return data


def update_order(db, order_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    order = get_order(db, order_id)
    patch = {**patch, "updated_at": utcnow()}
    db.collection(ORDERS).document(order_id).update(patch)
    order.update(patch)
    return order


def cancel_order(db, order_id: str) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if order.get("status") in _CLOSED_FOR_CANCEL:
        raise AppException(f"Cannot cancel order in {order['status']} status")
    return update_order(db, order_id, {"status": OrderStatus.cancelled.value})
