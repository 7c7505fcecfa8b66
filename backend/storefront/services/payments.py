# storefront/services/payments.py
"""
PayHere notification handling (one-shot, no retry).

    pending --(valid signature, status_code == success)--> success  (cart deleted)
    pending --(anything else)--> order deleted        [failure_action = "delete"]
                              `-> payment_status=failed [failure_action = "mark_failed"]

Only pending card orders move; notifications for anything else (paid,
failed, cash on delivery) leave the order untouched and answer 400.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from storefront.integrations.payhere import (
    PayHereConfig,
    PayHereNotification,
    is_successful,
    signature_matches,
)
from storefront.schemas.order import PaymentStatus, PaymentType
from storefront.services.carts import CARTS, utcnow
from storefront.services.orders import ORDERS

logger = logging.getLogger("storefront.payhere")


class NotificationOutcome(str, Enum):
    paid = "paid"
    order_missing = "order_missing"
    rejected = "rejected"
    ignored = "ignored"


def _load(db, order_id: str) -> Tuple[Any, Optional[Dict[str, Any]]]:
    ref = db.collection(ORDERS).document(order_id)
    snap = ref.get()
    if not snap.exists:
        return ref, None
    data = snap.to_dict() or {}
    data["id"] = snap.id
    return ref, data


def _mark_paid(db, ref, order: Dict[str, Any]) -> None:
    now = utcnow()
    batch = db.batch()
    batch.update(ref, {"payment_status": PaymentStatus.success.value, "updated_at": now})
    cart_id = order.get("cart_id")
    if cart_id:
        cart_ref = db.collection(CARTS).document(cart_id)
        if cart_ref.get().exists:
            # items are embedded, so removing the document removes them too
            batch.delete(cart_ref)
    batch.commit()
    order["payment_status"] = PaymentStatus.success.value
    order["updated_at"] = now


def _reject(db, ref, order: Optional[Dict[str, Any]], config: PayHereConfig, order_id: str) -> None:
    if order is None:
        logger.warning("Failed to reject order #%s: Order not found", order_id, extra={"order_id": order_id})
        return
    if config.failure_action == "mark_failed":
        ref.update({"payment_status": PaymentStatus.failed.value, "updated_at": utcnow()})
        logger.info("Order #%s marked as failed", order_id, extra={"order_id": order_id})
    else:
        ref.delete()
        logger.info("Order #%s deleted due to payment verification failure", order_id, extra={"order_id": order_id})


def _awaiting_payment(order: Dict[str, Any]) -> bool:
    return (
        order.get("payment_type") == PaymentType.card_payment.value
        and order.get("payment_status") == PaymentStatus.pending.value
    )


def process_notification(
    db, config: PayHereConfig, note: PayHereNotification
) -> Tuple[NotificationOutcome, Optional[Dict[str, Any]]]:
    order_id = note.order_id.strip()
    if not order_id or "/" in order_id:
        logger.warning("Notification with malformed order id %r", note.order_id)
        return NotificationOutcome.order_missing, None
    ref, order = _load(db, order_id)

    if order is not None and not _awaiting_payment(order):
        # only pending card orders may change state
        logger.warning(
            "Ignoring notification for order #%s (payment_type=%s, payment_status=%s)",
            order_id, order.get("payment_type"), order.get("payment_status"),
            extra={"order_id": order_id},
        )
        return NotificationOutcome.ignored, order

    if is_successful(config, note):
        if order is None:
            logger.error("Order #%s not found", order_id, extra={"order_id": order_id})
            return NotificationOutcome.order_missing, None
        _mark_paid(db, ref, order)
        logger.info("Payment successful for order #%s. Cart deleted.", order_id, extra={"order_id": order_id})
        return NotificationOutcome.paid, order

    if not signature_matches(config, note):
        logger.warning("MD5 signature mismatch for order #%s", order_id, extra={"order_id": order_id})
    if note.status_code.strip() != str(config.success_code):
        logger.warning(
            "Payment unsuccessful for order #%s, status code: %s", order_id, note.status_code,
            extra={"order_id": order_id},
        )
    _reject(db, ref, order, config, order_id)
    return NotificationOutcome.rejected, order
