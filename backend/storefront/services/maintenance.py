# storefront/services/maintenance.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from storefront.config import get_db, settings
from storefront.schemas.order import PaymentStatus, PaymentType
from storefront.services.carts import CARTS, utcnow
from storefront.services.orders import ORDERS

logger = logging.getLogger("storefront.maintenance")

# Firestore caps a write batch at 500 operations
_BATCH_LIMIT = 400


def _delete_all(db, refs: Iterable) -> int:
    count = 0
    batch = db.batch()
    pending = 0
    for ref in refs:
        batch.delete(ref)
        pending += 1
        count += 1
        if pending >= _BATCH_LIMIT:
            batch.commit()
            batch = db.batch()
            pending = 0
    if pending:
        batch.commit()
    return count


def remove_old_carts(db, cutoff: datetime) -> int:
    docs = db.collection(CARTS).where(filter=FieldFilter("updated_at", "<", cutoff)).stream()
    count = _delete_all(db, (d.reference for d in docs))
    if count:
        logger.info("Removed %d carts older than %s", count, cutoff.isoformat())
    return count


def remove_old_pending_orders(db, cutoff: datetime) -> int:
    docs = (
        db.collection(ORDERS)
          .where(filter=FieldFilter("payment_type", "==", PaymentType.card_payment.value))
          .where(filter=FieldFilter("payment_status", "==", PaymentStatus.pending.value))
          .where(filter=FieldFilter("order_datetime", "<", cutoff))
          .stream()
    )
    count = _delete_all(db, (d.reference for d in docs))
    if count:
        logger.info("Removed %d pending card payment orders older than %s", count, cutoff.isoformat())
    return count


def cleanup_old_data(db, now: Optional[datetime] = None, stale_after_days: Optional[int] = None) -> Dict[str, int]:
    """Deletes stale carts and abandoned card orders; returns how many of each."""
    days = settings.stale_after_days if stale_after_days is None else stale_after_days
    cutoff = (now or utcnow()) - timedelta(days=days)
    carts_removed = remove_old_carts(db, cutoff)
    orders_removed = remove_old_pending_orders(db, cutoff)
    logger.info(
        "Maintenance cleanup completed: %d carts and %d pending orders removed", carts_removed, orders_removed
    )
    return {"carts_removed": carts_removed, "orders_removed": orders_removed}


def run_scheduled_cleanup() -> None:
    """APScheduler job entry point."""
    try:
        cleanup_old_data(get_db())
    except Exception:
        logger.exception("Error during maintenance cleanup")
