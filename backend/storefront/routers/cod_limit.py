# storefront/routers/cod_limit.py
"""
Cash-on-delivery ceiling. A single document (`cod_limits/current`); while it is
active, COD orders whose total plus shipping exceed `limit_amount` are refused.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from storefront.config import get_db
from storefront.core.errors import NotFoundException
from storefront.core.security import get_current_admin
from storefront.schemas.delivery import CodLimitOut, CodLimitUpdate
from storefront.services.carts import utcnow
from storefront.services.orders import active_cod_limit, cod_limit_ref

logger = logging.getLogger("storefront.cod_limit")


def _out(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data.get("id", "current"),
        "limit_amount": float(data.get("limit_amount", 0) or 0),
        "is_active": bool(data.get("is_active", False)),
        "updated_at": data.get("updated_at"),
    }


# ---------- Public ----------
router = APIRouter(prefix="/cod-limit", tags=["COD Limit"])


@router.get("", response_model=CodLimitOut)
def get_cod_limit(db=Depends(get_db)):
    limit = active_cod_limit(db)
    if limit is None:
        raise NotFoundException("COD limit not found")
    return _out(limit)


# ---------- Admin ----------
admin_router = APIRouter(prefix="/cod-limit", tags=["Admin COD Limit"], dependencies=[Depends(get_current_admin)])


@admin_router.put("", response_model=CodLimitOut)
def update_cod_limit(body: CodLimitUpdate, db=Depends(get_db)):
    ref = cod_limit_ref(db)
    snap = ref.get()
    data = (snap.to_dict() or {}) if snap.exists else {"is_active": True}
    data["limit_amount"] = body.limit_amount
    if body.is_active is not None:
        data["is_active"] = body.is_active
    data["updated_at"] = utcnow()
    ref.set(data)
    logger.info("COD limit set to %.2f (active=%s)", body.limit_amount, data["is_active"])
    data["id"] = ref.id
    return _out(data)


@admin_router.post("/toggle", response_model=CodLimitOut)
def toggle_cod_limit(db=Depends(get_db)):
    ref = cod_limit_ref(db)
    snap = ref.get()
    if not snap.exists:
        raise NotFoundException("COD limit not found")
    data = snap.to_dict() or {}
    data["is_active"] = not data.get("is_active", False)
    data["updated_at"] = utcnow()
    ref.update({"is_active": data["is_active"], "updated_at": data["updated_at"]})
    logger.info("COD limit %s", "enabled" if data["is_active"] else "disabled")
    data["id"] = ref.id
    return _out(data)
