# storefront/routers/delivery_locations.py
"""
Delivery locations: the cities the shop delivers to and their shipping charge.

- Public: GET /delivery-locations → active locations, sorted by city
- Admin : /admin/delivery-locations → list / create / show / update / delete
          (city names are unique, compared case-insensitively)
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status

from google.cloud.firestore_v1.base_query import FieldFilter

from storefront.config import get_db
from storefront.core.errors import FieldValidationError, NotFoundException, server_error
from storefront.core.security import get_current_admin
from storefront.schemas.delivery import DeliveryLocationIn, DeliveryLocationOut
from storefront.services.carts import utcnow
from storefront.services.orders import LOCATIONS, city_key

logger = logging.getLogger("storefront.delivery")


def _doc_to_out(doc) -> Dict[str, Any]:
    data = doc.to_dict() or {}
    return {
        "id": doc.id,
        "city": data.get("city", ""),
        "shipping_charge": float(data.get("shipping_charge", 0) or 0),
        "is_active": bool(data.get("is_active", False)),
        "created_at": data.get("created_at"),
        "updated_at": data.get("updated_at"),
    }


def _all_locations(db) -> List[Dict[str, Any]]:
    return sorted((_doc_to_out(d) for d in db.collection(LOCATIONS).stream()), key=lambda l: l["city"].lower())


def _to_doc(body: DeliveryLocationIn) -> Dict[str, Any]:
    return {**body.model_dump(), "city_key": city_key(body.city)}


def _ensure_unique_city(db, city: str, exclude_id: Optional[str] = None) -> None:
    for loc in _all_locations(db):
        if city_key(loc["city"]) == city_key(city) and loc["id"] != exclude_id:
            raise FieldValidationError.single("city", "The city has already been taken.")


def _get_or_404(db, location_id: str):
    snap = db.collection(LOCATIONS).document(location_id).get()
    if not snap.exists:
        raise NotFoundException("Delivery location not found")
    return snap


# ---------- Public ----------
router = APIRouter(prefix="/delivery-locations", tags=["Delivery Locations"])


@router.get("", response_model=List[DeliveryLocationOut])
@router.get("/", response_model=List[DeliveryLocationOut], include_in_schema=False)
def list_active_locations(db=Depends(get_db)):
    docs = db.collection(LOCATIONS).where(filter=FieldFilter("is_active", "==", True)).stream()
    return sorted((_doc_to_out(d) for d in docs), key=lambda l: l["city"].lower())


# ---------- Admin ----------
admin_router = APIRouter(
    prefix="/delivery-locations",
    tags=["Admin Delivery Locations"],
    dependencies=[Depends(get_current_admin)],
)


@admin_router.get("", response_model=List[DeliveryLocationOut])
def admin_list_locations(db=Depends(get_db)):
    return _all_locations(db)


@admin_router.post("", response_model=DeliveryLocationOut, status_code=status.HTTP_201_CREATED)
def create_location(body: DeliveryLocationIn, db=Depends(get_db)):
    _ensure_unique_city(db, body.city)
    try:
        ref = db.collection(LOCATIONS).document()
        now = utcnow()
        ref.set({**_to_doc(body), "created_at": now, "updated_at": now})
    except Exception as e:
        return server_error("Error creating delivery location", e)
    logger.info("Delivery location %s (%s) created", ref.id, body.city)
    return _doc_to_out(ref.get())


@admin_router.get("/{location_id}", response_model=DeliveryLocationOut)
def show_location(location_id: str, db=Depends(get_db)):
    return _doc_to_out(_get_or_404(db, location_id))


@admin_router.put("/{location_id}", response_model=DeliveryLocationOut)
def update_location(location_id: str, body: DeliveryLocationIn, db=Depends(get_db)):
    snap = _get_or_404(db, location_id)
    _ensure_unique_city(db, body.city, exclude_id=location_id)
    try:
        snap.reference.update({**_to_doc(body), "updated_at": utcnow()})
    except Exception as e:
        return server_error("Error updating delivery location", e)
    return _doc_to_out(snap.reference.get())


@admin_router.delete("/{location_id}")
def delete_location(location_id: str, db=Depends(get_db)):
    snap = _get_or_404(db, location_id)
    try:
        snap.reference.delete()
    except Exception as e:
        return server_error("Error deleting delivery location", e)
    logger.info("Delivery location %s deleted", location_id)
    return {"message": "Delivery location deleted successfully"}
