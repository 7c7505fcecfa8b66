"""
# `storefront/routers/products.py` - Catalog

## Public
- `GET /products?limit=20` → newest first, only `in_stock` / `out_of_stock`
  (`deactive` products are hidden). `limit` is clamped to 1..100.
- `GET /products/search?q=&category_id=&min_price=&max_price=&status=` → text match on
  name/description, price range on the discounted price; `deactive` never shown.
- `GET /products/{product_id}` → 404 `{"message": "Product not found"}` when missing.

## Admin (`/admin/products`)
- `GET    /admin/products?limit=` → every product, including deactivated ones.
- `POST   /admin/products` → multipart form; `image1` required, `image2`/`image3` optional.
- `PUT    /admin/products/{id}` → partial multipart update; uploaded images replace the slot they name.
- `DELETE /admin/products/{id}` → removes the document and its stored images.

Images go to Firebase Storage under `products/{product_id}/`; the public URL
(or a long-lived signed URL when the bucket refuses ACL changes) is stored in
`images`, the blob names in `image_paths`.

`discounted_price` is never trusted from the client: it is derived from
`price` and `discount_percentage`. When only `discounted_price` is sent, the
percentage is back-computed from it.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from google.cloud import firestore as gcf
from google.cloud.firestore_v1.base_query import FieldFilter

from storefront.config import get_bucket, get_db
from storefront.core.errors import AppException, FieldValidationError, NotFoundException, server_error
from storefront.core.security import get_current_admin
from storefront.schemas.product import (
    ProductCreate,
    ProductOut,
    ProductStatus,
    ProductUpdate,
    discounted_price,
)
from storefront.services.carts import PRODUCTS, utcnow

logger = logging.getLogger("storefront.products")

_IMAGE_TYPES = {"image/jpeg", "image/png", "image/jpg", "image/gif"}
_MAX_IMAGE_BYTES = 2 * 1024 * 1024
_SIGNED_URL_TTL = 3600 * 24 * 365 * 10


def _to_out(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    price = float(data.get("price", 0) or 0)
    discount = float(data.get("discount_percentage", 0) or 0)
    return {
        "id": doc_id,
        "name": data.get("name", ""),
        "description": data.get("description", ""),
        "category_id": data.get("category_id"),
        "character_count": data.get("character_count"),
        "price": price,
        "discount_percentage": discount,
        "discounted_price": discounted_price(price, discount),
        "status": data.get("status", ProductStatus.unavailable.value),
        "daily_deals": bool(data.get("daily_deals", False)),
        "images": [u for u in (data.get("images") or []) if u],
        "created_at": data.get("created_at"),
        "updated_at": data.get("updated_at"),
    }


def _resolve_discount(price: float, discount: Optional[float], given_discounted: Optional[float]) -> float:
    if given_discounted is not None and price > 0:
        if given_discounted >= price:
            raise FieldValidationError.single("discounted_price", "The discounted price must be less than the price.")
        if discount is None:
            back = (Decimal(str(price)) - Decimal(str(given_discounted))) / Decimal(str(price)) * 100
            return float(back.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    return float(discount or 0)


def _check_image(field: str, img: UploadFile) -> None:
    if img.content_type not in _IMAGE_TYPES:
        raise FieldValidationError.single(field, "The file must be an image of type: jpeg, png, jpg, gif.")
    if img.size is not None and img.size > _MAX_IMAGE_BYTES:
        raise FieldValidationError.single(field, "The image may not be greater than 2048 kilobytes.")


def _upload(bucket, product_id: str, img: UploadFile) -> Dict[str, str]:
    fname = f"{uuid4().hex}_{img.filename or 'image.jpg'}"
    blob = bucket.blob(f"products/{product_id}/{fname}")
    blob.upload_from_file(img.file, content_type=img.content_type)
    try:
        blob.make_public()
        url = blob.public_url
    except Exception:
        url = blob.generate_signed_url(expiration=_SIGNED_URL_TTL)
    return {"url": url, "path": blob.name}


def _remove_blobs(bucket, paths: List[Optional[str]]) -> None:
    for path in paths:
        if not path:
            continue
        try:
            bucket.blob(path).delete()
        except Exception as e:
            logger.warning("Could not delete image %s: %s", path, e)


# ---------- Public ----------
router = APIRouter(prefix="/products", tags=["Products"])


@router.get("", response_model=List[ProductOut])
@router.get("/", response_model=List[ProductOut], include_in_schema=False)
def list_products(limit: int = Query(20), db=Depends(get_db)):
    limit = max(1, min(limit, 100))
    visible = [ProductStatus.in_stock.value, ProductStatus.out_of_stock.value]
    docs = (
        db.collection(PRODUCTS)
          .where(filter=FieldFilter("status", "in", visible))
          .order_by("created_at", direction=gcf.Query.DESCENDING)
          .limit(limit)
          .stream()
    )
    return [_to_out(d.id, d.to_dict() or {}) for d in docs]


@router.get("/search", response_model=List[ProductOut])
def search_products(
    q: Optional[str] = Query(None),
    category_id: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    status_: Optional[ProductStatus] = Query(None, alias="status"),
    limit: int = Query(20),
    db=Depends(get_db),
):
    limit = max(1, min(limit, 100))
    if status_ == ProductStatus.unavailable:
        return []

    query = db.collection(PRODUCTS)
    if category_id:
        query = query.where(filter=FieldFilter("category_id", "==", category_id))
    if status_ is not None:
        query = query.where(filter=FieldFilter("status", "==", status_.value))
    else:
        visible = [ProductStatus.in_stock.value, ProductStatus.out_of_stock.value]
        query = query.where(filter=FieldFilter("status", "in", visible))

    # no substring or combined range queries in Firestore; price and text are checked here
    needle = (q or "").strip().lower()
    docs = sorted(
        query.stream(),
        key=lambda d: (d.to_dict() or {}).get("created_at") or utcnow(),
        reverse=True,
    )
    results = []
    for d in docs:
        product = _to_out(d.id, d.to_dict() or {})
        if needle and needle not in product["name"].lower() and needle not in (product["description"] or "").lower():
            continue
        if min_price is not None and product["discounted_price"] < min_price:
            continue
        if max_price is not None and product["discounted_price"] > max_price:
            continue
        results.append(product)
        if len(results) >= limit:
            break
    return results


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db=Depends(get_db)):
    snap = db.collection(PRODUCTS).document(product_id).get()
    if not snap.exists:
        raise NotFoundException("Product not found")
    return _to_out(snap.id, snap.to_dict() or {})


# ---------- Admin ----------
admin_router = APIRouter(prefix="/products", tags=["Admin Products"], dependencies=[Depends(get_current_admin)])


@admin_router.get("", response_model=List[ProductOut])
def admin_list_products(limit: Optional[int] = Query(None, ge=1, le=500), db=Depends(get_db)):
    q = db.collection(PRODUCTS).order_by("created_at", direction=gcf.Query.DESCENDING)
    if limit:
        q = q.limit(limit)
    return [_to_out(d.id, d.to_dict() or {}) for d in q.stream()]


@admin_router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    product_in: ProductCreate = Depends(ProductCreate.as_form),
    image1: UploadFile = File(..., description="Main image"),
    image2: Optional[UploadFile] = File(None),
    image3: Optional[UploadFile] = File(None),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
):
    slots = [("image1", image1), ("image2", image2), ("image3", image3)]
    for field, img in slots:
        if img is not None and img.filename:
            _check_image(field, img)
    discount = _resolve_discount(product_in.price, product_in.discount_percentage, product_in.discounted_price)

    try:
        ref = db.collection(PRODUCTS).document()
        images, paths = [], []
        for _, img in slots:
            if img is not None and img.filename:
                stored = _upload(bucket, ref.id, img)
                images.append(stored["url"])
                paths.append(stored["path"])

        now = utcnow()
        data = product_in.model_dump(exclude={"discounted_price"})
        data.update(
            status=product_in.status.value,
            discount_percentage=discount,
            discounted_price=discounted_price(product_in.price, discount),
            images=images,
            image_paths=paths,
            created_at=now,
            updated_at=now,
        )
        ref.set(data)
    except (AppException, HTTPException):
        raise
    except Exception as e:
        return server_error("Error creating product", e)

    logger.info("Product %s created", ref.id)
    return _to_out(ref.id, data)


@admin_router.put("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    product_in: ProductUpdate = Depends(ProductUpdate.as_form),
    image1: Optional[UploadFile] = File(None),
    image2: Optional[UploadFile] = File(None),
    image3: Optional[UploadFile] = File(None),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
):
    ref = db.collection(PRODUCTS).document(product_id)
    snap = ref.get()
    if not snap.exists:
        raise NotFoundException("Product not found")
    current = snap.to_dict() or {}

    slots = [("image1", image1), ("image2", image2), ("image3", image3)]
    for field, img in slots:
        if img is not None and img.filename:
            _check_image(field, img)

    patch = product_in.model_dump(exclude_unset=True, exclude_none=True, exclude={"discounted_price"})
    if "status" in patch:
        patch["status"] = product_in.status.value
    price = float(patch.get("price", current.get("price", 0)) or 0)
    if "discount_percentage" in patch or product_in.discounted_price is not None:
        discount = _resolve_discount(price, product_in.discount_percentage, product_in.discounted_price)
    else:
        discount = float(current.get("discount_percentage", 0) or 0)
    patch["discount_percentage"] = discount
    patch["discounted_price"] = discounted_price(price, discount)

    try:
        images = list(current.get("images") or [])
        paths = list(current.get("image_paths") or [])
        replaced = []
        for idx, (_, img) in enumerate(slots):
            if img is None or not img.filename:
                continue
            stored = _upload(bucket, product_id, img)
            while len(images) <= idx:
                images.append(None)
                paths.append(None)
            replaced.append(paths[idx])
            images[idx], paths[idx] = stored["url"], stored["path"]
        if replaced:
            patch["images"] = images
            patch["image_paths"] = paths

        patch["updated_at"] = utcnow()
        ref.update(patch)
        if replaced:
            _remove_blobs(bucket, replaced)
    except (AppException, HTTPException):
        raise
    except Exception as e:
        return server_error("Error updating product", e)

    current.update(patch)
    logger.info("Product %s updated", product_id)
    return _to_out(product_id, current)


@admin_router.delete("/{product_id}")
def delete_product(product_id: str, db=Depends(get_db), bucket=Depends(get_bucket)):
    ref = db.collection(PRODUCTS).document(product_id)
    snap = ref.get()
    if not snap.exists:
        raise NotFoundException("Product not found")
    data = snap.to_dict() or {}
    try:
        ref.delete()
        _remove_blobs(bucket, data.get("image_paths") or [])
    except Exception as e:
        return server_error("Error deleting product", e)
    logger.info("Product %s deleted", product_id)
    return {"message": "Product deleted successfully"}
