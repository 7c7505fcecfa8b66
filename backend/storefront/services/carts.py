# storefront/services/carts.py
"""
Cart identity and pricing.

A cart document lives in `carts/{cart_id}` and is keyed either by an account
(`user_id`) or by an anonymous session token (`session_id`), never both:

    {
      "id": "...", "user_id": "uid" | None, "session_id": "token" | None,
      "items": [{"id": "...", "product_id": "...", "quantity": 2, "wish": "..."}],
      "created_at": datetime, "updated_at": datetime,
    }

Prices are never stored on cart lines; subtotals are always computed from the
live product document.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from google.cloud.firestore_v1.base_query import FieldFilter

from storefront.schemas.principal import Principal

logger = logging.getLogger("storefront.carts")

CARTS = "carts"
PRODUCTS = "products"
CENT = Decimal("0.01")


@dataclass
class ResolvedCart:
    cart: Dict[str, Any]
    set_cookie: Optional[str] = None   # session token the response must store
    clear_cookie: bool = False         # guest cookie is no longer needed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_item_id() -> str:
    return uuid.uuid4().hex


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ---------- persistence ----------

def load_cart(db, cart_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not cart_id or "/" in str(cart_id):
        return None
    snap = db.collection(CARTS).document(str(cart_id)).get()
    if not snap.exists:
        return None
    data = snap.to_dict() or {}
    data["id"] = snap.id
    data["items"] = list(data.get("items") or [])
    return data


def _find_cart(db, field: str, value: str) -> Optional[Dict[str, Any]]:
    docs = list(
        db.collection(CARTS)
          .where(filter=FieldFilter(field, "==", value))
          .limit(1)
          .stream()
    )
    if not docs:
        return None
    data = docs[0].to_dict() or {}
    data["id"] = docs[0].id
    data["items"] = list(data.get("items") or [])
    return data


def create_cart(db, user_id: Optional[str] = None, session_id: Optional[str] = None) -> Dict[str, Any]:
    ref = db.collection(CARTS).document()
    now = utcnow()
    cart = {
        "id": ref.id,
        "user_id": user_id,
        "session_id": None if user_id else session_id,
        "items": [],
        "created_at": now,
        "updated_at": now,
    }
    ref.set(cart)
    return cart


def save_cart(db, cart: Dict[str, Any]) -> Dict[str, Any]:
    cart["updated_at"] = utcnow()
    db.collection(CARTS).document(cart["id"]).set(cart)
    return cart


def delete_cart(db, cart_id: str, batch=None) -> None:
    ref = db.collection(CARTS).document(cart_id)
    if batch is not None:
        batch.delete(ref)
    else:
        ref.delete()


# ---------- merging ----------

def merge_items(target: List[Dict[str, Any]], source: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Folds `source` lines into `target`. Lines for the same product collapse into
    one row whose quantity is the sum; the first non-empty wish wins.
    """
    merged: Dict[str, Dict[str, Any]] = {}
    order: List[str] = []
    for line in list(target) + list(source):
        pid = str(line.get("product_id"))
        qty = int(line.get("quantity", 0) or 0)
        if pid in merged:
            merged[pid]["quantity"] += qty
            if not merged[pid].get("wish") and line.get("wish"):
                merged[pid]["wish"] = line["wish"]
        else:
            merged[pid] = {
                "id": line.get("id") or new_item_id(),
                "product_id": pid,
                "quantity": qty,
                "wish": line.get("wish"),
            }
            order.append(pid)
    return [merged[pid] for pid in order]


def _claim_guest_cart(db, user_cart: Optional[Dict[str, Any]], guest: Dict[str, Any], uid: str) -> Dict[str, Any]:
    if user_cart is None:
        # re-key the guest cart to the account
        guest["user_id"] = uid
        guest["session_id"] = None
        guest["items"] = merge_items([], guest["items"])
        logger.info("Guest cart %s re-keyed to account", guest["id"], extra={"cart_id": guest["id"]})
        return save_cart(db, guest)

    user_cart["items"] = merge_items(user_cart["items"], guest["items"])
    batch = db.batch()
    user_cart["updated_at"] = utcnow()
    batch.set(db.collection(CARTS).document(user_cart["id"]), user_cart)
    delete_cart(db, guest["id"], batch=batch)
    batch.commit()
    logger.info("Guest cart %s merged into %s", guest["id"], user_cart["id"], extra={"cart_id": user_cart["id"]})
    return user_cart


def _guest_candidates(db, cart_id: Optional[str], session_token: Optional[str]) -> List[Dict[str, Any]]:
    """
    Unowned carts named by `cart_id` and by the session cookie, in that order.
    Account-owned carts are skipped so the other identifier still gets a chance.
    """
    found: List[Dict[str, Any]] = []
    by_id = load_cart(db, cart_id)
    if by_id is not None:
        found.append(by_id)
    if session_token:
        by_session = _find_cart(db, "session_id", session_token)
        if by_session is not None and all(c["id"] != by_session["id"] for c in found):
            found.append(by_session)

    guests = []
    for cart in found:
        if cart.get("user_id"):
            logger.info("Skipping account-owned cart %s offered as guest cart", cart["id"], extra={"cart_id": cart["id"]})
            continue
        guests.append(cart)
    return guests


def resolve_cart(
    db,
    principal: Optional[Principal],
    session_token: Optional[str] = None,
    cart_id: Optional[str] = None,
) -> ResolvedCart:
    """
    Maps a request onto a durable cart.

    Authenticated (non-anonymous) principals always end up on their account
    cart; every guest cart presented alongside (by `cart_id` or cookie) is
    re-keyed or merged into it. Everybody else is served by `cart_id` or the
    session cookie, and gets a brand new guest cart (plus a cookie to
    remember it) when neither names an unowned cart.
    """
    guests = _guest_candidates(db, cart_id, session_token)

    if principal is not None and not principal.is_guest:
        uid = principal.uid
        user_cart = _find_cart(db, "user_id", uid)
        for guest in guests:
            user_cart = _claim_guest_cart(db, user_cart, guest, uid)
        if user_cart is None:
            user_cart = create_cart(db, user_id=uid)
        return ResolvedCart(cart=user_cart, clear_cookie=bool(session_token))

    if guests:
        guest = guests[0]
        token = guest.get("session_id")
        if not token:
            token = secrets.token_urlsafe(32)
            guest["session_id"] = token
            save_cart(db, guest)
        return ResolvedCart(cart=guest, set_cookie=token if token != session_token else None)

    token = secrets.token_urlsafe(32)
    return ResolvedCart(cart=create_cart(db, session_id=token), set_cookie=token)


# ---------- pricing ----------

def fetch_product(db, product_id: str) -> Optional[Dict[str, Any]]:
    snap = db.collection(PRODUCTS).document(str(product_id)).get()
    if not snap.exists:
        return None
    data = snap.to_dict() or {}
    data["id"] = snap.id
    return data


def unit_price(product: Dict[str, Any]) -> Decimal:
    price = Decimal(str(product.get("price", 0) or 0))
    discount = Decimal(str(product.get("discount_percentage", 0) or 0))
    return price * (Decimal(100) - discount) / Decimal(100)


def item_subtotal(quantity: int, product: Dict[str, Any]) -> Decimal:
    return unit_price(product) * int(quantity)


def price_lines(db, cart: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Decimal]:
    """
    Returns (lines, total). Each line carries the live product next to the cart
    row; lines whose product disappeared are kept with a zero subtotal.
    """
    lines: List[Dict[str, Any]] = []
    total = Decimal(0)
    cache: Dict[str, Optional[Dict[str, Any]]] = {}
    for it in cart.get("items", []):
        pid = str(it.get("product_id"))
        if pid not in cache:
            cache[pid] = fetch_product(db, pid)
        product = cache[pid]
        qty = int(it.get("quantity", 0) or 0)
        subtotal = item_subtotal(qty, product) if product else Decimal(0)
        total += subtotal
        lines.append({"item": it, "product": product, "subtotal": subtotal})
    return lines, money(total)


def _first_image(images: Any) -> Optional[str]:
    if isinstance(images, list) and images:
        return str(images[0]) if images[0] is not None else None
    return None


def cart_to_out(db, cart: Dict[str, Any]) -> Dict[str, Any]:
    lines, total = price_lines(db, cart)
    items_out = []
    for line in lines:
        it, p = line["item"], line["product"]
        items_out.append({
            "id": it["id"],
            "product_id": it["product_id"],
            "quantity": int(it["quantity"]),
            "wish": it.get("wish"),
            "subtotal": float(money(line["subtotal"])),
            "product": None if p is None else {
                "id": p["id"],
                "name": p.get("name", ""),
                "price": float(p.get("price", 0) or 0),
                "discount_percentage": float(p.get("discount_percentage", 0) or 0),
                "discounted_price": float(money(unit_price(p))),
                "status": p.get("status", ""),
                "image": _first_image(p.get("images")),
            },
        })
    return {
        "cart_id": cart["id"],
        "user_id": cart.get("user_id"),
        "items": items_out,
        "total": float(total),
        "updated_at": cart.get("updated_at"),
    }
