"""
storefront/routers/carts.py
Cart endpoints for guests and signed-in customers.

Identity
- Signed-in customers (Firebase ID token, non-anonymous) always work on their
  account cart. A guest cart sent along (`cart_session` cookie or `cart_id`) is
  merged into it and the guest cookie is cleared.
- Guests are identified by the `cart_session` cookie or an explicit `cart_id`.
  When neither matches, a new cart is created and the cookie is set.

Pricing
- Lines never store prices; every response prices the cart from the live
  product documents (`price * (1 - discount/100)`).
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from storefront.config import get_db, settings
from storefront.core.auth import get_optional_principal
from storefront.core.errors import FieldValidationError, NotFoundException
from storefront.schemas.cart import CartItemAdd, CartItemUpdate, CartOut
from storefront.schemas.principal import Principal
from storefront.schemas.product import ProductStatus
from storefront.services.carts import (
    ResolvedCart,
    cart_to_out,
    fetch_product,
    merge_items,
    new_item_id,
    resolve_cart,
    save_cart,
)

router = APIRouter(prefix="/cart", tags=["Cart"])


# ---------- helpers ----------
def _resolve(request: Request, db, principal: Optional[Principal], cart_id: Optional[str]) -> ResolvedCart:
    token = request.cookies.get(settings.cart_cookie_name)
    return resolve_cart(db, principal, session_token=token, cart_id=cart_id)


def _apply_cookie(response: Response, resolved: ResolvedCart) -> None:
    if resolved.set_cookie:
        response.set_cookie(
            key=settings.cart_cookie_name,
            value=resolved.set_cookie,
            max_age=settings.cart_cookie_days * 24 * 60 * 60,
            httponly=True,
            samesite="lax",
        )
    elif resolved.clear_cookie:
        response.delete_cookie(settings.cart_cookie_name)


def _find_line(cart: dict, item_id: str) -> dict:
    for it in cart["items"]:
        if it.get("id") == item_id:
            return it
    raise NotFoundException("Cart item not found")


# ---------- routes ----------
@router.get("", response_model=CartOut)
@router.get("/", response_model=CartOut, include_in_schema=False)
def get_cart(
    request: Request,
    response: Response,
    cart_id: Optional[str] = Query(None),
    db=Depends(get_db),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    resolved = _resolve(request, db, principal, cart_id)
    _apply_cookie(response, resolved)
    return cart_to_out(db, resolved.cart)


@router.post("/items", status_code=201)
def add_item(
    body: CartItemAdd,
    request: Request,
    response: Response,
    cart_id: Optional[str] = Query(None),
    db=Depends(get_db),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    product = fetch_product(db, body.product_id)
    if product is None:
        raise NotFoundException("Product not found")
    if product.get("status") != ProductStatus.in_stock.value:
        raise FieldValidationError.single("product_id", "Product is not available for purchase")

    resolved = _resolve(request, db, principal, body.cart_id or cart_id)
    cart = resolved.cart
    line = {"id": new_item_id(), "product_id": product["id"], "quantity": body.quantity, "wish": body.wish}
    cart["items"] = merge_items(cart["items"], [line])
    if body.wish:
        # a fresh wish replaces the one already on the line
        for it in cart["items"]:
            if it["product_id"] == product["id"]:
                it["wish"] = body.wish
    save_cart(db, cart)
    _apply_cookie(response, resolved)

    out = cart_to_out(db, cart)
    added = next((i for i in out["items"] if i["product_id"] == product["id"]), None)
    return {"message": "Item added to cart", "cart_id": cart["id"], "item": added, "cart": out}


@router.put("/items/{item_id}")
def update_item(
    item_id: str,
    body: CartItemUpdate,
    request: Request,
    response: Response,
    cart_id: Optional[str] = Query(None),
    db=Depends(get_db),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    resolved = _resolve(request, db, principal, body.cart_id or cart_id)
    cart = resolved.cart
    line = _find_line(cart, item_id)
    if body.quantity is not None:
        line["quantity"] = body.quantity
    if "wish" in body.model_fields_set:
        line["wish"] = body.wish
    save_cart(db, cart)
    _apply_cookie(response, resolved)
    return {"message": "Cart item updated", "cart_id": cart["id"], "cart": cart_to_out(db, cart)}


@router.delete("/items/{item_id}")
def remove_item(
    item_id: str,
    request: Request,
    response: Response,
    cart_id: Optional[str] = Query(None),
    db=Depends(get_db),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    resolved = _resolve(request, db, principal, cart_id)
    cart = resolved.cart
    line = _find_line(cart, item_id)
    cart["items"] = [it for it in cart["items"] if it is not line]
    save_cart(db, cart)
    _apply_cookie(response, resolved)
    return {"message": "Item removed from cart", "cart_id": cart["id"], "cart": cart_to_out(db, cart)}


@router.delete("")
@router.delete("/", include_in_schema=False)
def clear_cart(
    request: Request,
    response: Response,
    cart_id: Optional[str] = Query(None),
    db=Depends(get_db),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    resolved = _resolve(request, db, principal, cart_id)
    cart = resolved.cart
    cart["items"] = []
    save_cart(db, cart)
    _apply_cookie(response, resolved)
    return {"message": "Cart cleared successfully", "cart_id": cart["id"]}
