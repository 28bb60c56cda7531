# backend/routes/cart.py
from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional

from database import get_db
from models.cart import Cart
from models.users import User
from schemas.cart import (
    CartAddItem, CartUpdateItem, CartItemOut, CartOut,
    GuestCartAddItem, GuestCartUpdateItem, GuestSession,
)
from schemas.envelope import Envelope
from schemas.order import MergeCartPayload
from services import cart_store
from services.cart_store import CartIdentity
from services.errors import InvalidArgument
from utils.audit import write_log
from utils.tokenJWT import get_current_user

router = APIRouter(prefix="/api/cart", tags=["Cart"])

def _cart_to_out(cart: Cart, identity: CartIdentity) -> CartOut:
    items_out = []
    total = 0.0

    for it in cart.items:
        product = it.product
        if product is None:
            continue
        line_total = product.price * it.quantity
        total += line_total
        items_out.append(CartItemOut(
            product_id=product.id,
            name=product.name,
            price=product.price,
            image=product.image,
            stock=product.stock,
            category=product.category,
            quantity=it.quantity,
            line_total=round(line_total, 2),
        ))

    return CartOut(user_id=identity.value, is_guest=identity.is_guest, items=items_out, total=round(total, 2))

def _require_product_id(product_id):
    if product_id is None or product_id == "":
        raise InvalidArgument("Product ID is required")
    return product_id

def _ok(cart: Cart, identity: CartIdentity, message: Optional[str] = None) -> Envelope[CartOut]:
    return Envelope[CartOut](data=_cart_to_out(cart, identity), message=message)


# ---- Authenticated cart ----

@router.post("/add", response_model=Envelope[CartOut], response_model_exclude_none=True)
def add_to_cart(
    payload: CartAddItem,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    identity = CartIdentity.for_user(current_user.id)
    cart = cart_store.add_item(db, identity, _require_product_id(payload.product_id), payload.quantity)
    return _ok(cart, identity)

@router.get("", response_model=Envelope[CartOut], response_model_exclude_none=True)
def get_cart(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    identity = CartIdentity.for_user(current_user.id)
    return _ok(cart_store.get(db, identity), identity)

@router.put("/update", response_model=Envelope[CartOut], response_model_exclude_none=True)
def update_cart_item(
    payload: CartUpdateItem,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    identity = CartIdentity.for_user(current_user.id)
    cart = cart_store.set_item_quantity(db, identity, _require_product_id(payload.product_id), payload.quantity)
    return _ok(cart, identity)

@router.delete("/remove/{product_id}", response_model=Envelope[CartOut], response_model_exclude_none=True)
def remove_from_cart(
    product_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    identity = CartIdentity.for_user(current_user.id)
    return _ok(cart_store.remove_item(db, identity, product_id), identity)

@router.delete("/clear", response_model=Envelope[CartOut], response_model_exclude_none=True)
def clear_cart(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    identity = CartIdentity.for_user(current_user.id)
    return _ok(cart_store.clear(db, identity), identity, "Cart cleared successfully")

@router.post("/merge", response_model=Envelope[CartOut], response_model_exclude_none=True)
def merge_guest_cart(
    payload: MergeCartPayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    guest = CartIdentity.for_guest(payload.session_id)
    identity = CartIdentity.for_user(current_user.id)
    cart = cart_store.merge_guest_into_user(db, guest, identity)

    write_log(
        db,
        user_id=current_user.id,
        action="CART_MERGE",
        resource="cart",
        status="SUCCESS",
        ip=request.client.host if request.client else None,
        meta={"session_id": guest.value, "cart_items": len(cart.items)},
    )
    return _ok(cart, identity, "Guest cart merged")


# ---- Guest cart (session id in the body) ----

@router.post("/guest/add", response_model=Envelope[CartOut], response_model_exclude_none=True)
def add_to_guest_cart(payload: GuestCartAddItem, db: Session = Depends(get_db)):
    product_id = _require_product_id(payload.product_id)
    identity = CartIdentity.for_guest(payload.session_id)
    cart = cart_store.add_item(db, identity, product_id, payload.quantity)
    return _ok(cart, identity, "Item added to cart successfully")

@router.post("/guest/get", response_model=Envelope[CartOut], response_model_exclude_none=True)
def get_guest_cart(payload: GuestSession, db: Session = Depends(get_db)):
    if not payload.session_id:
        return Envelope[CartOut](data=CartOut(user_id="", is_guest=True, items=[], total=0))
    identity = CartIdentity.for_guest(payload.session_id)
    return _ok(cart_store.get(db, identity), identity)

@router.put("/guest/update", response_model=Envelope[CartOut], response_model_exclude_none=True)
def update_guest_cart_item(payload: GuestCartUpdateItem, db: Session = Depends(get_db)):
    product_id = _require_product_id(payload.product_id)
    identity = CartIdentity.for_guest(payload.session_id)
    cart = cart_store.set_item_quantity(db, identity, product_id, payload.quantity)
    return _ok(cart, identity, "Cart updated successfully")

@router.delete("/guest/remove/{product_id}", response_model=Envelope[CartOut], response_model_exclude_none=True)
def remove_from_guest_cart(
    product_id: str,
    payload: Optional[GuestSession] = Body(None),
    db: Session = Depends(get_db),
):
    identity = CartIdentity.for_guest(payload.session_id if payload else None)
    return _ok(cart_store.remove_item(db, identity, product_id), identity, "Item removed from cart")

@router.post("/guest/clear", response_model=Envelope[CartOut], response_model_exclude_none=True)
def clear_guest_cart(payload: GuestSession, db: Session = Depends(get_db)):
    if not payload.session_id:
        return Envelope[CartOut](message="No session ID provided")
    identity = CartIdentity.for_guest(payload.session_id)
    return _ok(cart_store.clear(db, identity), identity, "Guest cart cleared successfully")
