"""Cart store shared by authenticated users and guest sessions.

A cart record is keyed by a namespaced identity, so a guest session and a
user never share storage even when the raw ids collide. Carts are created
lazily on the first successful add; reading a missing cart returns an empty,
unsaved ``Cart`` instead of creating one.
"""
from dataclasses import dataclass
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.cart import Cart, CartItem
from models.product import Product
from services.errors import InsufficientStock, InvalidArgument, NotFound
from services.inventory import parse_product_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartIdentity:
    value: str
    is_guest: bool = False

    @classmethod
    def for_user(cls, user_id) -> "CartIdentity":
        return cls(value=str(user_id), is_guest=False)

    @classmethod
    def for_guest(cls, session_id: str) -> "CartIdentity":
        if not session_id or not str(session_id).strip():
            raise InvalidArgument("Session ID is required")
        return cls(value=str(session_id).strip(), is_guest=True)

    @property
    def key(self) -> str:
        return f"{'guest' if self.is_guest else 'user'}:{self.value}"


def _find_cart(db: Session, identity: CartIdentity):
    return db.query(Cart).filter(Cart.owner_key == identity.key).first()


def _get_or_create_cart(db: Session, identity: CartIdentity) -> Cart:
    cart = _find_cart(db, identity)
    if cart:
        return cart
    cart = Cart(owner_key=identity.key, is_guest=identity.is_guest)
    db.add(cart)
    try:
        db.flush()
    except IntegrityError:
        # Another request created the cart first
        db.rollback()
        cart = _find_cart(db, identity)
    return cart


def _load_product(db: Session, product_ref) -> Product:
    product_id = parse_product_id(product_ref)
    product = None
    if product_id is not None:
        product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise NotFound("Product not found")
    return product


def _find_line(db: Session, cart: Cart, product_id: int):
    return (
        db.query(CartItem)
        .filter(CartItem.cart_id == cart.id, CartItem.product_id == product_id)
        .with_for_update()
        .first()
    )


def _upsert_line(db: Session, cart: Cart, product: Product, quantity: int) -> None:
    # Collapse-on-duplicate with the stock check applied to the combined quantity
    line = _find_line(db, cart, product.id)
    existing = line.quantity if line else 0
    if product.stock < existing + quantity:
        raise InsufficientStock("Insufficient stock")

    if line:
        db.query(CartItem).filter(CartItem.id == line.id).update(
            {CartItem.quantity: CartItem.quantity + quantity}, synchronize_session=False
        )
        db.expire(line, ["quantity"])
    else:
        db.add(CartItem(cart_id=cart.id, product_id=product.id, quantity=quantity))
        db.flush()


def get(db: Session, identity: CartIdentity) -> Cart:
    cart = _find_cart(db, identity)
    if cart is None:
        # Transient shell; never added to the session
        return Cart(owner_key=identity.key, is_guest=identity.is_guest, items=[])
    return cart


def add_item(db: Session, identity: CartIdentity, product_ref, quantity: int = 1) -> Cart:
    if quantity is None:
        quantity = 1
    if quantity < 1:
        raise InvalidArgument("Quantity must be at least 1")

    product = _load_product(db, product_ref)
    if product.stock < quantity:
        raise InsufficientStock("Insufficient stock")

    try:
        cart = _get_or_create_cart(db, identity)
        _upsert_line(db, cart, product, quantity)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(cart)
    return cart


def set_item_quantity(db: Session, identity: CartIdentity, product_ref, quantity) -> Cart:
    if quantity is None or quantity < 1:
        raise InvalidArgument("Quantity must be at least 1")

    product = _load_product(db, product_ref)

    cart = _find_cart(db, identity)
    if cart is None:
        raise NotFound("Cart not found")

    line = _find_line(db, cart, product.id)
    if line is None:
        raise NotFound("Product not found in cart")

    if product.stock < quantity:
        raise InsufficientStock("Insufficient stock")

    # Absolute set, not a delta
    line.quantity = quantity
    db.commit()
    db.refresh(cart)
    return cart


def remove_item(db: Session, identity: CartIdentity, product_ref) -> Cart:
    cart = _find_cart(db, identity)
    product_id = parse_product_id(product_ref)
    if cart is None or product_id is None:
        return get(db, identity)

    db.query(CartItem).filter(
        CartItem.cart_id == cart.id, CartItem.product_id == product_id
    ).delete(synchronize_session=False)
    db.commit()
    db.refresh(cart)
    return cart


def clear(db: Session, identity: CartIdentity) -> Cart:
    cart = _find_cart(db, identity)
    if cart is None:
        return get(db, identity)

    _clear_lines(db, cart)
    db.commit()
    db.refresh(cart)
    return cart


def _clear_lines(db: Session, cart: Cart) -> None:
    db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
    db.expire(cart, ["items"])


def clear_for_checkout(db: Session, identity: CartIdentity) -> None:
    """Empty the cart inside the caller's transaction (no commit)."""
    cart = _find_cart(db, identity)
    if cart is not None:
        _clear_lines(db, cart)


def merge_guest_into_user(db: Session, guest: CartIdentity, user: CartIdentity) -> Cart:
    """Fold every guest line into the user's cart, then empty the guest cart.

    Runs as one transaction: a line that would exceed stock aborts the whole
    merge and leaves both carts untouched.
    """
    if not guest.is_guest or user.is_guest:
        raise InvalidArgument("Merge requires a guest cart and a user cart")

    guest_cart = _find_cart(db, guest)
    if guest_cart is None or not guest_cart.items:
        return get(db, user)

    try:
        user_cart = _get_or_create_cart(db, user)
        for line in list(guest_cart.items):
            product = db.query(Product).filter(Product.id == line.product_id).first()
            if product is None:
                logger.warning("Dropping guest cart line for missing product %s", line.product_id)
                continue
            _upsert_line(db, user_cart, product, line.quantity)
        _clear_lines(db, guest_cart)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(user_cart)
    return user_cart
