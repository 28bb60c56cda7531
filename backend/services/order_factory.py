"""Checkout and order lifecycle.

``create_order`` turns a cart snapshot into an immutable order:

1. every validation failure is collected and reported together;
2. local products are checked for stock (quantities aggregated per product)
   before any unit is reserved;
3. reservations, the order row and the cart clearing share one transaction,
   so an aborted checkout leaves stock and cart as they were.

Lines whose product id does not resolve locally are trusted as declared by
the client. This keeps externally sourced catalogue items orderable.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from models.order import Order, OrderItem, ORDER_STATUSES, PAYMENT_METHODS
from models.product import Product
from models.users import User
from services import cart_store, inventory
from services.cart_store import CartIdentity
from services.errors import Forbidden, InsufficientStock, InvalidArgument, NotFound
from services.inventory import ExternalDescriptor, InternalId, ProductRef

logger = logging.getLogger(__name__)

EventHook = Callable[[str, dict], None]

# Forward-only graph; used only when transitions are enforced
ALLOWED_TRANSITIONS = {
    "pending": {"pending", "shipped", "cancelled"},
    "shipped": {"shipped", "delivered"},
    "delivered": {"delivered"},
    "cancelled": {"cancelled"},
}


@dataclass(frozen=True)
class CheckoutLine:
    ref: ProductRef
    quantity: int
    # Client-declared data, used when an internal id no longer resolves
    declared_name: Optional[str] = None
    declared_price: Optional[float] = None
    declared_image: Optional[str] = None

    @classmethod
    def from_request(cls, product_id, quantity, name=None, price=None, image=None) -> "CheckoutLine":
        local_id = inventory.parse_product_id(product_id)
        if local_id is not None:
            ref = InternalId(local_id)
        else:
            ref = ExternalDescriptor(
                ref=str(product_id or ""),
                name=name or "Product",
                price=float(price or 0),
                image=image or "",
            )
        return cls(ref=ref, quantity=quantity, declared_name=name, declared_price=price, declared_image=image)

    def pass_through(self) -> ExternalDescriptor:
        if isinstance(self.ref, ExternalDescriptor):
            return self.ref
        return ExternalDescriptor(
            ref=str(self.ref.product_id),
            name=self.declared_name or "Product",
            price=float(self.declared_price or 0),
            image=self.declared_image or "",
        )


@dataclass
class ShippingAddress:
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    @classmethod
    def normalize(cls, raw: Optional[dict], default_country: str = "India") -> Optional["ShippingAddress"]:
        """Build the canonical address from any accepted field-name alias."""
        if raw is None:
            return None
        return cls(
            street=(raw.get("street") or raw.get("address") or "").strip(),
            city=(raw.get("city") or "").strip(),
            state=(raw.get("state") or "").strip(),
            zip_code=str(raw.get("zip_code") or raw.get("zipCode") or raw.get("pincode") or "").strip(),
            country=(raw.get("country") or default_country).strip(),
        )

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.street:
            missing.append("street address")
        if not self.city:
            missing.append("city")
        if not self.state:
            missing.append("state")
        if not self.zip_code:
            missing.append("pincode/zipcode")
        return missing


@dataclass
class CheckoutRequest:
    lines: List[CheckoutLine] = field(default_factory=list)
    total_amount: Optional[float] = None
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[str] = None


def validate_checkout(request: CheckoutRequest) -> List[str]:
    errors = []
    if not request.lines:
        errors.append("Order must contain at least one product")
    elif any(line.quantity is None or line.quantity < 1 for line in request.lines):
        errors.append("Quantity must be at least 1")
    if any(line.declared_price is not None and line.declared_price < 0 for line in request.lines):
        errors.append("Price must be non-negative")

    if request.total_amount is None or request.total_amount <= 0:
        errors.append("Valid total amount is required")

    if request.shipping_address is None:
        errors.append("Complete shipping address is required")
    else:
        missing = request.shipping_address.missing_fields()
        if missing:
            errors.append(f"Complete shipping address is required. Missing: {', '.join(missing)}")

    if not request.payment_method:
        errors.append("Payment method is required")
    elif request.payment_method not in PAYMENT_METHODS:
        errors.append(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
    return errors


def create_order(
    db: Session,
    identity: CartIdentity,
    request: CheckoutRequest,
    user_id: Optional[int] = None,
    on_event: Optional[EventHook] = None,
) -> Order:
    errors = validate_checkout(request)
    if errors:
        raise InvalidArgument("Validation error", errors=errors)

    try:
        order = _build_order(db, identity, request, user_id)
        cart_store.clear_for_checkout(db, identity)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order %s created for %s (%d lines)", order.id, identity.key, len(order.items))
    if on_event:
        # The order is committed; a failing observer must not undo or fail it
        try:
            on_event("order.created", {
                "order_id": order.id,
                "owner": identity.key,
                "lines": len(order.items),
                "total_amount": order.total_amount,
            })
        except Exception:
            logger.exception("order.created hook failed for order %s", order.id)
            db.rollback()
    return order


def _build_order(db: Session, identity: CartIdentity, request: CheckoutRequest, user_id) -> Order:
    # Phase 1: resolve local products and check aggregated demand
    resolved: Dict[int, Product] = {}
    demand: "OrderedDict[int, int]" = OrderedDict()
    for line in request.lines:
        if not isinstance(line.ref, InternalId):
            continue
        pid = line.ref.product_id
        product = resolved.get(pid) or (
            db.query(Product).filter(Product.id == pid).with_for_update().first()
        )
        if product is None:
            logger.info("Product %s not stored locally, using declared line data", pid)
            continue
        resolved[pid] = product
        demand[pid] = demand.get(pid, 0) + line.quantity

    for pid, qty in demand.items():
        if resolved[pid].stock < qty:
            raise InsufficientStock(f"Insufficient stock for {resolved[pid].name}")

    # Phase 2: reserve; a lost race still aborts the whole transaction
    snapshots = {pid: inventory.reserve(db, pid, qty) for pid, qty in demand.items()}

    address = request.shipping_address
    order = Order(
        owner_key=identity.key,
        user_id=user_id,
        total_amount=request.total_amount,
        payment_method=request.payment_method,
        status="pending",
        address_street=address.street,
        address_city=address.city,
        address_state=address.state,
        address_zip_code=address.zip_code,
        address_country=address.country,
        is_paid=False,
        is_delivered=False,
    )
    for line in request.lines:
        if isinstance(line.ref, InternalId) and line.ref.product_id in snapshots:
            snap = snapshots[line.ref.product_id]
            order.items.append(OrderItem(
                product_id=line.ref.product_id, name=snap.name,
                quantity=line.quantity, price=snap.price, image=snap.image,
            ))
        else:
            ext = line.pass_through()
            order.items.append(OrderItem(
                external_ref=ext.ref, name=ext.name,
                quantity=line.quantity, price=ext.price, image=ext.image,
            ))
    db.add(order)
    db.flush()
    return order


def _now() -> datetime:
    return datetime.now(timezone.utc)


def set_status(
    db: Session,
    order: Order,
    new_status: Optional[str],
    enforce_transitions: bool = False,
    restock_on_cancel: bool = False,
) -> Order:
    if not new_status:
        raise InvalidArgument("Status is required")
    if new_status not in ORDER_STATUSES:
        raise InvalidArgument("Invalid status")

    old_status = order.status
    if enforce_transitions and new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
        raise InvalidArgument(f"Cannot change status from {old_status} to {new_status}")

    order.status = new_status
    if new_status == "delivered" and not order.is_delivered:
        order.is_delivered = True
        order.delivered_at = _now()

    if restock_on_cancel and new_status == "cancelled" and old_status != "cancelled":
        for item in order.items:
            if item.product_id is not None:
                inventory.release(db, item.product_id, item.quantity)

    db.commit()
    db.refresh(order)
    return order


def mark_paid(db: Session, order: Order, payment_result: Optional[dict] = None) -> Order:
    order.is_paid = True
    order.paid_at = _now()
    order.payment_result = payment_result
    db.commit()
    db.refresh(order)
    return order


def get_order(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFound("Order not found")
    return order


def get_order_for(db: Session, order_id: int, user: User, action: str = "view") -> Order:
    """Load an order readable only by its owner or an admin."""
    order = get_order(db, order_id)
    if order.user_id != user.id and not user.is_admin:
        raise Forbidden(f"Not authorized to {action} this order")
    return order


def list_orders_for_owner(db: Session, user_id: int) -> List[Order]:
    return (
        db.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def list_orders(db: Session, status: Optional[str] = None) -> List[Order]:
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def tracking_info(order: Order) -> dict:
    return {
        "order_id": order.id,
        "status": order.status,
        "created_at": order.created_at,
        "timeline": [
            {"status": "pending", "date": order.created_at, "completed": True},
            {"status": "shipped", "date": None, "completed": order.status in ("shipped", "delivered")},
            {"status": "delivered", "date": order.delivered_at, "completed": order.status == "delivered"},
        ],
    }
