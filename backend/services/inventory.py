"""Inventory ledger: the only code that changes ``Product.stock``.

Every operation is a single UPDATE statement, and reservations are
conditional, so two concurrent requests can never decrement the same units
twice. Nothing here commits; the caller owns the transaction.
"""
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.orm import Session

from models.product import Product
from services.errors import InsufficientStock, InvalidArgument, NotFound


@dataclass(frozen=True)
class LineSnapshot:
    """Name, price and image copied onto an order line."""

    name: str
    price: float
    image: Optional[str]


@dataclass(frozen=True)
class InternalId:
    """Reference to a product persisted in the local catalogue."""

    product_id: int


@dataclass(frozen=True)
class ExternalDescriptor:
    """Ad hoc catalogue item that carries its own data and is never reserved."""

    ref: str
    name: str
    price: float
    image: Optional[str] = None

    def snapshot(self) -> LineSnapshot:
        return LineSnapshot(name=self.name, price=self.price, image=self.image)


ProductRef = Union[InternalId, ExternalDescriptor]


def parse_product_id(raw) -> Optional[int]:
    """Return the local product id encoded in *raw*, or None for foreign ids."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def reserve(db: Session, product_id: int, quantity: int) -> LineSnapshot:
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise NotFound(f"Product {product_id} not found")

    updated = (
        db.query(Product)
        .filter(Product.id == product_id, Product.stock >= quantity)
        .update({Product.stock: Product.stock - quantity}, synchronize_session=False)
    )
    db.expire(product, ["stock"])
    if not updated:
        raise InsufficientStock(f"Insufficient stock for {product.name}")

    return LineSnapshot(name=product.name, price=product.price, image=product.image)


def release(db: Session, product_id: int, quantity: int) -> None:
    # Products deleted since checkout have nothing to credit back
    db.query(Product).filter(Product.id == product_id).update(
        {Product.stock: Product.stock + quantity}, synchronize_session=False
    )


def set_stock(db: Session, product_id: int, stock: int) -> None:
    """Replace the stock count after a manual recount or delivery."""
    if stock is None or stock < 0:
        raise InvalidArgument("Stock cannot be negative")
    updated = db.query(Product).filter(Product.id == product_id).update(
        {Product.stock: stock}, synchronize_session=False
    )
    if not updated:
        raise NotFound(f"Product {product_id} not found")
