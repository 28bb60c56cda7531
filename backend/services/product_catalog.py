"""Product catalogue administration and browsing.

Stock of an existing product is only ever written through
``inventory.set_stock``; everything else is plain column updates.
"""
from dataclasses import dataclass
import logging
import math
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models.cart import CartItem
from models.order import OrderItem
from models.product import Product, PRODUCT_CATEGORIES
from services import inventory
from services.catalog_search import LIKE_ESCAPE, like_pattern
from services.errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100
EDITABLE_FIELDS = (
    "name", "description", "category", "price", "stock", "image",
    "tags", "benefits", "nutrition", "unit", "is_organic",
)
SORT_OPTIONS = {
    "price-asc": Product.price.asc(),
    "price-desc": Product.price.desc(),
    "rating": Product.rating.desc(),
    "newest": Product.created_at.desc(),
}


@dataclass
class ProductPage:
    items: List[Product]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_product(data: dict, partial: bool = False) -> List[str]:
    """Collect every problem with *data*; with ``partial`` only supplied keys are checked."""
    errors = []

    def supplied(key):
        return not partial or key in data

    if supplied("name"):
        if _blank(data.get("name")):
            errors.append("Product name is required")
        elif len(data["name"].strip()) > 100:
            errors.append("Product name cannot exceed 100 characters")
    if supplied("price") and (data.get("price") is None or data["price"] <= 0):
        errors.append("Valid product price is required")
    if supplied("category"):
        if _blank(data.get("category")):
            errors.append("Product category is required")
        elif data["category"].strip() not in PRODUCT_CATEGORIES:
            errors.append(f"Product category must be one of: {', '.join(PRODUCT_CATEGORIES)}")
    if supplied("description") and _blank(data.get("description")):
        errors.append("Product description is required")
    if data.get("stock") is not None and data["stock"] < 0:
        errors.append("Stock cannot be negative")
    return errors


def _normalize(data: dict) -> dict:
    values = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
    for key in ("name", "description", "category"):
        if isinstance(values.get(key), str):
            values[key] = values[key].strip()
    tags = values.get("tags")
    if isinstance(tags, (list, tuple)):
        values["tags"] = ",".join(t.strip() for t in tags if t and t.strip())
    return values


def list_products(
    db: Session,
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: Optional[str] = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> ProductPage:
    if page is None or page < 1:
        raise InvalidArgument("Page must be at least 1")
    if page_size is None or page_size < 1:
        raise InvalidArgument("Limit must be at least 1")
    page_size = min(page_size, MAX_PAGE_SIZE)

    query = db.query(Product)
    if category and category != "All":
        query = query.filter(Product.category.ilike(like_pattern(category)[1:-1], escape=LIKE_ESCAPE))
    if search and search.strip():
        like = like_pattern(search.strip())
        query = query.filter(or_(
            Product.name.ilike(like, escape=LIKE_ESCAPE),
            Product.description.ilike(like, escape=LIKE_ESCAPE),
            Product.tags.ilike(like, escape=LIKE_ESCAPE),
        ))
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)

    total = query.count()
    order = SORT_OPTIONS.get(sort, SORT_OPTIONS["newest"])
    items = (
        query.order_by(order, Product.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return ProductPage(items=items, total=total, page=page, page_size=page_size)


def get_product(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise NotFound("Product not found")
    return product


def create_product(db: Session, data: dict) -> Product:
    errors = validate_product(data)
    if errors:
        raise InvalidArgument("Validation error", errors=errors)

    values = _normalize(data)
    values = {k: v for k, v in values.items() if v is not None}
    product = Product(**values)
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Product %s (%s) created", product.id, product.name)
    return product


def update_product(db: Session, product_id: int, data: dict) -> Product:
    product = get_product(db, product_id)
    errors = validate_product(data, partial=True)
    if errors:
        raise InvalidArgument("Validation error", errors=errors)

    values = _normalize(data)
    stock = values.pop("stock", None)
    try:
        for key, value in values.items():
            setattr(product, key, value)
        if stock is not None:
            inventory.set_stock(db, product.id, stock)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: int) -> Tuple[int, str]:
    """Delete a product; carts drop its lines and past orders keep their snapshot.

    Order lines that pointed at the product keep the id as ``external_ref``,
    the same shape checkout gives to ids that no longer resolve.
    """
    product = get_product(db, product_id)
    pid, name = product.id, product.name
    try:
        db.query(CartItem).filter(CartItem.product_id == pid).delete(synchronize_session=False)
        db.query(OrderItem).filter(OrderItem.product_id == pid).update(
            {OrderItem.product_id: None, OrderItem.external_ref: str(pid)}, synchronize_session=False
        )
        db.delete(product)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Product %s (%s) deleted", pid, name)
    return pid, name
