# backend/models/cart.py
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, ForeignKey, String, Boolean, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from database import Base

# A shopping cart keyed by a namespaced identity ("user:<id>" or "guest:<session>")
class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    owner_key = Column(String, unique=True, nullable=False, index=True) # one live cart per identity
    is_guest = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Lines keep insertion order
    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )


# A single product line within a cart
class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    quantity = Column(Integer, CheckConstraint("quantity >= 1"), nullable=False, default=1)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        # Duplicate product lines collapse into one
        UniqueConstraint("cart_id", "product_id", name="uq_cartitem_cart_product"),
    )
