# backend/models/order.py
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from database import Base

ORDER_STATUSES = ("pending", "shipped", "delivered", "cancelled")
PAYMENT_METHODS = ("card", "paypal", "cash", "upi", "netbanking", "cod")

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    owner_key = Column(String, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    total_amount = Column(Float, CheckConstraint("total_amount >= 0"), nullable=False)
    payment_method = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)

    # Shipping address, normalised at the boundary
    address_street = Column(String, nullable=False)
    address_city = Column(String, nullable=False)
    address_state = Column(String, nullable=False)
    address_zip_code = Column(String, nullable=False)
    address_country = Column(String, nullable=False)

    # Payment and delivery flags
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_result = Column(JSON, nullable=True)
    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")

    @property
    def shipping_address(self) -> dict:
        return {
            "street": self.address_street,
            "city": self.address_city,
            "state": self.address_state,
            "zip_code": self.address_zip_code,
            "country": self.address_country,
        }


# Frozen copy of product data at checkout time
class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    # Exactly one of product_id / external_ref is set
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    external_ref = Column(String, nullable=True)

    name = Column(String, nullable=False)
    quantity = Column(Integer, CheckConstraint("quantity >= 1"), nullable=False)
    price = Column(Float, CheckConstraint("price >= 0"), nullable=False)
    image = Column(String, nullable=True)

    order = relationship("Order", back_populates="items")

    @property
    def source(self) -> str:
        return "local" if self.product_id is not None else "external"

    @property
    def product_ref(self):
        return self.product_id if self.product_id is not None else self.external_ref
