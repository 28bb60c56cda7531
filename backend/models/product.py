# backend/models/product.py
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, CheckConstraint
from database import Base

PRODUCT_CATEGORIES = ("Dairy", "Organic Medicines", "Farm Products", "Fruits", "Vegetables")

# Model Product
# A single catalogue item stored locally. `stock` is the only source of
# truth for available quantity and is changed only through the inventory
# ledger (see services/inventory.py).
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(String(2000), nullable=False, default="")
    category = Column(String, nullable=False, index=True)

    price = Column(Float, CheckConstraint("price >= 0"), nullable=False)
    stock = Column(Integer, CheckConstraint("stock >= 0"), nullable=False, default=0)

    image = Column(String, nullable=False, default="/images/no-image.png")
    rating = Column(Float, CheckConstraint("rating >= 0 AND rating <= 5"), nullable=False, default=0)
    num_reviews = Column(Integer, nullable=False, default=0)

    # Comma separated keywords, searched as plain text
    tags = Column(String, nullable=True)
    benefits = Column(String(1000), nullable=True)
    nutrition = Column(String(1000), nullable=True)
    unit = Column(String, nullable=False, default="piece")
    is_organic = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)

    @property
    def tag_list(self):
        return [t.strip() for t in (self.tags or "").split(",") if t.strip()]
