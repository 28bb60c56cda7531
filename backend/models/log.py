from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, func
from database import Base

# Audit trail written through utils/audit.py.
# Actions: ORDER_CREATED (checkout hook), ORDER_STATUS_CHANGE, CART_MERGE,
# PRODUCT_CREATE, PRODUCT_UPDATE, PRODUCT_DELETE. `meta` holds the ids and
# before/after values of the event.
class Log(Base):
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    ts = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Acting user; null for events without an authenticated caller
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(50), index=True)
    resource = Column(String(50), index=True)  # "orders", "cart" or "products"
    status = Column(String(20), index=True)
    ip = Column(String(64), nullable=True)

    meta = Column(JSON, nullable=True)
