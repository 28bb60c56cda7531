# backend/models/users.py
from sqlalchemy import Column, Integer, String, Boolean
from database import Base

# Represents an account resolved by the authentication layer
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == "admin"
