from pydantic import BaseModel, Field, AliasChoices
from typing import List, Optional, Union
from schemas.envelope import CamelModel

# Product ids arrive as numbers or strings; foreign ids never resolve locally
ProductIdIn = Union[int, str]

# Request schema for adding an item to a user cart
class CartAddItem(BaseModel):
    product_id: Optional[ProductIdIn] = Field(None, validation_alias=AliasChoices("productId", "product_id"))
    quantity: Optional[int] = 1

# Request schema for updating a line quantity (absolute value)
class CartUpdateItem(BaseModel):
    product_id: Optional[ProductIdIn] = Field(None, validation_alias=AliasChoices("productId", "product_id"))
    quantity: Optional[int] = None

# Guest variants carry the session id in the body
class GuestSession(BaseModel):
    session_id: Optional[str] = Field(None, validation_alias=AliasChoices("sessionId", "session_id"))

class GuestCartAddItem(CartAddItem, GuestSession):
    pass

class GuestCartUpdateItem(CartUpdateItem, GuestSession):
    pass

# Response schema for a single cart line
class CartItemOut(CamelModel):
    product_id: int
    name: str
    price: float
    image: Optional[str] = None
    stock: int
    category: Optional[str] = None
    quantity: int
    line_total: float

# Response schema for the whole cart
class CartOut(CamelModel):
    user_id: str
    is_guest: bool
    items: List[CartItemOut]
    total: float
