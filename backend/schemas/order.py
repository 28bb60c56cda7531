from pydantic import BaseModel, Field, AliasChoices
from typing import Any, Dict, List, Optional, Union
from datetime import datetime
from schemas.envelope import CamelModel


# Input schema for one order line; product may be local or external
class OrderLineIn(BaseModel):
    product_id: Optional[Union[int, str]] = Field(
        None, validation_alias=AliasChoices("productId", "product", "product_id", "_id")
    )
    quantity: Optional[int] = 1
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None


# Input schema for checkout. Validation of required fields happens in the
# order factory so every problem is reported in one errors list.
class OrderCreatePayload(BaseModel):
    items: Optional[List[OrderLineIn]] = Field(None, validation_alias=AliasChoices("items", "products"))
    total_amount: Optional[float] = Field(None, validation_alias=AliasChoices("totalAmount", "total_amount"))
    shipping_address: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("shippingAddress", "address", "shipping_address")
    )
    payment_method: Optional[str] = Field(None, validation_alias=AliasChoices("paymentMethod", "payment_method"))


# Schema for updating order status
class OrderStatusPatch(BaseModel):
    status: Optional[str] = None


class PayerIn(BaseModel):
    email_address: Optional[str] = None


# Payment confirmation forwarded by the payment provider's client flow
class PaymentResultIn(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    payer: Optional[PayerIn] = None

    def as_record(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "updateTime": self.update_time,
            "emailAddress": self.payer.email_address if self.payer else None,
        }


class MergeCartPayload(BaseModel):
    session_id: Optional[str] = Field(None, validation_alias=AliasChoices("sessionId", "session_id"))


# Output schemas
class OrderItemOut(CamelModel):
    product_id: Union[int, str]
    source: str
    name: str
    quantity: int
    price: float
    image: Optional[str] = None


class AddressOut(CamelModel):
    street: str
    city: str
    state: str
    zip_code: str
    country: str


class OrderResponse(CamelModel):
    id: int
    owner_id: str
    user_id: Optional[int] = None
    items: List[OrderItemOut]
    total_amount: float
    shipping_address: AddressOut
    payment_method: str
    status: str
    is_paid: bool
    paid_at: Optional[datetime] = None
    payment_result: Optional[Dict[str, Any]] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    created_at: datetime


class TimelineStep(CamelModel):
    status: str
    date: Optional[datetime] = None
    completed: bool


class TrackingOut(CamelModel):
    order_id: int
    status: str
    created_at: datetime
    timeline: List[TimelineStep]
