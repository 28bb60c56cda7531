# backend/routes/orders.py
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
import logging

from config import settings
from database import get_db
from models.order import Order
from models.users import User
from schemas.envelope import Envelope
from schemas.order import (
    OrderCreatePayload, OrderItemOut, OrderResponse, OrderStatusPatch,
    AddressOut, PaymentResultIn, TrackingOut,
)
from services import order_factory
from services.cart_store import CartIdentity
from services.order_factory import CheckoutLine, CheckoutRequest, ShippingAddress
from utils.audit import audit_hook, write_log
from utils.tokenJWT import get_current_user, require_admin

router = APIRouter(prefix="/api/orders", tags=["Orders"])
logger = logging.getLogger(__name__)

def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None

# Map Order model to OrderResponse schema
def _order_to_out(order: Order) -> OrderResponse:
    items = [
        OrderItemOut(
            product_id=it.product_ref,
            source=it.source,
            name=it.name,
            quantity=it.quantity,
            price=it.price,
            image=it.image,
        )
        for it in order.items
    ]
    return OrderResponse(
        id=order.id,
        owner_id=order.owner_key,
        user_id=order.user_id,
        items=items,
        total_amount=round(order.total_amount, 2),
        shipping_address=AddressOut(**order.shipping_address),
        payment_method=order.payment_method,
        status=order.status,
        is_paid=order.is_paid,
        paid_at=order.paid_at,
        payment_result=order.payment_result,
        is_delivered=order.is_delivered,
        delivered_at=order.delivered_at,
        created_at=order.created_at,
    )

def _checkout_request(payload: OrderCreatePayload) -> CheckoutRequest:
    lines = [
        CheckoutLine.from_request(it.product_id, it.quantity, it.name, it.price, it.image)
        for it in (payload.items or [])
    ]
    return CheckoutRequest(
        lines=lines,
        total_amount=payload.total_amount,
        shipping_address=ShippingAddress.normalize(payload.shipping_address, settings.DEFAULT_COUNTRY),
        payment_method=payload.payment_method,
    )


# Create an order from the caller's cart snapshot
@router.post(
    "/create",
    response_model=Envelope[OrderResponse],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def create_order(
    payload: OrderCreatePayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = order_factory.create_order(
        db,
        CartIdentity.for_user(current_user.id),
        _checkout_request(payload),
        user_id=current_user.id,
        on_event=audit_hook(db, user_id=current_user.id, ip=_client_ip(request)),
    )
    return Envelope[OrderResponse](data=_order_to_out(order), message="Order created successfully")


# Orders of the logged in user, newest first
@router.get("/my", response_model=Envelope[List[OrderResponse]], response_model_exclude_none=True)
def list_my_orders(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    orders = order_factory.list_orders_for_owner(db, current_user.id)
    return Envelope[List[OrderResponse]](data=[_order_to_out(o) for o in orders])


# All orders, optionally filtered by status (admin only)
@router.get("", response_model=Envelope[List[OrderResponse]], response_model_exclude_none=True)
def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    orders = order_factory.list_orders(db, status_filter)
    return Envelope[List[OrderResponse]](data=[_order_to_out(o) for o in orders])


@router.get("/{order_id}", response_model=Envelope[OrderResponse], response_model_exclude_none=True)
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = order_factory.get_order_for(db, order_id, current_user, action="view")
    return Envelope[OrderResponse](data=_order_to_out(order))


# Manually update order status (admin only)
@router.put("/{order_id}/status", response_model=Envelope[OrderResponse], response_model_exclude_none=True)
def update_order_status(
    order_id: int,
    payload: OrderStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = order_factory.get_order(db, order_id)
    old_status = order.status
    order = order_factory.set_status(
        db,
        order,
        payload.status,
        enforce_transitions=settings.ENFORCE_STATUS_TRANSITIONS,
        restock_on_cancel=settings.RESTOCK_ON_CANCEL,
    )
    logger.info("Order %s status %s -> %s by admin %s", order.id, old_status, order.status, admin.id)
    write_log(db, user_id=admin.id, action="ORDER_STATUS_CHANGE", resource="orders", status="SUCCESS",
        ip=_client_ip(request), meta={"order_id": order.id, "old": old_status, "new": order.status})
    return Envelope[OrderResponse](data=_order_to_out(order), message="Order status updated successfully")


# Record a payment confirmation for the order
@router.put("/{order_id}/pay", response_model=Envelope[OrderResponse], response_model_exclude_none=True)
def update_order_to_paid(
    order_id: int,
    payload: PaymentResultIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = order_factory.get_order_for(db, order_id, current_user, action="pay for")
    order = order_factory.mark_paid(db, order, payload.as_record())
    return Envelope[OrderResponse](data=_order_to_out(order))


# Mark the order delivered (admin only)
@router.put("/{order_id}/deliver", response_model=Envelope[OrderResponse], response_model_exclude_none=True)
def update_order_to_delivered(
    order_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = order_factory.get_order(db, order_id)
    order = order_factory.set_status(db, order, "delivered", enforce_transitions=settings.ENFORCE_STATUS_TRANSITIONS)
    return Envelope[OrderResponse](data=_order_to_out(order))


@router.get("/{order_id}/track", response_model=Envelope[TrackingOut], response_model_exclude_none=True)
def track_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = order_factory.get_order_for(db, order_id, current_user, action="track")
    return Envelope[TrackingOut](data=TrackingOut(**order_factory.tracking_info(order)))
