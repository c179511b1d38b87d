"""
Kitchen Console Routes
======================

Staff-facing order queue. All endpoints require HTTP Basic credentials
(STAFF_USERNAME / STAFF_PASSWORD).

Endpoints:
----------
- GET /kitchen/orders: active orders (pending through ready), oldest first
- POST /kitchen/orders/{order_id}/status: advance one step
- POST /kitchen/orders/{order_id}/cancel: cancel with an optional reason
- POST /kitchen/orders/{order_id}/confirm-payment: record cash/QRIS result

A cancel reason is appended to the order notes as ``[Dibatalkan: <reason>]``
so the customer's view can show why the order was dropped.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import verify_staff_credentials
from ..db import get_db
from ..schemas.orders import (
    ConfirmPaymentRequest,
    KitchenCancelRequest,
    OrderListResponse,
    OrderOut,
    StatusUpdateRequest,
)
from ..services import order as order_service


logger = logging.getLogger(__name__)

kitchen_router = APIRouter(
    prefix="/kitchen",
    tags=["Kitchen"],
    dependencies=[Depends(verify_staff_credentials)],
)


@kitchen_router.get("/orders", response_model=OrderListResponse)
def list_kitchen_orders(db: Session = Depends(get_db)) -> OrderListResponse:
    orders = order_service.list_active_orders(db)
    return OrderListResponse(orders=[OrderOut.model_validate(o) for o in orders])


@kitchen_router.post("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    req: StatusUpdateRequest,
    db: Session = Depends(get_db),
) -> OrderOut:
    return OrderOut.model_validate(order_service.update_status(db, order_id, req.status))


@kitchen_router.post("/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    req: KitchenCancelRequest,
    db: Session = Depends(get_db),
) -> OrderOut:
    return OrderOut.model_validate(order_service.kitchen_cancel_order(db, order_id, req.reason))


@kitchen_router.post("/orders/{order_id}/confirm-payment", response_model=OrderOut)
def confirm_payment(
    order_id: int,
    req: ConfirmPaymentRequest,
    db: Session = Depends(get_db),
) -> OrderOut:
    order = order_service.confirm_payment(db, order_id, req.method, req.status)
    return OrderOut.model_validate(order)
