"""
Customer Order Routes
=====================

Checkout, order tracking, self-cancel and the payment dialog for the
session in ``X-Session-ID``. Orders belonging to other sessions answer 404.

Endpoints:
----------
- POST /orders: checkout the session cart into a pending order
- GET /orders: the session's orders, newest first
- GET /orders/events?after=<seq>: order changes since ``seq`` (polling)
- GET /orders/{order_id}
- POST /orders/{order_id}/cancel: self-cancel a pending, unpaid order
- DELETE /orders/{order_id}: remove a cancelled order from the history
- GET /orders/{order_id}/payment: current payment dialog state
- POST /orders/{order_id}/payment: select cash or QRIS

Payment Dialog:
---------------
The dialog state is derived from the stored order on every read, so a
kitchen-side confirmation shows up on the next poll. A QRIS attempt that is
not confirmed within QRIS_TIMEOUT_SECONDS returns to method selection with
a notice. The first time an order is seen paid the session cart is cleared
and a success notice is returned once.
"""

import logging
from typing import Any, Callable

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..auth import require_session
from ..config import get_rate_limit_public
from ..db import get_db
from ..errors import NotFoundError
from ..middleware import limiter
from ..models import Order
from ..schemas.orders import (
    OrderCreate,
    OrderEventOut,
    OrderEventsResponse,
    OrderListResponse,
    OrderOut,
    PaymentSelectRequest,
    PaymentViewOut,
)
from ..services import cart as cart_service
from ..services import order as order_service
from ..services.order_events import get_order_event_bus, kitchen_cancel_reason
from ..services.menu import get_table_by_number
from ..services.payment import PaymentFlow, get_payment_flows


logger = logging.getLogger(__name__)

orders_router = APIRouter(prefix="/orders", tags=["Orders"])


def _clear_cart_on_paid(db: Session, session_id: str) -> Callable[[Any], None]:
    def on_confirmed(order: Any) -> None:
        cart_service.clear_cart(db, session_id)
    return on_confirmed


def _payment_view(flow: PaymentFlow, order: Order) -> PaymentViewOut:
    return PaymentViewOut(
        order_id=order.id,
        state=flow.state,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        status=order.status,
        remaining_seconds=flow.remaining_seconds,
        notices=flow.drain_notices(),
    )


@orders_router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit_public)
def create_order(
    request: Request,
    req: OrderCreate,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> OrderOut:
    table = get_table_by_number(db, req.table_number)
    if table is None:
        raise NotFoundError(f"table {req.table_number} not found", "Meja tidak ditemukan.")

    order = order_service.create_order_from_cart(db, table.id, session_id, notes=req.notes)
    return OrderOut.model_validate(order)


@orders_router.get("", response_model=OrderListResponse)
def list_orders(
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> OrderListResponse:
    orders = order_service.list_session_orders(db, session_id)
    return OrderListResponse(orders=[OrderOut.model_validate(o) for o in orders])


@orders_router.get("/events", response_model=OrderEventsResponse)
def order_events(
    after: int = Query(0, ge=0),
    session_id: str = Depends(require_session),
) -> OrderEventsResponse:
    bus = get_order_event_bus()
    events = bus.events_after(after, session_id=session_id)
    return OrderEventsResponse(
        events=[
            OrderEventOut(
                seq=e.seq,
                kind=e.kind,
                order_id=e.order_id,
                status=e.status,
                payment_method=e.payment_method,
                payment_status=e.payment_status,
                kitchen_cancel_reason=kitchen_cancel_reason(e.notes) if e.status == "cancelled" else None,
                created_at=e.created_at,
            )
            for e in events
        ],
        last_seq=bus.last_seq,
    )


@orders_router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> OrderOut:
    return OrderOut.model_validate(order_service.get_order(db, order_id, session_id))


@orders_router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> OrderOut:
    order = order_service.cancel_order(db, order_id, session_id)
    get_payment_flows().discard(session_id, order_id)
    return OrderOut.model_validate(order)


@orders_router.delete("/{order_id}")
def delete_order(
    order_id: int,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
):
    order_service.delete_order(db, order_id, session_id)
    get_payment_flows().discard(session_id, order_id)
    return {"status": "deleted", "order_id": order_id}


@orders_router.get("/{order_id}/payment", response_model=PaymentViewOut)
def get_payment(
    order_id: int,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> PaymentViewOut:
    order = order_service.get_order(db, order_id, session_id)
    flow = get_payment_flows().get(session_id, order_id, on_confirmed=_clear_cart_on_paid(db, session_id))
    flow.observe(order)
    return _payment_view(flow, order)


@orders_router.post("/{order_id}/payment", response_model=PaymentViewOut)
def select_payment(
    order_id: int,
    req: PaymentSelectRequest,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> PaymentViewOut:
    order = order_service.set_payment_method(db, order_id, req.method, session_id=session_id)
    flow = get_payment_flows().get(session_id, order_id, on_confirmed=_clear_cart_on_paid(db, session_id))
    flow.method_selected(order)
    return _payment_view(flow, order)
