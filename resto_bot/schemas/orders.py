"""
Order Schemas
=============

Pydantic models for customer order endpoints, kitchen console endpoints and
the payment dialog.

Customer:
---------
- POST /orders: checkout the session cart (OrderCreate -> OrderOut)
- GET /orders, GET /orders/{id}: OrderOut / OrderListResponse
- GET /orders/events: OrderEventsResponse for polling viewers
- GET/POST /orders/{id}/payment: PaymentViewOut

Kitchen:
--------
- POST /kitchen/orders/{id}/status: StatusUpdateRequest
- POST /kitchen/orders/{id}/cancel: KitchenCancelRequest
- POST /kitchen/orders/{id}/confirm-payment: ConfirmPaymentRequest

Amounts are integers in rupiah.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..services.order_events import kitchen_cancel_reason


class OrderItemOut(BaseModel):
    """
    One order line. ``menu_item_name`` and ``unit_price`` are the values at
    order time, not the current catalog.
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: Optional[int] = None
    menu_item_name: str
    quantity: int
    unit_price: int
    line_total: int
    notes: Optional[str] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    table_id: Optional[int] = None
    table_number: Optional[int] = None
    session_id: str
    status: str
    payment_method: str
    payment_status: str
    total_amount: int
    notes: Optional[str] = None
    kitchen_cancel_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOut] = []

    @model_validator(mode="before")
    @classmethod
    def from_order_row(cls, data):
        """Flatten the table number and cancel reason off an Order row."""
        if hasattr(data, "__table__"):
            table = getattr(data, "table", None)
            return {
                "id": data.id,
                "table_id": data.table_id,
                "table_number": table.table_number if table else None,
                "session_id": data.session_id,
                "status": data.status,
                "payment_method": data.payment_method,
                "payment_status": data.payment_status,
                "total_amount": data.total_amount,
                "notes": data.notes,
                "kitchen_cancel_reason": kitchen_cancel_reason(data.notes) if data.status == "cancelled" else None,
                "created_at": data.created_at,
                "updated_at": data.updated_at,
                "items": list(data.items),
            }
        return data


class OrderListResponse(BaseModel):
    orders: List[OrderOut]


class OrderCreate(BaseModel):
    """Checkout request; lines come from the session cart."""
    table_number: int = Field(..., ge=1)
    notes: Optional[str] = Field(None, max_length=500)


class StatusUpdateRequest(BaseModel):
    status: Literal["confirmed", "preparing", "ready", "delivered"]


class KitchenCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=200)


class ConfirmPaymentRequest(BaseModel):
    method: Literal["cash", "qris"]
    status: Literal["paid", "failed"] = "paid"


class PaymentSelectRequest(BaseModel):
    method: Literal["cash", "qris"]


class PaymentViewOut(BaseModel):
    """
    State of the payment dialog for one order.

    Attributes:
        state: select, qris_waiting, cash_waiting or confirmed
        remaining_seconds: QRIS countdown; None outside qris_waiting
        notices: One-shot messages to show (expiry, success)
    """
    order_id: int
    state: str
    payment_method: str
    payment_status: str
    status: str
    remaining_seconds: Optional[int] = None
    notices: List[str] = []


class OrderEventOut(BaseModel):
    seq: int
    kind: str
    order_id: int
    status: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    kitchen_cancel_reason: Optional[str] = None
    created_at: datetime


class OrderEventsResponse(BaseModel):
    events: List[OrderEventOut]
    last_seq: int
