"""
Schemas Package for Resto Bot
=============================

Pydantic models used for API request validation and response serialization.

Schema Organization:
--------------------
- **cart.py**: Cart lines and cart mutations
- **chat.py**: Chat turn and chat log schemas
- **menu.py**: Menu catalog and table schemas
- **orders.py**: Orders, kitchen actions, payment dialog and order events
- **session.py**: Table session start
- **tts.py**: Speech synthesis request

Naming Conventions:
-------------------
- *Out: Response models (e.g., OrderOut)
- *Add / *Create / *Update: Request bodies
- *Request / *Response: Composite request or response structures

Response models built from ORM rows use ``ConfigDict(from_attributes=True)``:

    return OrderOut.model_validate(order)
"""

from .cart import CartLineOut, CartOut, CartItemAdd, CartItemUpdate
from .chat import (
    ChatMessageRequest,
    ChatMessageResponse,
    ChatMessageOut,
    ChatHistoryResponse,
    ActionOut,
)
from .menu import MenuCategoryOut, MenuItemOut, MenuResponse, TableOut
from .orders import (
    OrderItemOut,
    OrderOut,
    OrderListResponse,
    OrderCreate,
    StatusUpdateRequest,
    KitchenCancelRequest,
    ConfirmPaymentRequest,
    PaymentSelectRequest,
    PaymentViewOut,
    OrderEventOut,
    OrderEventsResponse,
)
from .session import SessionStartResponse
from .tts import SynthesizeRequest

__all__ = [
    # Cart
    "CartLineOut",
    "CartOut",
    "CartItemAdd",
    "CartItemUpdate",
    # Chat
    "ChatMessageRequest",
    "ChatMessageResponse",
    "ChatMessageOut",
    "ChatHistoryResponse",
    "ActionOut",
    # Menu
    "MenuCategoryOut",
    "MenuItemOut",
    "MenuResponse",
    "TableOut",
    # Orders
    "OrderItemOut",
    "OrderOut",
    "OrderListResponse",
    "OrderCreate",
    "StatusUpdateRequest",
    "KitchenCancelRequest",
    "ConfirmPaymentRequest",
    "PaymentSelectRequest",
    "PaymentViewOut",
    "OrderEventOut",
    "OrderEventsResponse",
    # Session
    "SessionStartResponse",
    # TTS
    "SynthesizeRequest",
]
