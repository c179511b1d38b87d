"""
Chat Routes
===========

Customer conversation with the in-restaurant assistant.

Endpoints:
----------
- POST /chat/message: run one chat turn (reply, applied cart actions, cart)
- GET /chat/messages: the session's chat log, duplicates collapsed

Turn Gating:
------------
A second message while a turn is still running, or within the cooldown of
the previous one, is answered with ``accepted: false`` and a placeholder
reply; nothing is stored. A session that used up its AI-turn quota gets 429
with a Retry-After header.

Error Handling:
---------------
Model provider rate limits, quota and outages are answered in-band with a
canned Indonesian reply. Anything unexpected is logged and returned as a
500 with a friendly message; the raw error never reaches the diner.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import require_session
from ..db import get_db
from ..errors import NotFoundError, RestoBotError
from ..logging_config import session_prefix
from ..schemas.cart import CartLineOut, CartOut
from ..schemas.chat import (
    ActionOut,
    ChatHistoryResponse,
    ChatMessageOut,
    ChatMessageRequest,
    ChatMessageResponse,
)
from ..services import cart as cart_service
from ..services.conversation import get_conversation_gateway, list_messages
from ..services.menu import get_table_by_number


logger = logging.getLogger(__name__)

chat_router = APIRouter(prefix="/chat", tags=["Chat"])

CHAT_ERROR_MESSAGE = "Maaf, aku lagi loading. Coba tanya lagi ya! 🙏"


def _resolve_table_id(db: Session, session_id: str, table_number: Optional[int]) -> Optional[int]:
    if table_number is None:
        return cart_service.get_session_table_id(db, session_id)
    table = get_table_by_number(db, table_number)
    if table is None:
        raise NotFoundError(f"table {table_number} not found", "Meja tidak ditemukan.")
    return table.id


@chat_router.post("/message", response_model=ChatMessageResponse)
def chat_message(
    req: ChatMessageRequest,
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> ChatMessageResponse:
    table_id = _resolve_table_id(db, session_id, req.table_number)
    gateway = get_conversation_gateway()

    try:
        result = gateway.send_message(db, session_id, table_id, req.message)
    except RestoBotError:
        raise
    except Exception as exc:
        logger.exception("Chat turn failed for session %s", session_prefix(session_id))
        raise RestoBotError(f"chat turn failed: {exc}", CHAT_ERROR_MESSAGE) from exc

    cart = None
    if result.cart is not None:
        cart = CartOut(
            items=[
                CartLineOut(**line, subtotal=line["price"] * line["quantity"])
                for line in result.cart["items"]
            ],
            total_items=result.cart["total_items"],
            total_amount=result.cart["total_amount"],
        )

    return ChatMessageResponse(
        reply=result.reply,
        accepted=result.accepted,
        actions=[
            ActionOut(
                type=a.type,
                menu_item_id=a.menu_item_id,
                menu_item_name=a.menu_item_name,
                quantity=a.quantity,
                notes=a.notes,
            )
            for a in result.actions
        ],
        cart=cart,
        fallback=result.fallback,
    )


@chat_router.get("/messages", response_model=ChatHistoryResponse)
def chat_messages(
    session_id: str = Depends(require_session),
    db: Session = Depends(get_db),
) -> ChatHistoryResponse:
    return ChatHistoryResponse(
        messages=[ChatMessageOut.model_validate(m) for m in list_messages(db, session_id)]
    )
