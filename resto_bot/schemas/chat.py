"""
Chat Schemas
============

Pydantic models for the chat endpoints.

- POST /chat/message: one user turn; the reply is the assistant text with
  cart directives already removed and applied
- GET /chat/messages: the session's chat log, duplicates collapsed

``accepted`` is false when the turn was refused because another turn was in
flight or the session was still cooling down; ``reply`` then holds a
placeholder that was not stored.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..config import MAX_MESSAGE_LENGTH
from .cart import CartOut


class ChatMessageRequest(BaseModel):
    """
    Request body for sending a chat message.

    Attributes:
        message: The diner's message (1 to MAX_MESSAGE_LENGTH characters)
        table_number: Table the session is seated at, used to tag the log
    """
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    table_number: Optional[int] = None


class ActionOut(BaseModel):
    type: str
    menu_item_id: int
    menu_item_name: str
    quantity: Optional[int] = None
    notes: Optional[str] = None


class ChatMessageResponse(BaseModel):
    reply: str
    accepted: bool = True
    actions: List[ActionOut] = []
    cart: Optional[CartOut] = None
    fallback: Optional[str] = None


class ChatMessageOut(BaseModel):
    id: int
    role: str
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatHistoryResponse(BaseModel):
    messages: List[ChatMessageOut]
