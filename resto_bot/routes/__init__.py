"""
Routes Package for Resto Bot
============================

API route definitions organized by actor. Each module defines a FastAPI
APIRouter with related endpoints grouped together.

**Customer Routes (X-Session-ID header):**
- session.py: Start a table session from a scanned table number
- menu.py: Public catalog reads (no session needed)
- cart.py: Manual cart edits
- chat.py: Conversation with the assistant
- orders.py: Checkout, tracking, self-cancel and payment dialog
- tts.py: Text-to-speech for assistant replies

**Staff Routes (HTTP Basic Auth):**
- kitchen.py: Active order queue, status changes, cancel, payment confirm

Router Registration:
--------------------
All routers are registered by ``app_factory.create_app`` under ``/api/v1``
and at the root.

Error Handling:
---------------
Routes raise ``RestoBotError`` subclasses (see errors.py); the app renders
them as ``{"error": <code>, "message": <user message>}`` with the matching
status. Auth dependencies raise HTTPException (401/503).
"""

from .cart import cart_router
from .chat import chat_router
from .kitchen import kitchen_router
from .menu import menu_router
from .orders import orders_router
from .session import session_router
from .tts import tts_router

__all__ = [
    "cart_router",
    "chat_router",
    "kitchen_router",
    "menu_router",
    "orders_router",
    "session_router",
    "tts_router",
]
