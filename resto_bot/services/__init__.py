"""
Services Package for Resto Bot
==============================

Business logic shared by the routes. Services receive their dependencies
(database sessions, clocks, model functions) from the caller.

Available Services:
-------------------
- **cart**: Write-through persistence of session carts
- **menu**: Read-only catalog lookups and the model's menu snapshot
- **order**: Order lifecycle state machine (customer and kitchen operations)
- **order_events**: Order change bus, event log and kitchen-cancel detection
- **payment**: Payment dialog view-state per session and order
- **conversation**: Chat turn orchestration and chat log reads
- **rate_limit**: Per-session fixed-window quotas (AI turns, TTS)

Usage:
------
    from resto_bot.services.order import create_order_from_cart, cancel_order
    from resto_bot.services import cart, order
"""

from . import cart
from . import menu
from . import order
from . import order_events
from . import payment
from . import conversation
from . import rate_limit

__all__ = ["cart", "menu", "order", "order_events", "payment", "conversation", "rate_limit"]
