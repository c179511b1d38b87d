"""
Cart Persistence Service
========================

Keeps each session's cart in a write-through cache so it survives page
reloads and server restarts:

- Reads check the in-memory cache first, then fall back to ``cart_sessions``
- Writes update the cache and upsert the database row in one call
- Cache entries have TTL and LRU eviction to bound memory usage

The cart itself (``resto_bot.cart.Cart``) does no I/O; this module only
loads and stores its serialized lines.

Cache Eviction Strategy:
------------------------
1. **TTL-based**: carts not touched within CART_TTL_SECONDS are dropped from
   the cache. Checked on roughly 1% of reads.

2. **LRU-based**: when the cache reaches CART_MAX_CACHE_SIZE, the oldest 10%
   of entries (by last access time) are evicted.

Evicted carts stay in the database and are restored on next access.

Thread Safety:
--------------
Cache operations are protected by a threading.Lock; FastAPI runs sync routes
in a threadpool.

Usage:
------
    from resto_bot.services.cart import load_cart, save_cart

    cart = load_cart(db, session_id)
    cart.add_item(menu_item, 2)
    save_cart(db, session_id, cart, table_id=table.id)
"""

import logging
import random
import threading
import time
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from ..cart import Cart
from ..config import CART_TTL_SECONDS, CART_MAX_CACHE_SIZE
from ..errors import TransientStorageError
from ..logging_config import session_prefix
from ..models import CartSession


logger = logging.getLogger(__name__)


# =============================================================================
# Cart Cache
# =============================================================================
# {session_id: {"lines": [...serialized lines...], "last_access": timestamp}}

CART_CACHE: Dict[str, Dict[str, Any]] = {}
_cache_lock = threading.Lock()


def _cleanup_expired_carts() -> int:
    """Drop cache entries not accessed within CART_TTL_SECONDS."""
    now = time.time()

    with _cache_lock:
        expired = [
            sid for sid, entry in CART_CACHE.items()
            if now - entry.get("last_access", 0) > CART_TTL_SECONDS
        ]
        for sid in expired:
            del CART_CACHE[sid]

    if expired:
        logger.debug("Cleaned up %d expired carts from cache", len(expired))

    return len(expired)


def _evict_oldest_carts(count: int) -> None:
    """Evict the least recently used entries. Caller holds the lock."""
    if len(CART_CACHE) < CART_MAX_CACHE_SIZE:
        return

    oldest = sorted(CART_CACHE.items(), key=lambda x: x[1].get("last_access", 0))
    for sid, _ in oldest[:max(1, count)]:
        del CART_CACHE[sid]

    logger.debug("Evicted %d oldest carts from cache", max(1, count))


def _cache_put(session_id: str, lines: list) -> None:
    with _cache_lock:
        if session_id not in CART_CACHE:
            _evict_oldest_carts(CART_MAX_CACHE_SIZE // 10)
        CART_CACHE[session_id] = {
            "lines": lines,
            "last_access": time.time(),
        }


# =============================================================================
# Public Functions
# =============================================================================

def load_cart(db: Session, session_id: str) -> Cart:
    """
    Return the session's cart, empty when the session has none yet.

    Each call returns a fresh ``Cart``; mutations are not visible to other
    callers until ``save_cart`` runs.
    """
    if random.randint(1, 100) == 1:
        _cleanup_expired_carts()

    with _cache_lock:
        entry = CART_CACHE.get(session_id)
        if entry is not None:
            entry["last_access"] = time.time()
            return Cart.from_list(entry["lines"])

    try:
        row = db.query(CartSession).filter(CartSession.session_id == session_id).first()
    except SQLAlchemyError as exc:
        logger.error("Failed to load cart for session %s: %s", session_prefix(session_id), exc)
        raise TransientStorageError(f"cart load failed: {exc}") from exc

    lines = list(row.lines or []) if row else []
    _cache_put(session_id, lines)
    return Cart.from_list(lines)


def save_cart(db: Session, session_id: str, cart: Cart, table_id: Optional[int] = None) -> None:
    """
    Write the cart to cache and database (upsert) and commit.

    Raises:
        TransientStorageError: the database write failed; the cache entry is
            dropped so the next read reflects what was actually stored.
    """
    lines = cart.to_list()

    try:
        row = db.query(CartSession).filter(CartSession.session_id == session_id).first()
        if row:
            row.lines = lines
            if table_id is not None:
                row.table_id = table_id
            # JSON columns are not change-tracked for in-place edits
            flag_modified(row, "lines")
        else:
            db.add(CartSession(session_id=session_id, table_id=table_id, lines=lines))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        with _cache_lock:
            CART_CACHE.pop(session_id, None)
        logger.error("Failed to save cart for session %s: %s", session_prefix(session_id), exc)
        raise TransientStorageError(f"cart save failed: {exc}") from exc

    _cache_put(session_id, lines)


def clear_cart(db: Session, session_id: str) -> None:
    """Empty the session's cart and commit."""
    save_cart(db, session_id, Cart())


def stage_clear_cart(db: Session, session_id: str) -> None:
    """
    Empty the session's cart row inside the caller's transaction.

    Nothing is committed and the cache is left alone; call
    ``mark_cart_cleared`` once the caller's commit succeeds.
    """
    row = db.query(CartSession).filter(CartSession.session_id == session_id).first()
    if row:
        row.lines = []
        flag_modified(row, "lines")


def mark_cart_cleared(session_id: str) -> None:
    _cache_put(session_id, [])


def clear_cache() -> int:
    """Clear the in-memory cache; database rows are untouched."""
    with _cache_lock:
        count = len(CART_CACHE)
        CART_CACHE.clear()
    logger.info("Cleared %d carts from cache", count)
    return count


def get_cache_stats() -> Dict[str, Any]:
    with _cache_lock:
        access_times = [entry["last_access"] for entry in CART_CACHE.values()]
        return {
            "size": len(CART_CACHE),
            "max_size": CART_MAX_CACHE_SIZE,
            "ttl_seconds": CART_TTL_SECONDS,
            "oldest_access": min(access_times) if access_times else None,
            "newest_access": max(access_times) if access_times else None,
        }


def get_session_table_id(db: Session, session_id: str) -> Optional[int]:
    """Table the session was started at, or None."""
    row = db.query(CartSession.table_id).filter(CartSession.session_id == session_id).first()
    return row[0] if row else None


def bind_session_table(db: Session, session_id: str, table_id: int) -> None:
    """Record the session's table, creating its (empty) cart row if needed."""
    save_cart(db, session_id, load_cart(db, session_id), table_id=table_id)
