"""
Conversation Gateway
====================

Runs one chat turn for a table session:

1. Gate: one turn in flight per session, and a cooldown since the start of
   the previous accepted turn. A gated call gets a friendly placeholder
   reply; nothing is written and the model is not called.
2. Per-session AI-turn quota (fixed window, fail-open).
3. Persist the user message.
4. Build the model input: system prompt (persona, directive grammar, menu,
   last orders, cart) + trailing window of prior messages + the new message.
5. Call the model. Provider rate-limit, quota and availability errors become
   canned Indonesian replies; unexpected errors propagate.
6. Parse directives, apply them to the session cart, persist the cart.
7. Persist the clean (directive-free) assistant message and return it.

Turn ordering within a session is strict: the user message is committed
before the model is called and the assistant message only after a reply.
The in-flight flag is released in ``finally`` so a failed turn never blocks
the session.

Reads (``list_messages``) collapse duplicate consecutive messages, which
retried turns can leave behind.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from .. import llm_client
from ..ai_actions import AIAction, apply_actions, parse_ai_reply
from ..errors import (
    QuotaExhausted,
    RateLimited,
    TransientStorageError,
    UpstreamUnavailable,
    ValidationError,
)
from ..logging_config import session_prefix
from ..models import ChatMessage
from ..prompt_builder import build_messages, build_system_prompt
from . import cart as cart_service
from .menu import build_menu_snapshot, get_available_menu_items
from .order import list_session_orders
from .rate_limit import SessionRateLimiter, get_ai_turn_limiter


logger = logging.getLogger(__name__)


# =============================================================================
# Canned replies
# =============================================================================

PLACEHOLDER_IN_FLIGHT = "Sebentar ya, aku masih memproses pesan sebelumnya... 🙏"
PLACEHOLDER_COOLDOWN = "Pelan-pelan ya, tunggu sebentar sebelum kirim pesan lagi 😊"

FALLBACK_RATE_LIMITED = "Maaf, aku lagi sibuk banget. Coba lagi beberapa saat ya! 😅"
FALLBACK_QUOTA = "Maaf, ada kendala teknis. Bisa lihat menu manual dulu ya!"
FALLBACK_UNAVAILABLE = "Waduh, ada masalah teknis nih. Coba lagi ya, atau langsung pilih dari menu! 😊"
FALLBACK_ACTIONS_ONLY = "Siap! Keranjang kamu sudah aku perbarui 😊"


@dataclass
class TurnResult:
    """Outcome of ``send_message``."""
    reply: str
    accepted: bool = True
    actions: List[AIAction] = field(default_factory=list)
    cart: Optional[Dict[str, Any]] = None
    fallback: Optional[str] = None  # rate_limited, quota_exhausted, upstream_unavailable


def _to_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def dedupe_messages(messages: Sequence[Any], window_seconds: Optional[float] = None) -> List[Any]:
    """
    Collapse consecutive messages with identical (role, content) created
    within ``window_seconds`` of the kept one into that earlier message.
    """
    window = config.MESSAGE_DEDUP_WINDOW_SECONDS if window_seconds is None else window_seconds
    kept: List[Any] = []
    for msg in messages:
        if kept:
            prev = kept[-1]
            if (
                prev.role == msg.role
                and prev.content == msg.content
                and abs((_to_utc(msg.created_at) - _to_utc(prev.created_at)).total_seconds()) <= window
            ):
                continue
        kept.append(msg)
    return kept


def list_messages(db: Session, session_id: str, dedupe: bool = True) -> List[ChatMessage]:
    """The session's chat log in creation order."""
    rows = (
        db.query(ChatMessage)
        .filter(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        .all()
    )
    return dedupe_messages(rows) if dedupe else rows


def append_message(
    db: Session,
    session_id: str,
    table_id: Optional[int],
    role: str,
    content: str,
) -> ChatMessage:
    """Durably append one message; storage failures raise TransientStorageError."""
    msg = ChatMessage(session_id=session_id, table_id=table_id, role=role, content=content)
    try:
        db.add(msg)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to store %s message for session %s: %s", role, session_prefix(session_id), exc)
        raise TransientStorageError(f"append {role} message failed: {exc}") from exc
    db.refresh(msg)
    return msg


class ConversationGateway:
    """
    Orchestrates chat turns; one instance serves all sessions of a process.

    Args:
        complete_fn: ``(messages) -> reply text``; defaults to llm_client.complete
        clock: Monotonic seconds, injectable for tests
        limiter: Per-session AI turn limiter; None uses the shared one
    """

    def __init__(
        self,
        complete_fn: Optional[Callable[[List[Dict[str, str]]], str]] = None,
        clock: Callable[[], float] = time.monotonic,
        limiter: Optional[SessionRateLimiter] = None,
        cooldown_seconds: Optional[float] = None,
        history_window: Optional[int] = None,
    ):
        self._complete = complete_fn
        self._clock = clock
        self._limiter = limiter
        self.cooldown_seconds = config.CHAT_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        self.history_window = config.CHAT_HISTORY_WINDOW if history_window is None else history_window

        self._lock = threading.Lock()
        self._in_flight: set = set()
        self._last_accepted: Dict[str, float] = {}

    # -------------------------------------------------------------------------
    # Gate
    # -------------------------------------------------------------------------

    def _try_begin(self, session_id: str) -> Optional[str]:
        """Claim the session for a turn; return a placeholder when refused."""
        with self._lock:
            if session_id in self._in_flight:
                return PLACEHOLDER_IN_FLIGHT
            now = self._clock()
            last = self._last_accepted.get(session_id)
            if last is not None and now - last < self.cooldown_seconds:
                return PLACEHOLDER_COOLDOWN
            self._in_flight.add(session_id)
            self._last_accepted[session_id] = now
            return None

    def _end(self, session_id: str) -> None:
        with self._lock:
            self._in_flight.discard(session_id)

    def is_in_flight(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._in_flight

    # -------------------------------------------------------------------------
    # Turn
    # -------------------------------------------------------------------------

    def send_message(
        self,
        db: Session,
        session_id: str,
        table_id: Optional[int],
        content: str,
    ) -> TurnResult:
        """
        Run one chat turn.

        Raises:
            ValidationError: empty or oversized message
            RateLimited: the session used up its AI-turn quota
            TransientStorageError: a message or cart write failed
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("empty message", "Pesan tidak boleh kosong.")
        if len(text) > config.MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"message length {len(text)} exceeds {config.MAX_MESSAGE_LENGTH}",
                "Pesan terlalu panjang.",
            )

        placeholder = self._try_begin(session_id)
        if placeholder:
            logger.info("Chat turn refused for session %s (busy or cooling down)", session_prefix(session_id))
            return TurnResult(reply=placeholder, accepted=False)

        try:
            return self._run_turn(db, session_id, table_id, text)
        finally:
            self._end(session_id)

    def _run_turn(self, db: Session, session_id: str, table_id: Optional[int], text: str) -> TurnResult:
        limiter = self._limiter or get_ai_turn_limiter()
        quota = limiter.hit(session_id)
        if not quota.allowed:
            raise RateLimited(
                f"ai turn quota exceeded for {session_prefix(session_id)}",
                retry_after=quota.retry_after,
            )

        user_msg = append_message(db, session_id, table_id, "user", text)

        catalog = get_available_menu_items(db)
        cart = cart_service.load_cart(db, session_id)
        recent_orders = list_session_orders(db, session_id, limit=config.CHAT_ORDER_HISTORY_LIMIT)
        history = self._prior_messages(db, session_id, user_msg.id)

        system_prompt = build_system_prompt(build_menu_snapshot(catalog), recent_orders, cart.snapshot())
        messages = build_messages(system_prompt, history, text, window=self.history_window)

        complete = self._complete or llm_client.complete
        fallback = None
        try:
            raw_reply = complete(messages)
        except RateLimited:
            fallback, raw_reply = "rate_limited", FALLBACK_RATE_LIMITED
        except QuotaExhausted:
            fallback, raw_reply = "quota_exhausted", FALLBACK_QUOTA
        except UpstreamUnavailable:
            fallback, raw_reply = "upstream_unavailable", FALLBACK_UNAVAILABLE

        applied: List[AIAction] = []
        if fallback:
            logger.warning("Chat turn for session %s degraded: %s", session_prefix(session_id), fallback)
            clean = raw_reply
        else:
            parsed = parse_ai_reply(raw_reply, catalog)
            applied = apply_actions(cart, parsed.actions, catalog)
            if applied:
                cart_service.save_cart(db, session_id, cart, table_id=table_id)
            clean = parsed.clean_message or (FALLBACK_ACTIONS_ONLY if applied else llm_client.EMPTY_REPLY)

        append_message(db, session_id, table_id, "assistant", clean)
        logger.info(
            "Chat turn for session %s: %d actions applied",
            session_prefix(session_id), len(applied),
        )
        return TurnResult(
            reply=clean,
            accepted=True,
            actions=applied,
            cart=cart.snapshot(),
            fallback=fallback,
        )

    def _prior_messages(self, db: Session, session_id: str, before_id: int) -> List[ChatMessage]:
        rows = (
            db.query(ChatMessage)
            .filter(ChatMessage.session_id == session_id, ChatMessage.id < before_id)
            .order_by(ChatMessage.id.desc())
            .limit(self.history_window * 2)
            .all()
        )
        rows.reverse()
        return dedupe_messages(rows)[-self.history_window:]

    def reset(self) -> None:
        with self._lock:
            self._in_flight.clear()
            self._last_accepted.clear()


_gateway: Optional[ConversationGateway] = None
_gateway_lock = threading.Lock()


def get_conversation_gateway() -> ConversationGateway:
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            _gateway = ConversationGateway()
        return _gateway


def set_conversation_gateway(gateway: Optional[ConversationGateway]) -> None:
    """Replace the process gateway (tests inject fakes here)."""
    global _gateway
    with _gateway_lock:
        _gateway = gateway
