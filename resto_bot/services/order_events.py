"""
Order change propagation.

Every committed order mutation is published as an ``OrderEvent``. Viewers
observe them two ways:

- in-process subscribers registered with ``OrderEventBus.subscribe``
- polling clients reading ``GET /orders/events?after=<seq>``, served from a
  bounded, sequence-numbered event log

Delivery is eventually consistent: a poller that falls behind the log's
capacity sees a gap in ``seq`` and should refetch the orders it shows.
"""

import logging
import re
import threading
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


KITCHEN_CANCEL_MARKER = "[Dibatalkan:"
KITCHEN_CANCEL_PATTERN = re.compile(r"\[Dibatalkan: (.+?)\]")
DEFAULT_KITCHEN_CANCEL_REASON = "Ada kesalahan pada pesanan"


@dataclass
class OrderEvent:
    seq: int
    kind: str  # created, status_changed, payment_changed, cancelled, deleted
    order_id: int
    session_id: str
    status: Optional[str]
    payment_method: Optional[str]
    payment_status: Optional[str]
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


Subscriber = Callable[[OrderEvent], None]


class OrderEventBus:
    """Fan-out of order events to subscribers plus a replayable log."""

    def __init__(self, capacity: int = 1000):
        self._lock = threading.Lock()
        self._subscribers: List[Subscriber] = []
        self._log: Deque[OrderEvent] = deque(maxlen=capacity)
        self._seq = 0

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, kind: str, order: Any) -> OrderEvent:
        """Record and fan out an event for ``order`` (an Order row)."""
        with self._lock:
            self._seq += 1
            event = OrderEvent(
                seq=self._seq,
                kind=kind,
                order_id=order.id,
                session_id=order.session_id,
                status=order.status,
                payment_method=order.payment_method,
                payment_status=order.payment_status,
                notes=order.notes,
            )
            self._log.append(event)
            subscribers = list(self._subscribers)

        logger.debug("Order #%s event %s (seq=%d)", order.id, kind, event.seq)

        for callback in subscribers:
            # One broken subscriber must not block the others or the mutation
            try:
                callback(event)
            except Exception:
                logger.exception("Order event subscriber failed for order #%s", order.id)

        return event

    def events_after(self, seq: int = 0, session_id: Optional[str] = None) -> List[OrderEvent]:
        with self._lock:
            events = [e for e in self._log if e.seq > seq]
        if session_id is not None:
            events = [e for e in events if e.session_id == session_id]
        return events

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._seq

    def reset(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self._log.clear()
            self._seq = 0


order_events = OrderEventBus()


def get_order_event_bus() -> OrderEventBus:
    return order_events


# =============================================================================
# Kitchen cancellation detection
# =============================================================================

def kitchen_cancel_reason(notes: Optional[str]) -> Optional[str]:
    """Return the reason from a ``[Dibatalkan: ...]`` marker in ``notes``."""
    if not notes or KITCHEN_CANCEL_MARKER not in notes:
        return None
    match = KITCHEN_CANCEL_PATTERN.search(notes)
    return match.group(1) if match else DEFAULT_KITCHEN_CANCEL_REASON


class OrderStatusWatcher:
    """
    Tracks the statuses a customer view last saw and reports cancellations
    the customer did not request themselves.

    Call ``expect_cancel(order_id)`` before a self-cancel, then feed every
    observed order (row or event) to ``observe``.
    """

    def __init__(self):
        self._last_status: Dict[int, str] = {}
        self._self_cancelled: set = set()

    def expect_cancel(self, order_id: int) -> None:
        self._self_cancelled.add(order_id)

    def observe(self, order_id: int, status: str, notes: Optional[str] = None) -> Optional[str]:
        """
        Record ``status`` and return the kitchen's reason when this observation
        is an unrequested move into ``cancelled``; None otherwise.
        """
        previous = self._last_status.get(order_id)
        self._last_status[order_id] = status

        if status != "cancelled" or previous is None or previous == "cancelled":
            return None
        if order_id in self._self_cancelled:
            self._self_cancelled.discard(order_id)
            return None

        reason = kitchen_cancel_reason(notes) or DEFAULT_KITCHEN_CANCEL_REASON
        logger.info("Order #%s cancelled by kitchen: %s", order_id, reason)
        return reason
