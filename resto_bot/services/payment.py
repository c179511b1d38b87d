"""
Payment confirmation flow.

A per-(session, order) view-state machine layered on the order lifecycle:

    select -> qris_waiting -> confirmed
           -> cash_waiting -> confirmed

The persisted order is the only source of truth. Every observation
re-derives the view from ``payment_method``/``payment_status``; local state
only adds the QRIS countdown on top:

- paid                      -> confirmed (whatever the local timer says)
- pending + qris            -> qris_waiting, until the countdown expires
- pending + cash            -> cash_waiting (no timeout; ends on staff confirm)
- anything else             -> select

When the QRIS countdown expires a failure notice is emitted and the view
returns to ``select``. The order's payment fields are left as they were;
selecting a method again starts a new attempt. Entering ``confirmed`` runs
the success side effect once per order id.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .. import config

logger = logging.getLogger(__name__)


SELECT = "select"
QRIS_WAITING = "qris_waiting"
CASH_WAITING = "cash_waiting"
CONFIRMED = "confirmed"

NOTICE_QRIS_EXPIRED = "Waktu pembayaran QRIS habis. Silakan pilih metode pembayaran lagi."
NOTICE_QRIS_PAID = "Pembayaran QRIS berhasil!"
NOTICE_CASH_PAID = "Pembayaran tunai dikonfirmasi!"
NOTICE_PAID = "Pembayaran berhasil!"


class PaymentFlow:
    """
    View state for one order's payment dialog.

    ``clock`` returns seconds (monotonic); tests pass a fake one.
    ``on_confirmed(order)`` runs once when the order is first seen paid.
    """

    def __init__(
        self,
        order_id: int,
        announced: Set[int],
        on_confirmed: Optional[Callable[[Any], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        qris_timeout: Optional[float] = None,
    ):
        self.order_id = order_id
        self.state = SELECT
        self._announced = announced
        self._on_confirmed = on_confirmed
        self._clock = clock
        self._qris_timeout = config.QRIS_TIMEOUT_SECONDS if qris_timeout is None else qris_timeout
        self._deadline: Optional[float] = None
        self._attempt: Any = None
        # payment_requested_at of the QRIS attempt whose countdown ran out
        self._expired_attempt: Any = None
        self._notices: List[str] = []

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    def observe(self, order: Any) -> str:
        """Re-derive the view from a persisted order and return the state."""
        if order.payment_status == "paid":
            self._enter_confirmed(order)
            return self.state

        method = order.payment_method
        if order.status == "cancelled" or order.payment_status != "pending":
            self._to_select()
        elif method == "cash":
            self._deadline = None
            self.state = CASH_WAITING
        elif method == "qris":
            attempt = order.payment_requested_at
            if self._expired_attempt is not None and self._expired_attempt == attempt:
                self._to_select()
            else:
                if self.state != QRIS_WAITING or self._deadline is None or self._attempt != attempt:
                    self._deadline = self._clock() + self._qris_timeout
                self._attempt = attempt
                self.state = QRIS_WAITING
                self.tick()
        else:
            self._to_select()
        return self.state

    def method_selected(self, order: Any) -> str:
        """The customer (re)selected a method: start a fresh attempt."""
        self._expired_attempt = None
        self._deadline = None
        self.state = SELECT
        return self.observe(order)

    def tick(self) -> str:
        """Advance the QRIS countdown; expiry emits a notice and resets the view."""
        if self.state == QRIS_WAITING and self._deadline is not None and self._clock() >= self._deadline:
            logger.info("QRIS countdown expired for order #%s", self.order_id)
            self._expired_attempt = self._attempt
            self._notices.append(NOTICE_QRIS_EXPIRED)
            self._to_select()
        return self.state

    @property
    def remaining_seconds(self) -> Optional[int]:
        if self.state != QRIS_WAITING or self._deadline is None:
            return None
        return max(0, int(round(self._deadline - self._clock())))

    def drain_notices(self) -> List[str]:
        notices, self._notices = self._notices, []
        return notices

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _to_select(self) -> None:
        self.state = SELECT
        self._deadline = None

    def _enter_confirmed(self, order: Any) -> None:
        previous = self.state
        self.state = CONFIRMED
        self._deadline = None

        if self.order_id in self._announced:
            return
        self._announced.add(self.order_id)

        if previous == QRIS_WAITING:
            self._notices.append(NOTICE_QRIS_PAID)
        elif previous == CASH_WAITING or order.payment_method == "cash":
            self._notices.append(NOTICE_CASH_PAID)
        else:
            self._notices.append(NOTICE_PAID)

        logger.info("Payment confirmed for order #%s", self.order_id)
        if self._on_confirmed:
            self._on_confirmed(order)


class PaymentFlowRegistry:
    """Keeps one PaymentFlow per (session, order) for the process lifetime."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._lock = threading.Lock()
        self._flows: Dict[Tuple[str, int], PaymentFlow] = {}
        self._announced: Set[int] = set()
        self.clock = clock

    def get(
        self,
        session_id: str,
        order_id: int,
        on_confirmed: Optional[Callable[[Any], None]] = None,
    ) -> PaymentFlow:
        key = (session_id, order_id)
        with self._lock:
            flow = self._flows.get(key)
            if flow is None:
                flow = PaymentFlow(order_id, self._announced, on_confirmed=on_confirmed, clock=self.clock)
                self._flows[key] = flow
            elif on_confirmed is not None:
                flow._on_confirmed = on_confirmed
            return flow

    def discard(self, session_id: str, order_id: int) -> None:
        with self._lock:
            self._flows.pop((session_id, order_id), None)

    def is_announced(self, order_id: int) -> bool:
        return order_id in self._announced

    def reset(self) -> None:
        with self._lock:
            self._flows.clear()
            self._announced.clear()


payment_flows = PaymentFlowRegistry()


def get_payment_flows() -> PaymentFlowRegistry:
    return payment_flows
