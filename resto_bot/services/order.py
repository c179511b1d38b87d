"""
Order Lifecycle Service
=======================

State machine for an order's fulfillment status and payment status, driven
by three actors: the customer who owns the session, kitchen staff, and
payment confirmation.

Status Graph:
-------------
    pending -> confirmed -> preparing -> ready -> delivered
       |           |            |          |
       +-----------+------------+----------+--> cancelled

- The customer may cancel only while ``pending`` and unpaid.
- Staff may cancel any non-terminal order (``delivered`` and ``cancelled``
  are terminal).
- Staff advance status one step at a time. Leaving ``pending`` requires the
  order to be paid when REQUIRE_PAYMENT_BEFORE_CONFIRM is on.

Payment:
--------
``pending -> paid`` is one-way; ``pending -> failed`` may be retried by
selecting a method again. Marking an order paid moves a ``pending`` order to
``confirmed`` and never downgrades a further-advanced status.

Concurrency:
------------
Every mutation reloads the row under ``SELECT ... FOR UPDATE`` (a no-op on
SQLite), re-checks its precondition, and commits in one transaction.
Conflicting requests from different actors resolve by whichever commits
first; the loser fails its precondition instead of being applied.

After each commit an event is published on the order event bus.
"""

import logging
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import config
from ..cart import Cart
from ..errors import NotFoundError, PreconditionFailed, TransientStorageError, ValidationError
from ..logging_config import session_prefix
from ..models import (
    ACTIVE_ORDER_STATUSES,
    MenuItem,
    Order,
    OrderItem,
    RestaurantTable,
    TERMINAL_ORDER_STATUSES,
)
from . import cart as cart_service
from .order_events import get_order_event_bus


logger = logging.getLogger(__name__)


# =============================================================================
# Transition Table
# =============================================================================
# (current status, action) -> next status. Missing pairs are rejected.

TRANSITIONS: Dict[tuple, str] = {
    ("pending", "confirm"): "confirmed",
    ("confirmed", "start_preparing"): "preparing",
    ("preparing", "mark_ready"): "ready",
    ("ready", "deliver"): "delivered",
    ("pending", "cancel"): "cancelled",
    ("pending", "kitchen_cancel"): "cancelled",
    ("confirmed", "kitchen_cancel"): "cancelled",
    ("preparing", "kitchen_cancel"): "cancelled",
    ("ready", "kitchen_cancel"): "cancelled",
}

# Target status of a staff status update -> action that reaches it
STATUS_ACTIONS = {
    "confirmed": "confirm",
    "preparing": "start_preparing",
    "ready": "mark_ready",
    "delivered": "deliver",
}

SELECTABLE_PAYMENT_METHODS = ("cash", "qris")
CONFIRMABLE_PAYMENT_STATUSES = ("paid", "failed")


def next_status(current: str, action: str) -> str:
    """Look up the transition table; raise PreconditionFailed when absent."""
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise PreconditionFailed(f"action '{action}' not allowed from status '{current}'")
    return target


def format_cancel_marker(reason: str) -> str:
    return f"[Dibatalkan: {reason}]"


# =============================================================================
# Internal helpers
# =============================================================================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _lock_order(db: Session, order_id: int) -> Order:
    order = (
        db.query(Order)
        .filter(Order.id == order_id)
        .with_for_update()
        .first()
    )
    if order is None:
        raise NotFoundError(f"order {order_id} not found", "Pesanan tidak ditemukan.")
    return order


def _check_owner(order: Order, session_id: Optional[str]) -> None:
    if session_id is not None and order.session_id != session_id:
        # Do not reveal that another session's order exists
        raise NotFoundError(f"order {order.id} not owned by session", "Pesanan tidak ditemukan.")


def _commit(db: Session, order_id: Optional[int], what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to %s order #%s: %s", what, order_id, exc)
        raise TransientStorageError(f"{what} failed: {exc}") from exc


def _publish(kind: str, order: Order) -> None:
    get_order_event_bus().publish(kind, order)


# =============================================================================
# Creation
# =============================================================================

def _normalize_lines(db: Session, lines: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    normalized = []
    for raw in lines:
        quantity = raw.get("quantity")
        price = raw.get("unit_price", raw.get("price"))
        if not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"invalid quantity {quantity!r}", "Jumlah pesanan minimal 1.")
        if not isinstance(price, int) or price <= 0:
            raise ValidationError(f"invalid price {price!r}", "Harga menu tidak valid.")

        menu_item_id = raw.get("menu_item_id")
        name = raw.get("name") or raw.get("menu_item_name")
        if not name:
            item = db.get(MenuItem, menu_item_id) if menu_item_id is not None else None
            if item is None:
                raise ValidationError(f"unknown menu item {menu_item_id!r}", "Menu tidak ditemukan.")
            name = item.name

        normalized.append({
            "menu_item_id": menu_item_id,
            "menu_item_name": name,
            "unit_price": price,
            "quantity": quantity,
            "notes": raw.get("notes") or None,
        })
    return normalized


def create_order(
    db: Session,
    table_id: int,
    session_id: str,
    lines: Iterable[Dict[str, Any]],
    total_amount: int,
    notes: Optional[str] = None,
) -> Order:
    """
    Create a pending order and all its lines in one transaction.

    Args:
        db: Database session
        table_id: RestaurantTable.id the order is for
        session_id: Owning session
        lines: Dicts with menu_item_id, quantity, price (or unit_price),
            and optional name and notes
        total_amount: Must equal the sum of line subtotals

    Raises:
        ValidationError: empty order, bad line, inactive table, or total mismatch
        TransientStorageError: the write failed; nothing was stored
    """
    return _insert_order(db, table_id, session_id, lines, total_amount, notes)


def create_order_from_cart(
    db: Session,
    table_id: int,
    session_id: str,
    notes: Optional[str] = None,
) -> Order:
    """
    Snapshot the session cart into a new order and empty the cart.

    The order insert and the cart clear commit together: a failed checkout
    leaves neither an order nor an emptied cart behind.
    """
    cart: Cart = cart_service.load_cart(db, session_id)
    if cart.is_empty():
        raise ValidationError("cart is empty", "Keranjang masih kosong.")

    order = _insert_order(
        db,
        table_id,
        session_id,
        cart.to_list(),
        cart.total_amount(),
        notes,
        before_commit=lambda: cart_service.stage_clear_cart(db, session_id),
    )
    cart_service.mark_cart_cleared(session_id)
    return order


def _insert_order(
    db: Session,
    table_id: int,
    session_id: str,
    lines: Iterable[Dict[str, Any]],
    total_amount: int,
    notes: Optional[str],
    before_commit: Optional[Callable[[], None]] = None,
) -> Order:
    normalized = _normalize_lines(db, lines)
    if not normalized:
        raise ValidationError("order has no lines", "Keranjang masih kosong.")

    expected = sum(line["unit_price"] * line["quantity"] for line in normalized)
    if total_amount != expected:
        raise ValidationError(
            f"total_amount {total_amount} != sum of lines {expected}",
            "Total pesanan tidak sesuai.",
        )

    table = db.get(RestaurantTable, table_id)
    if table is None or not table.is_active:
        raise ValidationError(f"table {table_id} not available", "Meja tidak ditemukan.")

    order = Order(
        table_id=table_id,
        session_id=session_id,
        status="pending",
        payment_method="none",
        payment_status="pending",
        total_amount=total_amount,
        notes=notes or None,
    )
    order.items = [OrderItem(**line) for line in normalized]

    try:
        db.add(order)
        if before_commit is not None:
            before_commit()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to create order for session %s: %s", session_prefix(session_id), exc)
        raise TransientStorageError(f"create order failed: {exc}") from exc

    db.refresh(order)
    logger.info(
        "Order #%d created for table %s: %d lines, total %d",
        order.id, table.table_number, len(normalized), total_amount,
    )
    _publish("created", order)
    return order


# =============================================================================
# Customer operations
# =============================================================================

def cancel_order(db: Session, order_id: int, session_id: str) -> Order:
    """Customer cancel: only a pending, unpaid order owned by the session."""
    order = _lock_order(db, order_id)
    _check_owner(order, session_id)

    if order.payment_status == "paid":
        raise PreconditionFailed(
            f"order {order_id} already paid",
            "Pesanan yang sudah dibayar tidak bisa dibatalkan.",
        )
    if (order.status, "cancel") not in TRANSITIONS:
        raise PreconditionFailed(
            f"order {order_id} is {order.status}",
            "Pesanan sudah diproses dan tidak bisa dibatalkan.",
        )
    order.status = next_status(order.status, "cancel")

    _commit(db, order_id, "cancel")
    logger.info("Order #%d cancelled by customer", order_id)
    _publish("cancelled", order)
    return order


def set_payment_method(
    db: Session,
    order_id: int,
    method: str,
    session_id: Optional[str] = None,
) -> Order:
    """
    Select (or re-select) the payment method for an unpaid order.

    Resets payment_status to pending and restarts the waiting clock.
    """
    if method not in SELECTABLE_PAYMENT_METHODS:
        raise ValidationError(f"unknown payment method {method!r}", "Metode pembayaran tidak valid.")

    order = _lock_order(db, order_id)
    _check_owner(order, session_id)

    if order.payment_status == "paid":
        raise PreconditionFailed(f"order {order_id} already paid", "Pesanan ini sudah dibayar.")
    if order.status in TERMINAL_ORDER_STATUSES:
        raise PreconditionFailed(f"order {order_id} is {order.status}")

    order.payment_method = method
    order.payment_status = "pending"
    order.payment_requested_at = _utcnow()

    _commit(db, order_id, "set payment method on")
    logger.info("Order #%d payment method set to %s", order_id, method)
    _publish("payment_changed", order)
    return order


def delete_order(db: Session, order_id: int, session_id: str) -> None:
    """Hard-delete a cancelled order and its lines."""
    order = _lock_order(db, order_id)
    _check_owner(order, session_id)

    if order.status != "cancelled":
        raise PreconditionFailed(
            f"order {order_id} is {order.status}",
            "Hanya pesanan yang dibatalkan yang bisa dihapus.",
        )

    snapshot = SimpleNamespace(
        id=order.id,
        session_id=order.session_id,
        status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        notes=order.notes,
    )
    db.delete(order)
    _commit(db, order_id, "delete")
    logger.info("Order #%d deleted", order_id)
    _publish("deleted", snapshot)


# =============================================================================
# Staff operations
# =============================================================================

def update_status(db: Session, order_id: int, new_status: str) -> Order:
    """Advance an order one step along the happy path."""
    action = STATUS_ACTIONS.get(new_status)
    if action is None:
        raise ValidationError(f"status {new_status!r} cannot be set directly", "Status tidak valid.")

    order = _lock_order(db, order_id)
    target = next_status(order.status, action)

    if (
        action == "confirm"
        and config.REQUIRE_PAYMENT_BEFORE_CONFIRM
        and order.payment_status != "paid"
    ):
        raise PreconditionFailed(
            f"order {order_id} not paid",
            "Pesanan belum dibayar. Konfirmasi pembayaran terlebih dahulu.",
        )

    previous = order.status
    order.status = target
    _commit(db, order_id, "update status of")
    logger.info("Order #%d status %s -> %s", order_id, previous, target)
    _publish("status_changed", order)
    return order


def kitchen_cancel_order(db: Session, order_id: int, reason: Optional[str] = None) -> Order:
    """Staff cancel of any non-terminal order, appending the reason marker."""
    order = _lock_order(db, order_id)
    order.status = next_status(order.status, "kitchen_cancel")

    reason = (reason or "").strip()
    if reason:
        marker = format_cancel_marker(reason)
        order.notes = f"{order.notes}\n{marker}" if order.notes else marker

    _commit(db, order_id, "kitchen-cancel")
    logger.info("Order #%d cancelled by kitchen (reason=%s)", order_id, reason or "-")
    _publish("cancelled", order)
    return order


def confirm_payment(db: Session, order_id: int, method: str, status: str = "paid") -> Order:
    """
    Record a staff-attested payment result.

    ``paid`` is final and confirms a pending order; ``failed`` leaves the
    order open for another attempt.
    """
    if method not in SELECTABLE_PAYMENT_METHODS:
        raise ValidationError(f"unknown payment method {method!r}", "Metode pembayaran tidak valid.")
    if status not in CONFIRMABLE_PAYMENT_STATUSES:
        raise ValidationError(f"unknown payment status {status!r}", "Status pembayaran tidak valid.")

    order = _lock_order(db, order_id)

    if order.status == "cancelled":
        raise PreconditionFailed(f"order {order_id} is cancelled", "Pesanan sudah dibatalkan.")
    if order.payment_status == "paid":
        if status == "paid" and order.payment_method == method:
            return order
        raise PreconditionFailed(f"order {order_id} already paid", "Pesanan ini sudah dibayar.")

    order.payment_method = method
    order.payment_status = status
    if status == "paid" and order.status == "pending":
        order.status = next_status(order.status, "confirm")

    _commit(db, order_id, "confirm payment for")
    logger.info("Order #%d payment %s via %s (status=%s)", order_id, status, method, order.status)
    _publish("payment_changed", order)
    return order


# =============================================================================
# Reads
# =============================================================================

def get_order(db: Session, order_id: int, session_id: Optional[str] = None) -> Order:
    order = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        raise NotFoundError(f"order {order_id} not found", "Pesanan tidak ditemukan.")
    _check_owner(order, session_id)
    return order


def list_session_orders(db: Session, session_id: str, limit: Optional[int] = None) -> List[Order]:
    """The session's orders, newest first."""
    query = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.session_id == session_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def list_active_orders(db: Session) -> List[Order]:
    """Kitchen queue: pending through ready, oldest first."""
    return (
        db.query(Order)
        .options(selectinload(Order.items), selectinload(Order.table))
        .filter(Order.status.in_(ACTIVE_ORDER_STATUSES))
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )
