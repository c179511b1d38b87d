"""
Tests for the order lifecycle: creation, status transitions, cancellation
and payment confirmation.
"""
import pytest
from sqlalchemy.exc import OperationalError

import resto_bot.config as config_mod
from resto_bot.cart import Cart
from resto_bot.errors import NotFoundError, PreconditionFailed, TransientStorageError, ValidationError
from resto_bot.models import Order, OrderItem
from resto_bot.services import cart as cart_service
from resto_bot.services import order as order_service
from resto_bot.services.order_events import get_order_event_bus, kitchen_cancel_reason

OTHER_SESSION = "session_1700000000000_deadbeefcafe"


@pytest.fixture
def lines(menu):
    return [
        {"menu_item_id": menu["Es Teh"].id, "name": "Es Teh", "price": 8000, "quantity": 1},
        {"menu_item_id": menu["Nasi Goreng"].id, "name": "Nasi Goreng", "price": 25000, "quantity": 2,
         "notes": "satu tidak pedas"},
    ]


@pytest.fixture
def order(db_session, table7, session_id, lines):
    return order_service.create_order(db_session, table7.id, session_id, lines, 58000)


def advance(db, order_id, *statuses):
    for status in statuses:
        order_service.update_status(db, order_id, status)


class TestCreateOrder:

    def test_creates_pending_order_with_lines(self, db_session, order):
        assert order.status == "pending"
        assert order.payment_method == "none"
        assert order.payment_status == "pending"
        assert order.total_amount == 58000
        assert len(order.items) == 2

        nasi = next(i for i in order.items if i.menu_item_name == "Nasi Goreng")
        assert nasi.unit_price == 25000
        assert nasi.line_total == 50000
        assert nasi.notes == "satu tidak pedas"

    def test_empty_order_rejected(self, db_session, table7, session_id):
        with pytest.raises(ValidationError):
            order_service.create_order(db_session, table7.id, session_id, [], 0)
        assert db_session.query(Order).count() == 0

    def test_total_mismatch_rejected_and_nothing_stored(self, db_session, table7, session_id, lines):
        with pytest.raises(ValidationError):
            order_service.create_order(db_session, table7.id, session_id, lines, 50000)
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0

    def test_bad_quantity_rejected(self, db_session, table7, session_id, lines):
        lines[0]["quantity"] = 0
        with pytest.raises(ValidationError):
            order_service.create_order(db_session, table7.id, session_id, lines, 50000)

    def test_unknown_table_rejected(self, db_session, session_id, lines):
        with pytest.raises(ValidationError):
            order_service.create_order(db_session, 9999, session_id, lines, 58000)

    def test_line_name_looked_up_when_missing(self, db_session, table7, session_id, menu):
        order = order_service.create_order(
            db_session, table7.id, session_id,
            [{"menu_item_id": menu["Es Teh"].id, "unit_price": 8000, "quantity": 3}],
            24000,
        )
        assert order.items[0].menu_item_name == "Es Teh"

    def test_snapshot_survives_catalog_price_change(self, db_session, order, menu):
        menu["Nasi Goreng"].price = 30000
        db_session.commit()
        db_session.expire_all()

        stored = order_service.get_order(db_session, order.id)
        assert stored.total_amount == 58000
        assert {i.unit_price for i in stored.items} == {8000, 25000}

    def test_create_from_cart_clears_cart(self, db_session, table7, session_id, menu):
        cart = Cart()
        cart.add_item(menu["Es Teh"], 1)
        cart.add_item(menu["Nasi Goreng"], 2)
        cart_service.save_cart(db_session, session_id, cart)

        order = order_service.create_order_from_cart(db_session, table7.id, session_id)

        assert order.total_amount == 58000
        assert cart_service.load_cart(db_session, session_id).is_empty()

    def test_cart_cleared_in_database_not_just_cache(self, db_session, table7, session_id, menu):
        cart = Cart()
        cart.add_item(menu["Es Teh"], 1)
        cart_service.save_cart(db_session, session_id, cart)

        order_service.create_order_from_cart(db_session, table7.id, session_id)
        cart_service.clear_cache()

        assert cart_service.load_cart(db_session, session_id).is_empty()

    def test_failed_cart_clear_stores_no_order(self, db_session, table7, session_id, menu, monkeypatch):
        cart = Cart()
        cart.add_item(menu["Nasi Goreng"], 2)
        cart_service.save_cart(db_session, session_id, cart)

        def failing_clear(db, sid):
            raise OperationalError("UPDATE cart_sessions", {}, Exception("disk I/O error"))

        monkeypatch.setattr(cart_service, "stage_clear_cart", failing_clear)
        with pytest.raises(TransientStorageError):
            order_service.create_order_from_cart(db_session, table7.id, session_id)

        assert db_session.query(Order).count() == 0
        assert cart_service.load_cart(db_session, session_id).total_items() == 2
        assert get_order_event_bus().events_after(0) == []

        # Retrying once storage recovers yields exactly one order
        monkeypatch.undo()
        order = order_service.create_order_from_cart(db_session, table7.id, session_id)
        assert order.total_amount == 50000
        assert db_session.query(Order).count() == 1
        assert cart_service.load_cart(db_session, session_id).is_empty()

    def test_create_from_empty_cart_rejected(self, db_session, table7, session_id):
        with pytest.raises(ValidationError):
            order_service.create_order_from_cart(db_session, table7.id, session_id)

    def test_publishes_created_event(self, order):
        events = get_order_event_bus().events_after(0)
        assert [(e.kind, e.order_id) for e in events] == [("created", order.id)]


class TestStatusTransitions:

    def test_confirm_requires_payment(self, db_session, order):
        with pytest.raises(PreconditionFailed):
            order_service.update_status(db_session, order.id, "confirmed")

    def test_confirm_without_payment_when_not_required(self, db_session, order, monkeypatch):
        monkeypatch.setattr(config_mod, "REQUIRE_PAYMENT_BEFORE_CONFIRM", False)
        updated = order_service.update_status(db_session, order.id, "confirmed")
        assert updated.status == "confirmed"

    def test_happy_path(self, db_session, order):
        order_service.confirm_payment(db_session, order.id, "cash")
        advance(db_session, order.id, "preparing", "ready", "delivered")
        assert order_service.get_order(db_session, order.id).status == "delivered"

    def test_cannot_skip_steps(self, db_session, order):
        order_service.confirm_payment(db_session, order.id, "cash")
        with pytest.raises(PreconditionFailed):
            order_service.update_status(db_session, order.id, "ready")

    def test_cannot_move_backwards(self, db_session, order):
        order_service.confirm_payment(db_session, order.id, "cash")
        advance(db_session, order.id, "preparing")
        with pytest.raises(PreconditionFailed):
            order_service.update_status(db_session, order.id, "confirmed")

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.update_status(db_session, 424242, "preparing")

    def test_next_status_table(self):
        assert order_service.next_status("ready", "deliver") == "delivered"
        with pytest.raises(PreconditionFailed):
            order_service.next_status("delivered", "kitchen_cancel")


class TestCustomerCancel:

    def test_cancel_pending_unpaid(self, db_session, order, session_id):
        cancelled = order_service.cancel_order(db_session, order.id, session_id)
        assert cancelled.status == "cancelled"
        assert get_order_event_bus().events_after(0)[-1].kind == "cancelled"

    def test_cannot_cancel_paid_while_pending(self, db_session, order, session_id):
        # paid but not yet confirmed by the kitchen
        order.payment_method = "qris"
        order.payment_status = "paid"
        db_session.commit()

        with pytest.raises(PreconditionFailed):
            order_service.cancel_order(db_session, order.id, session_id)

    def test_cannot_cancel_confirmed(self, db_session, order, session_id):
        order_service.confirm_payment(db_session, order.id, "cash")
        with pytest.raises(PreconditionFailed):
            order_service.cancel_order(db_session, order.id, session_id)

    def test_other_session_sees_not_found(self, db_session, order):
        with pytest.raises(NotFoundError):
            order_service.cancel_order(db_session, order.id, OTHER_SESSION)

    def test_delete_only_cancelled(self, db_session, order, session_id):
        with pytest.raises(PreconditionFailed):
            order_service.delete_order(db_session, order.id, session_id)

        order_service.cancel_order(db_session, order.id, session_id)
        order_service.delete_order(db_session, order.id, session_id)

        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0
        assert get_order_event_bus().events_after(0)[-1].kind == "deleted"


class TestKitchenCancel:

    def test_appends_reason_marker(self, db_session, order):
        cancelled = order_service.kitchen_cancel_order(db_session, order.id, "Stok habis")
        assert cancelled.status == "cancelled"
        assert cancelled.notes == "[Dibatalkan: Stok habis]"
        assert kitchen_cancel_reason(cancelled.notes) == "Stok habis"

    def test_marker_goes_on_new_line_after_existing_notes(self, db_session, table7, session_id, lines):
        order = order_service.create_order(db_session, table7.id, session_id, lines, 58000, notes="Meja dekat jendela")
        cancelled = order_service.kitchen_cancel_order(db_session, order.id, "Dapur tutup")
        assert cancelled.notes == "Meja dekat jendela\n[Dibatalkan: Dapur tutup]"

    def test_without_reason_leaves_notes(self, db_session, order):
        cancelled = order_service.kitchen_cancel_order(db_session, order.id)
        assert cancelled.status == "cancelled"
        assert cancelled.notes is None

    def test_can_cancel_paid_order_in_progress(self, db_session, order):
        order_service.confirm_payment(db_session, order.id, "cash")
        advance(db_session, order.id, "preparing", "ready")
        assert order_service.kitchen_cancel_order(db_session, order.id, "Salah meja").status == "cancelled"

    def test_delivered_is_terminal(self, db_session, order):
        order_service.confirm_payment(db_session, order.id, "cash")
        advance(db_session, order.id, "preparing", "ready", "delivered")
        with pytest.raises(PreconditionFailed):
            order_service.kitchen_cancel_order(db_session, order.id, "Terlambat")

    def test_cancelled_is_terminal(self, db_session, order):
        order_service.kitchen_cancel_order(db_session, order.id)
        with pytest.raises(PreconditionFailed):
            order_service.kitchen_cancel_order(db_session, order.id)


class TestPayment:

    def test_select_method_keeps_status(self, db_session, order, session_id):
        updated = order_service.set_payment_method(db_session, order.id, "cash", session_id)
        assert updated.payment_method == "cash"
        assert updated.payment_status == "pending"
        assert updated.status == "pending"
        assert updated.payment_requested_at is not None

    def test_select_unknown_method_rejected(self, db_session, order, session_id):
        with pytest.raises(ValidationError):
            order_service.set_payment_method(db_session, order.id, "card", session_id)

    def test_confirm_paid_moves_pending_to_confirmed(self, db_session, order):
        paid = order_service.confirm_payment(db_session, order.id, "cash")
        assert paid.payment_status == "paid"
        assert paid.status == "confirmed"

    def test_paid_never_downgrades_status(self, db_session, order, monkeypatch):
        monkeypatch.setattr(config_mod, "REQUIRE_PAYMENT_BEFORE_CONFIRM", False)
        advance(db_session, order.id, "confirmed", "preparing")
        paid = order_service.confirm_payment(db_session, order.id, "qris")
        assert paid.status == "preparing"

    def test_paid_is_one_way(self, db_session, order, session_id):
        order_service.confirm_payment(db_session, order.id, "cash")
        with pytest.raises(PreconditionFailed):
            order_service.confirm_payment(db_session, order.id, "cash", status="failed")
        with pytest.raises(PreconditionFailed):
            order_service.set_payment_method(db_session, order.id, "qris", session_id)

    def test_repeat_paid_confirmation_is_idempotent(self, db_session, order):
        order_service.confirm_payment(db_session, order.id, "cash")
        seq = get_order_event_bus().last_seq
        again = order_service.confirm_payment(db_session, order.id, "cash")
        assert again.payment_status == "paid"
        assert get_order_event_bus().last_seq == seq

    def test_failed_can_be_retried(self, db_session, order, session_id):
        order_service.confirm_payment(db_session, order.id, "qris", status="failed")
        retried = order_service.set_payment_method(db_session, order.id, "qris", session_id)
        assert retried.payment_status == "pending"

    def test_cannot_confirm_cancelled(self, db_session, order):
        order_service.kitchen_cancel_order(db_session, order.id)
        with pytest.raises(PreconditionFailed):
            order_service.confirm_payment(db_session, order.id, "cash")


class TestReads:

    def test_session_orders_newest_first(self, db_session, table7, session_id, lines):
        first = order_service.create_order(db_session, table7.id, session_id, lines, 58000)
        second = order_service.create_order(db_session, table7.id, session_id, lines, 58000)

        ids = [o.id for o in order_service.list_session_orders(db_session, session_id)]
        assert ids == [second.id, first.id]
        assert order_service.list_session_orders(db_session, OTHER_SESSION) == []

    def test_active_orders_exclude_terminal(self, db_session, table7, session_id, lines):
        keep = order_service.create_order(db_session, table7.id, session_id, lines, 58000)
        gone = order_service.create_order(db_session, table7.id, session_id, lines, 58000)
        order_service.kitchen_cancel_order(db_session, gone.id)

        assert [o.id for o in order_service.list_active_orders(db_session)] == [keep.id]
