"""
Tests for the payment dialog state machine.
"""
from types import SimpleNamespace

import pytest

from resto_bot.services.payment import (
    CASH_WAITING,
    CONFIRMED,
    NOTICE_CASH_PAID,
    NOTICE_QRIS_EXPIRED,
    NOTICE_QRIS_PAID,
    QRIS_WAITING,
    SELECT,
    PaymentFlow,
    PaymentFlowRegistry,
)


def make_order(method="none", payment_status="pending", status="pending", attempt=1):
    return SimpleNamespace(
        id=1,
        status=status,
        payment_method=method,
        payment_status=payment_status,
        payment_requested_at=attempt,
    )


@pytest.fixture
def confirmed_calls():
    return []


@pytest.fixture
def flow(clock, confirmed_calls):
    return PaymentFlow(1, set(), on_confirmed=confirmed_calls.append, clock=clock, qris_timeout=60)


class TestPaymentFlow:

    def test_no_method_is_select(self, flow):
        assert flow.observe(make_order()) == SELECT
        assert flow.remaining_seconds is None

    def test_qris_starts_countdown(self, flow, clock):
        assert flow.method_selected(make_order("qris")) == QRIS_WAITING
        assert flow.remaining_seconds == 60

        clock.advance(45)
        assert flow.observe(make_order("qris")) == QRIS_WAITING
        assert flow.remaining_seconds == 15

    def test_qris_expiry_returns_to_select_with_notice(self, flow, clock):
        flow.method_selected(make_order("qris"))
        clock.advance(60)

        assert flow.tick() == SELECT
        assert flow.drain_notices() == [NOTICE_QRIS_EXPIRED]
        assert flow.drain_notices() == []

        # Same attempt still pending in storage: stays on select
        assert flow.observe(make_order("qris")) == SELECT

    def test_new_attempt_after_expiry(self, flow, clock):
        flow.method_selected(make_order("qris", attempt=1))
        clock.advance(61)
        flow.tick()

        assert flow.method_selected(make_order("qris", attempt=2)) == QRIS_WAITING
        assert flow.remaining_seconds == 60

    def test_qris_paid_confirms_once(self, flow, confirmed_calls):
        flow.method_selected(make_order("qris"))
        paid = make_order("qris", payment_status="paid", status="confirmed")

        assert flow.observe(paid) == CONFIRMED
        assert flow.observe(paid) == CONFIRMED
        assert flow.drain_notices() == [NOTICE_QRIS_PAID]
        assert confirmed_calls == [paid]

    def test_paid_wins_over_expired_timer(self, flow, clock):
        flow.method_selected(make_order("qris"))
        clock.advance(120)
        flow.tick()

        assert flow.observe(make_order("qris", payment_status="paid", status="confirmed")) == CONFIRMED

    def test_cash_has_no_timeout(self, flow, clock):
        assert flow.method_selected(make_order("cash")) == CASH_WAITING
        clock.advance(3600)
        assert flow.tick() == CASH_WAITING
        assert flow.remaining_seconds is None

    def test_cash_paid_notice(self, flow):
        flow.method_selected(make_order("cash"))
        flow.observe(make_order("cash", payment_status="paid", status="confirmed"))
        assert flow.drain_notices() == [NOTICE_CASH_PAID]

    def test_switch_method_mid_wait(self, flow):
        flow.method_selected(make_order("qris", attempt=1))
        assert flow.method_selected(make_order("cash", attempt=2)) == CASH_WAITING

    def test_cancelled_order_is_select(self, flow):
        flow.method_selected(make_order("cash"))
        assert flow.observe(make_order("cash", status="cancelled")) == SELECT

    def test_failed_payment_is_select(self, flow):
        assert flow.observe(make_order("qris", payment_status="failed")) == SELECT


class TestPaymentFlowRegistry:

    def test_one_flow_per_session_and_order(self, clock):
        registry = PaymentFlowRegistry(clock)
        a = registry.get("session_1_aaaaaaaaaa", 1)
        assert registry.get("session_1_aaaaaaaaaa", 1) is a
        assert registry.get("session_2_bbbbbbbbbb", 1) is not a

    def test_success_announced_once_per_order(self, clock):
        registry = PaymentFlowRegistry(clock)
        calls = []
        paid = make_order("cash", payment_status="paid", status="confirmed")

        registry.get("session_1_aaaaaaaaaa", 1, on_confirmed=calls.append).observe(paid)
        registry.discard("session_1_aaaaaaaaaa", 1)
        registry.get("session_1_aaaaaaaaaa", 1, on_confirmed=calls.append).observe(paid)

        assert len(calls) == 1
        assert registry.is_announced(1)

    def test_reset(self, clock):
        registry = PaymentFlowRegistry(clock)
        registry.get("session_1_aaaaaaaaaa", 1).observe(make_order("cash", payment_status="paid"))
        registry.reset()
        assert not registry.is_announced(1)
