"""
Tests for the conversation gateway: turn ordering, gating, fallbacks and
cart directives applied from replies.
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from resto_bot.errors import QuotaExhausted, RateLimited, UpstreamFailed, UpstreamUnavailable, ValidationError
from resto_bot.models import ChatMessage
from resto_bot.services import cart as cart_service
from resto_bot.services.conversation import (
    FALLBACK_ACTIONS_ONLY,
    FALLBACK_QUOTA,
    FALLBACK_RATE_LIMITED,
    FALLBACK_UNAVAILABLE,
    PLACEHOLDER_COOLDOWN,
    PLACEHOLDER_IN_FLIGHT,
    ConversationGateway,
    append_message,
    dedupe_messages,
    list_messages,
)
from resto_bot.services.rate_limit import SessionRateLimiter


def stored(db, session_id):
    return [
        (m.role, m.content)
        for m in db.query(ChatMessage).filter(ChatMessage.session_id == session_id).order_by(ChatMessage.id)
    ]


class TestChatTurn:

    def test_directive_updates_cart_and_is_hidden(self, db_session, gateway, llm, session_id, table7, menu):
        llm.queue("Siap! [[ACTION:add_to_cart:Nasi Goreng:2:]]")

        result = gateway.send_message(db_session, session_id, table7.id, "Pesan nasi goreng dua")

        assert result.accepted
        assert result.reply == "Siap!"
        assert [(a.type, a.quantity) for a in result.actions] == [("add_to_cart", 2)]
        assert result.cart["total_amount"] == 50000
        assert stored(db_session, session_id) == [
            ("user", "Pesan nasi goreng dua"),
            ("assistant", "Siap!"),
        ]

        cart_service.clear_cache()
        cart = cart_service.load_cart(db_session, session_id)
        assert cart.get_line(menu["Nasi Goreng"].id).quantity == 2

    def test_prompt_carries_menu_cart_and_history(self, db_session, gateway, llm, session_id, table7):
        llm.queue("Halo! Mau pesan apa?", "Siap! [[ACTION:add_to_cart:Es Teh:1:]]", "Ada lagi?")

        gateway.send_message(db_session, session_id, table7.id, "Halo")
        gateway.send_message(db_session, session_id, table7.id, "Es teh satu")
        gateway.send_message(db_session, session_id, table7.id, "Itu saja")

        messages = llm.calls[2]
        assert messages[0]["role"] == "system"
        system = messages[0]["content"]
        assert "Nasi Goreng" in system
        assert "Rp25.000" in system
        assert '"name": "Es Teh"' in system
        assert "[[ACTION:" in system

        assert [m["role"] for m in messages[1:]] == ["user", "assistant", "user", "assistant", "user"]
        assert messages[-1]["content"] == "Itu saja"
        assert messages[4]["content"] == "Siap!"

    def test_history_window(self, db_session, llm, clock, session_id, table7):
        gateway = ConversationGateway(complete_fn=llm, clock=clock, cooldown_seconds=0, history_window=2)
        for text in ("satu", "dua", "tiga"):
            gateway.send_message(db_session, session_id, table7.id, text)

        # system + 2 prior + new user message
        assert len(llm.calls[2]) == 4
        assert llm.calls[2][-1]["content"] == "tiga"

    def test_actions_only_reply_gets_text(self, db_session, gateway, llm, session_id, table7):
        llm.queue("[[ACTION:add_to_cart:Es Teh:1:]]")
        result = gateway.send_message(db_session, session_id, table7.id, "Es teh")
        assert result.reply == FALLBACK_ACTIONS_ONLY
        assert stored(db_session, session_id)[-1] == ("assistant", FALLBACK_ACTIONS_ONLY)

    @pytest.mark.parametrize("text", ["", "   "])
    def test_empty_message_rejected(self, db_session, gateway, session_id, table7, text):
        with pytest.raises(ValidationError):
            gateway.send_message(db_session, session_id, table7.id, text)
        assert stored(db_session, session_id) == []


class TestTurnGating:

    def test_message_during_turn_gets_placeholder(self, db_session, llm, clock, session_id, table7):
        nested = []

        def complete(messages):
            nested.append(gateway.send_message(db_session, session_id, table7.id, "halo lagi"))
            return "Halo!"

        gateway = ConversationGateway(complete_fn=complete, clock=clock, cooldown_seconds=0)
        result = gateway.send_message(db_session, session_id, table7.id, "halo")

        assert result.accepted
        assert nested[0].accepted is False
        assert nested[0].reply == PLACEHOLDER_IN_FLIGHT
        assert stored(db_session, session_id) == [("user", "halo"), ("assistant", "Halo!")]

    def test_cooldown(self, db_session, llm, clock, session_id, table7):
        gateway = ConversationGateway(complete_fn=llm, clock=clock, cooldown_seconds=2)

        assert gateway.send_message(db_session, session_id, table7.id, "satu").accepted
        refused = gateway.send_message(db_session, session_id, table7.id, "dua")
        assert refused.accepted is False
        assert refused.reply == PLACEHOLDER_COOLDOWN
        assert len(stored(db_session, session_id)) == 2

        clock.advance(2.1)
        assert gateway.send_message(db_session, session_id, table7.id, "dua").accepted

    def test_cooldown_is_per_session(self, db_session, llm, clock, table7):
        gateway = ConversationGateway(complete_fn=llm, clock=clock, cooldown_seconds=2)
        assert gateway.send_message(db_session, "session_1_aaaaaaaaaa", table7.id, "halo").accepted
        assert gateway.send_message(db_session, "session_2_bbbbbbbbbb", table7.id, "halo").accepted

    def test_failed_turn_releases_session(self, db_session, gateway, llm, session_id, table7):
        llm.queue(UpstreamFailed("provider status 400"))

        with pytest.raises(UpstreamFailed):
            gateway.send_message(db_session, session_id, table7.id, "halo")

        assert not gateway.is_in_flight(session_id)
        assert stored(db_session, session_id) == [("user", "halo")]
        assert gateway.send_message(db_session, session_id, table7.id, "halo lagi").accepted

    def test_ai_turn_quota(self, db_session, llm, clock, session_id, table7):
        limiter = SessionRateLimiter("ai_turn_test", "2/minute")
        gateway = ConversationGateway(complete_fn=llm, clock=clock, cooldown_seconds=0, limiter=limiter)

        gateway.send_message(db_session, session_id, table7.id, "satu")
        gateway.send_message(db_session, session_id, table7.id, "dua")
        with pytest.raises(RateLimited) as excinfo:
            gateway.send_message(db_session, session_id, table7.id, "tiga")

        assert excinfo.value.retry_after >= 1
        assert len(stored(db_session, session_id)) == 4
        assert not gateway.is_in_flight(session_id)


class TestFallbacks:

    @pytest.mark.parametrize("error, reply, kind", [
        (RateLimited("provider 429"), FALLBACK_RATE_LIMITED, "rate_limited"),
        (QuotaExhausted("provider 402"), FALLBACK_QUOTA, "quota_exhausted"),
        (UpstreamUnavailable("provider down"), FALLBACK_UNAVAILABLE, "upstream_unavailable"),
    ])
    def test_provider_errors_become_canned_replies(
        self, db_session, gateway, llm, session_id, table7, error, reply, kind,
    ):
        llm.queue(error)
        result = gateway.send_message(db_session, session_id, table7.id, "halo")

        assert result.accepted
        assert result.reply == reply
        assert result.fallback == kind
        assert result.actions == []
        assert stored(db_session, session_id) == [("user", "halo"), ("assistant", reply)]


class TestMessageDedup:

    def _msg(self, role, content, seconds):
        base = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        return SimpleNamespace(role=role, content=content, created_at=base + timedelta(seconds=seconds))

    def test_collapses_duplicates_within_window(self):
        messages = [
            self._msg("user", "halo", 0),
            self._msg("user", "halo", 3),
            self._msg("assistant", "Hai!", 4),
        ]
        assert [m.content for m in dedupe_messages(messages, window_seconds=10)] == ["halo", "Hai!"]

    def test_keeps_duplicates_outside_window(self):
        messages = [self._msg("user", "halo", 0), self._msg("user", "halo", 30)]
        assert len(dedupe_messages(messages, window_seconds=10)) == 2

    def test_same_content_different_role_kept(self):
        messages = [self._msg("user", "oke", 0), self._msg("assistant", "oke", 1)]
        assert len(dedupe_messages(messages, window_seconds=10)) == 2

    def test_naive_timestamps(self):
        first = SimpleNamespace(role="user", content="halo", created_at=datetime(2026, 1, 1, 12, 0, 0))
        second = SimpleNamespace(
            role="user", content="halo",
            created_at=datetime(2026, 1, 1, 12, 0, 5, tzinfo=timezone.utc),
        )
        assert len(dedupe_messages([first, second], window_seconds=10)) == 1

    def test_list_messages_dedupes_stored_log(self, db_session, session_id, table7):
        append_message(db_session, session_id, table7.id, "user", "halo")
        append_message(db_session, session_id, table7.id, "user", "halo")
        append_message(db_session, session_id, table7.id, "assistant", "Hai!")

        assert [m.content for m in list_messages(db_session, session_id)] == ["halo", "Hai!"]
        assert len(list_messages(db_session, session_id, dedupe=False)) == 3
