import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import resto_bot.config as config_mod
import resto_bot.db as db
from resto_bot.main import app
from resto_bot.middleware import limiter
from resto_bot.models import Base, MenuItem, RestaurantTable
from resto_bot.seed_menu import seed_menu
from resto_bot.services import cart as cart_service
from resto_bot.services.conversation import ConversationGateway, set_conversation_gateway
from resto_bot.services.order_events import get_order_event_bus
from resto_bot.services.payment import get_payment_flows
from resto_bot.services.rate_limit import reset_limiters
from resto_bot.session_identity import generate_session_id, reset_session_identity
from resto_bot.tts import reset_tts_providers

# Test staff credentials
TEST_STAFF_USERNAME = "dapur"
TEST_STAFF_PASSWORD = "testpassword123"


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedLLM:
    """Stands in for llm_client.complete; replies are queued per test."""

    def __init__(self):
        self.replies = []
        self.calls = []

    def queue(self, *replies) -> None:
        self.replies.extend(replies)

    def __call__(self, messages):
        self.calls.append(messages)
        reply = self.replies.pop(0) if self.replies else "Oke!"
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def reset_process_state():
    """Clear every process-wide cache, counter and registry around each test."""
    def reset():
        cart_service.clear_cache()
        get_order_event_bus().reset()
        flows = get_payment_flows()
        flows.reset()
        flows.clock = time.monotonic
        set_conversation_gateway(None)
        reset_limiters()
        limiter.reset()
        reset_tts_providers()
        reset_session_identity()

    reset()
    yield
    reset()


@pytest.fixture
def session_factory():
    """In-memory SQLite seeded with the demo menu and tables.

    Uses StaticPool so all connections share the same in-memory database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    seed_menu(session)
    session.close()

    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    """Shared FastAPI TestClient bound to the test database."""
    def override_get_db():
        db_sess = session_factory()
        try:
            yield db_sess
        finally:
            db_sess.close()

    app.dependency_overrides[db.get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def staff_auth(monkeypatch):
    """Returns HTTP Basic Auth tuple for kitchen endpoints."""
    monkeypatch.setattr(config_mod, "STAFF_USERNAME", TEST_STAFF_USERNAME)
    monkeypatch.setattr(config_mod, "STAFF_PASSWORD", TEST_STAFF_PASSWORD)
    return (TEST_STAFF_USERNAME, TEST_STAFF_PASSWORD)


@pytest.fixture
def session_id():
    return generate_session_id()


@pytest.fixture
def headers(session_id):
    return {"X-Session-ID": session_id}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def gateway(llm, clock):
    """Process gateway with a scripted model and no cooldown."""
    gw = ConversationGateway(complete_fn=llm, clock=clock, cooldown_seconds=0)
    set_conversation_gateway(gw)
    return gw


@pytest.fixture
def menu(db_session):
    """Seeded menu items by name."""
    return {item.name: item for item in db_session.query(MenuItem).all()}


@pytest.fixture
def table7(db_session):
    return db_session.query(RestaurantTable).filter(RestaurantTable.table_number == 7).one()
