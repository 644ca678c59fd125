import pytest

import giveaway_api
from entity_store import EntityStore
from session_store import SessionStore
from shop_app import create_app

ADMIN_PASSWORD = "Admin123!"


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def store(tmp_path):
    s = EntityStore(str(tmp_path / "data"))
    s.load()
    return s


@pytest.fixture
def shoppers(store):
    return [store.create_user(f"shopper{i}", "Shopping1") for i in range(1, 4)]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_store(tmp_path, clock):
    return SessionStore(str(tmp_path / "sessions.json"), max_age_seconds=3600, clock=clock)


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def fake_send(email, order_id):
        sent.append((email, order_id))
        return True

    monkeypatch.setattr(giveaway_api, "send_giveaway_confirmation", fake_send)
    return sent


@pytest.fixture
def app(tmp_path, sent_emails):
    app = create_app({
        "TESTING": True,
        "DATA_DIR": str(tmp_path / "data"),
        "SECRET_KEY": "test-secret",
        "ADMIN_USERNAME": "admin",
        "ADMIN_PASSWORD": ADMIN_PASSWORD,
        "SESSION_FLUSH_SECONDS": 0,
        "SESSION_COOKIE_SECURE": False,
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    c = app.test_client()
    resp = c.post("/api/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return c


@pytest.fixture
def user_client(app):
    c = app.test_client()
    resp = c.post("/api/register", json={
        "username": "alice",
        "password": "Wonderland1",
        "email": "alice@surprizely.com",
        "name": "Alice",
    })
    assert resp.status_code == 201
    return c
