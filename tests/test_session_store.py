from session_store import PeriodicFlusher, SessionStore


def test_map_operations(session_store):
    session_store.set("a", {"_user_id": "1"})
    session_store.set("b", {"_user_id": "2"})
    assert session_store.get("a") == {"_user_id": "1"}
    assert session_store.length() == 2

    session_store.destroy("a")
    assert session_store.get("a") is None
    assert set(session_store.all()) == {"b"}

    session_store.clear()
    assert session_store.length() == 0


def test_get_returns_a_copy(session_store):
    session_store.set("a", {"cart": 1})
    data = session_store.get("a")
    data["cart"] = 2
    assert session_store.get("a") == {"cart": 1}


def test_expired_sessions_read_as_missing(session_store, clock):
    session_store.set("a", {"x": 1})
    clock.advance(3599)
    assert session_store.get("a") == {"x": 1}
    clock.advance(2)
    assert session_store.get("a") is None
    assert session_store.length() == 0


def test_touch_extends_expiry(session_store, clock):
    session_store.set("a", {"x": 1})
    clock.advance(3000)
    assert session_store.touch("a")
    clock.advance(3000)
    assert session_store.get("a") == {"x": 1}
    assert not session_store.touch("missing")


def test_flush_then_load(session_store, clock):
    session_store.set("live", {"x": 1})
    session_store.set("stale", {"x": 2}, expires_at=clock() + 10)
    clock.advance(20)

    assert session_store.flush() is True
    assert session_store.flush() is False

    fresh = SessionStore(session_store.path, max_age_seconds=3600, clock=clock)
    fresh.load()
    assert fresh.all() == {"live": {"x": 1}}


def test_flusher_stop_runs_final_flush(session_store):
    calls = []
    flusher = PeriodicFlusher(lambda: calls.append(1), interval=0)
    flusher.start()
    assert not flusher.running
    flusher.stop()
    assert calls == [1]


def test_flusher_thread_lifecycle(session_store):
    session_store.set("a", {"x": 1})
    flusher = PeriodicFlusher(session_store.flush, interval=60)
    flusher.start()
    assert flusher.running
    flusher.stop()
    assert not flusher.running

    fresh = SessionStore(session_store.path, max_age_seconds=3600, clock=session_store.clock)
    fresh.load()
    assert fresh.get("a") == {"x": 1}
