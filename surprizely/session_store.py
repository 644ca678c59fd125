"""
Server-side sessions.

``SessionStore`` keeps sessions in a dict keyed by session id and is written to
a single JSON file by ``PeriodicFlusher`` rather than on every request, so a
crash loses at most one flush interval of session writes.
``StoreSessionInterface`` plugs the store into Flask; the cookie only carries
the session id.
"""
import time
import secrets
import logging
import threading
from typing import Callable, Dict, Optional

from flask.sessions import SessionInterface, SessionMixin
from werkzeug.datastructures import CallbackDict

from errors import PersistenceError
from json_files import atomic_write_json, read_json

logger = logging.getLogger("session_store")

DEFAULT_MAX_AGE_SECONDS = 24 * 60 * 60


def new_session_id() -> str:
    return secrets.token_hex(16)


class SessionStore:
    def __init__(self, path: str, max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
                 clock: Callable[[], float] = time.time):
        self.path = path
        self.max_age_seconds = max_age_seconds
        self.clock = clock
        self._sessions: Dict[str, dict] = {}
        self._lock = threading.Lock()
        self._dirty = False

    def _expired(self, entry: dict, now: float) -> bool:
        expires_at = entry.get("expiresAt")
        return isinstance(expires_at, (int, float)) and expires_at <= now

    def _default_expiry(self) -> float:
        return self.clock() + self.max_age_seconds

    def get(self, sid: str) -> Optional[dict]:
        with self._lock:
            entry = self._sessions.get(sid)
            if entry is None:
                return None
            if self._expired(entry, self.clock()):
                del self._sessions[sid]
                self._dirty = True
                return None
            return dict(entry["data"])

    def set(self, sid: str, data: dict, expires_at: Optional[float] = None):
        with self._lock:
            self._sessions[sid] = {"data": dict(data), "expiresAt": expires_at or self._default_expiry()}
            self._dirty = True

    def destroy(self, sid: str):
        with self._lock:
            if self._sessions.pop(sid, None) is not None:
                self._dirty = True

    def touch(self, sid: str, expires_at: Optional[float] = None) -> bool:
        with self._lock:
            entry = self._sessions.get(sid)
            if entry is None or self._expired(entry, self.clock()):
                return False
            entry["expiresAt"] = expires_at or self._default_expiry()
            self._dirty = True
            return True

    def all(self) -> Dict[str, dict]:
        now = self.clock()
        with self._lock:
            return {sid: dict(e["data"]) for sid, e in self._sessions.items() if not self._expired(e, now)}

    def length(self) -> int:
        return len(self.all())

    def clear(self):
        with self._lock:
            self._sessions.clear()
            self._dirty = True

    def load(self):
        raw = read_json(self.path)
        now = self.clock()
        sessions = {}
        if isinstance(raw, dict):
            for sid, entry in raw.items():
                if not isinstance(entry, dict) or not isinstance(entry.get("data"), dict):
                    continue
                if self._expired(entry, now):
                    continue
                sessions[sid] = {"data": entry["data"], "expiresAt": entry.get("expiresAt")}
        with self._lock:
            self._sessions = sessions
            self._dirty = False
        logger.info("Loaded %s sessions from %s", len(sessions), self.path)

    def flush(self) -> bool:
        """Write the live sessions to disk if anything changed. Returns True on a write."""
        now = self.clock()
        with self._lock:
            if not self._dirty:
                return False
            snapshot = {
                sid: {"data": dict(e["data"]), "expiresAt": e.get("expiresAt")}
                for sid, e in self._sessions.items()
                if not self._expired(e, now)
            }
            self._dirty = False
        try:
            atomic_write_json(self.path, snapshot)
        except PersistenceError as e:
            with self._lock:
                self._dirty = True
            logger.error("Session flush failed: %s", e.message)
            return False
        return True


class PeriodicFlusher:
    """Calls ``flush`` every ``interval`` seconds on a daemon thread until stopped."""

    def __init__(self, flush: Callable[[], object], interval: float):
        self.flush = flush
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running or self.interval <= 0:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-flusher", daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.flush()
            except Exception:
                logger.exception("Periodic flush failed")

    def stop(self):
        """Stop the thread and run one last flush."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None
        self.flush()


class ServerSession(CallbackDict, SessionMixin):
    def __init__(self, initial=None, sid: str = "", new: bool = False):
        def on_update(self):
            self.modified = True
            self.accessed = True

        super().__init__(initial, on_update)
        self.sid = sid
        self.new = new
        self.modified = False
        self.accessed = False


class StoreSessionInterface(SessionInterface):
    def __init__(self, store: SessionStore):
        self.store = store

    def open_session(self, app, request):
        sid = request.cookies.get(self.get_cookie_name(app))
        if sid:
            data = self.store.get(sid)
            if data is not None:
                return ServerSession(data, sid=sid)
        return ServerSession(sid=new_session_id(), new=True)

    def save_session(self, app, session, response):
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if not session:
            if session.modified and not session.new:
                self.store.destroy(session.sid)
                response.delete_cookie(name, domain=domain, path=path)
            return

        expires_at = self.store.clock() + app.permanent_session_lifetime.total_seconds()
        if session.modified:
            self.store.set(session.sid, dict(session), expires_at)
        else:
            self.store.touch(session.sid, expires_at)

        if not self.should_set_cookie(app, session):
            return
        response.set_cookie(
            name,
            session.sid,
            expires=self.get_expiration_time(app, session),
            httponly=self.get_cookie_httponly(app),
            domain=domain,
            path=path,
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
        )
